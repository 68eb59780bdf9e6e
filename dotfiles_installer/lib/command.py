from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from typing import Callable, Sequence

from ..errors import CommandError

logger = logging.getLogger(__name__)

# Exit status a shell reports for a missing executable.
NOT_FOUND = 127


@dataclass(frozen=True)
class CmdResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def quote_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


def run_cmd(argv: Sequence[str], *, check: bool = True) -> CmdResult:
    """Run one external tool (package manager, git, stow) to completion.

    The argv is logged at INFO and captured output at DEBUG. With ``check``
    a non-zero exit raises CommandError; a missing executable is reported as
    exit status 127 either way. There is no timeout.
    """

    args = list(argv)
    logger.info("CMD %s", quote_argv(args))

    try:
        p = subprocess.run(args, text=True, capture_output=True)
    except FileNotFoundError as e:
        result = CmdResult(argv=args, returncode=NOT_FOUND, stdout="", stderr=str(e))
    else:
        result = CmdResult(argv=args, returncode=p.returncode, stdout=p.stdout or "", stderr=p.stderr or "")

    if result.stdout:
        logger.debug("STDOUT %s", result.stdout.strip())
    if result.stderr:
        logger.debug("STDERR %s", result.stderr.strip())

    if check and not result.ok:
        raise CommandError(args, result.returncode, result.stdout, result.stderr)
    return result


# Anything with run_cmd's signature; tests inject recorders.
Runner = Callable[..., CmdResult]


def command_exists(name: str) -> bool:
    return shutil.which(name) is not None
