from __future__ import annotations

from typing import Sequence


class InstallerError(Exception):
    """Base class for every error raised by dotfiles_installer."""


class DetectionError(InstallerError):
    pass


class ManifestError(InstallerError):
    def __init__(self, message: str, *, problems: Sequence[str] = ()) -> None:
        self.problems = list(problems)
        if self.problems:
            message = message + "\n" + "\n".join(f"  - {p}" for p in self.problems)
        super().__init__(message)


class PackageManagerError(InstallerError):
    pass


class DependencyError(InstallerError):
    pass


class ExternalAssetError(InstallerError):
    pass


class ConditionNotMetError(ExternalAssetError):
    pass


class StowError(InstallerError):
    def __init__(self, group: str, underlying: BaseException | str) -> None:
        self.group = group
        self.underlying = underlying
        super().__init__(f"{group}: {underlying}")


class TemplateError(InstallerError):
    pass


class DestinationExistsError(TemplateError):
    def __init__(self, destination: str) -> None:
        self.destination = destination
        super().__init__(f"destination already exists: {destination} (use overwrite to replace it)")


class StateError(InstallerError):
    pass


class UpdateError(InstallerError):
    pass


class CommandError(InstallerError, RuntimeError):
    def __init__(self, argv: Sequence[str], returncode: int, stdout: str = "", stderr: str = "") -> None:
        self.argv = list(argv)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        detail = (stderr or stdout or "").strip()
        msg = f"Command failed ({returncode}): {' '.join(self.argv)}"
        if detail:
            msg += f"\n{detail}"
        super().__init__(msg)
