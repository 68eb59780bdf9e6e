"""Structured progress events.

Components never print. They emit ProgressEvent objects to an optional
callback and the presentation layer (main.py) decides how to render them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

START = "start"
SUCCESS = "success"
FAILED = "failed"
SKIPPED = "skipped"
INFO = "info"
WARNING = "warning"


@dataclass(frozen=True)
class ProgressEvent:
    phase: str
    outcome: str
    message: str
    item: Optional[str] = None
    current: int = 0
    total: int = 0


ProgressFn = Callable[[ProgressEvent], None]


def emit(
    progress: Optional[ProgressFn],
    phase: str,
    outcome: str,
    message: str,
    *,
    item: Optional[str] = None,
    current: int = 0,
    total: int = 0,
) -> None:
    if progress is None:
        return
    progress(ProgressEvent(phase=phase, outcome=outcome, message=message, item=item, current=current, total=total))
