"""Failure kinds surfaced by media operations.

Every operation reports failure through its future rather than raising at
call time; callers can switch on the concrete class below.
"""

from __future__ import annotations

from typing import Iterable, Optional


class MediaOpsError(RuntimeError):
    """Base class for every failure an operation can report."""

    def __init__(self, message: str, *, stage: Optional[str] = None) -> None:
        super().__init__(message)
        self.stage = stage


class IOFailure(MediaOpsError):
    """Reading, writing or deleting a session file failed."""


class TimeoutFailure(MediaOpsError):
    """A session file never became stable within the polling budget."""


class ParseFailure(MediaOpsError):
    """Structured output from a tool was missing or malformed."""


class SubprocessFailure(MediaOpsError):
    """The external tool exited non-zero, could not start or timed out."""

    def __init__(
        self,
        argv: Iterable[str],
        stderr: str = "",
        returncode: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> None:
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr or ""
        tool = self.argv[0] if self.argv else "tool"
        if reason is None:
            reason = f"exited with status {returncode}"
        # only the tail; ffmpeg banners are long
        tail = self.stderr[-400:].strip()
        message = f"{tool} {reason}"
        if tail:
            message += f": {tail}"
        super().__init__(message)


__all__ = [
    "MediaOpsError",
    "IOFailure",
    "TimeoutFailure",
    "ParseFailure",
    "SubprocessFailure",
]
