"""Subprocess boundary.

``ToolInvocation`` runs one ffmpeg/ffprobe command on a background thread and
reports back through ``start``/``end``/``error`` handlers.  ``OneShot`` turns
those handlers into a future that settles exactly once.
"""

import logging
import subprocess
import threading
from concurrent.futures import Future, InvalidStateError
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from ..errors import SubprocessFailure

logger = logging.getLogger(__name__)

EVENTS = ("start", "end", "error")


@dataclass
class ToolOutput:
    argv: List[str]
    stdout: str
    stderr: str


class ToolInvocation:
    def __init__(self, argv: List[str], timeout: Optional[float] = None) -> None:
        self.argv = [str(a) for a in argv]
        self.timeout = timeout
        self._handlers: Dict[str, Callable] = {}

    def on(self, event: str, handler: Callable) -> "ToolInvocation":
        if event not in EVENTS:
            raise ValueError(f"unknown event {event!r}")
        self._handlers[event] = handler
        return self

    def run(self) -> threading.Thread:
        t = threading.Thread(target=self._execute, name=f"tool:{self.argv[0]}", daemon=True)
        t.start()
        return t

    def _emit(self, event: str, payload) -> None:
        handler = self._handlers.get(event)
        if handler is not None:
            handler(payload)

    def _execute(self) -> None:
        logger.debug("running %s", " ".join(self.argv))
        self._emit("start", self.argv)
        try:
            proc = subprocess.run(
                self.argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                text=True,
                errors="replace",
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            stderr = e.stderr.decode("utf-8", "replace") if isinstance(e.stderr, bytes) else (e.stderr or "")
            self._emit("error", SubprocessFailure(self.argv, stderr, reason=f"timed out after {self.timeout}s"))
            return
        except OSError as e:
            self._emit("error", SubprocessFailure(self.argv, reason=f"could not start ({e})"))
            return
        if proc.returncode != 0:
            self._emit("error", SubprocessFailure(self.argv, proc.stderr, proc.returncode))
            return
        self._emit("end", ToolOutput(self.argv, proc.stdout, proc.stderr))


class OneShot:
    """Single-resolution bridge from callbacks to a ``Future``.

    Whichever of ``resolve``/``reject`` arrives first wins; later calls are
    ignored and return ``False``.  A future the caller cancelled counts as
    settled: the outcome is dropped instead of raising in the worker thread.
    """

    def __init__(self, future: Optional[Future] = None) -> None:
        self.future = future if future is not None else Future()
        self._lock = threading.Lock()
        self._settled = False

    @property
    def settled(self) -> bool:
        return self._settled

    @property
    def abandoned(self) -> bool:
        return self.future.cancelled()

    def _claim(self) -> bool:
        with self._lock:
            if self._settled:
                return False
            self._settled = True
            return True

    def _set(self, setter, value) -> bool:
        try:
            setter(value)
        except InvalidStateError:
            # cancelled by the caller
            logger.debug("future abandoned before settling")
            return False
        return True

    def resolve(self, value) -> bool:
        if not self._claim():
            logger.debug("ignoring late completion %r", type(value).__name__)
            return False
        return self._set(self.future.set_result, value)

    def reject(self, exc: BaseException) -> bool:
        if not self._claim():
            logger.debug("ignoring late failure %r", exc)
            return False
        return self._set(self.future.set_exception, exc)
