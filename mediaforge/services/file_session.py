"""Ephemeral on-disk artifacts bridging byte buffers and ffmpeg.

A session owns exactly one path under the temp root.  It is written either by
the caller (``write``/``write_stream``) or by the external tool, read back once
complete, and deleted at the end of the operation that created it.
"""

import logging
import os
import shutil
import time
import uuid
from pathlib import Path
from typing import Optional, Union

from .. import settings
from ..errors import IOFailure, TimeoutFailure
from ..utils.fs import resolve_temp_root

logger = logging.getLogger(__name__)


class FileSession:
    def __init__(
        self,
        extension: str,
        session_id: Optional[str] = None,
        root: Optional[Union[str, os.PathLike]] = None,
    ) -> None:
        self.id = session_id or uuid.uuid4().hex
        self.extension = extension.lstrip(".")
        self._root = Path(root) if root is not None else None

    @property
    def root(self) -> Path:
        # the default root is created on first use, not at construction
        if self._root is None:
            self._root = resolve_temp_root()
        return self._root

    @property
    def path(self) -> Path:
        return self.root / f"{self.id}.{self.extension}"

    def __repr__(self) -> str:
        return f"FileSession({str(self.path)!r})"

    def exists(self) -> bool:
        return self.path.exists()

    def _part_path(self) -> Path:
        return self.path.with_name(self.path.name + ".part")

    def write(self, buffer: bytes) -> None:
        """Replace the session file with ``buffer``.

        The bytes land in a ``.part`` sibling first and are moved into place
        with ``os.replace`` so a reader never sees a half-written file.
        """
        part = self._part_path()
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            with open(part, "wb") as fh:
                fh.write(buffer)
            os.replace(part, self.path)
        except OSError as e:
            part.unlink(missing_ok=True)
            raise IOFailure(f"could not write {self.path}: {e}") from e
        logger.debug("wrote %d bytes to %s", len(buffer), self.path)

    def write_stream(self, stream) -> None:
        """Drain a readable stream into the session file."""
        part = self._part_path()
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            with open(part, "wb") as fh:
                shutil.copyfileobj(stream, fh)
            os.replace(part, self.path)
        except OSError as e:
            part.unlink(missing_ok=True)
            raise IOFailure(f"could not write {self.path}: {e}") from e
        logger.debug("drained stream into %s", self.path)

    def read(self) -> bytes:
        try:
            with open(self.path, "rb") as fh:
                return fh.read()
        except OSError as e:
            raise IOFailure(f"could not read {self.path}: {e}") from e

    def wait_for_stable_read(
        self,
        max_attempts: int = settings.POLL_ATTEMPTS,
        poll_interval_ms: int = settings.POLL_INTERVAL_MS,
    ) -> bytes:
        """Read the file once its size stops changing between two polls.

        A missing file counts as not ready yet.  This is a heuristic: it only
        holds while the producer writes faster than ``poll_interval_ms`` once
        it has started.
        """
        previous = None
        for attempt in range(max_attempts):
            try:
                size = self.path.stat().st_size
            except FileNotFoundError:
                size = None
            except OSError as e:
                raise IOFailure(f"could not stat {self.path}: {e}") from e
            if size is not None and size == previous:
                logger.debug("%s stable at %d bytes after %d polls", self.path, size, attempt + 1)
                return self.read()
            previous = size
            time.sleep(poll_interval_ms / 1000.0)
        raise TimeoutFailure(
            f"{self.path} not stable after {max_attempts} polls of {poll_interval_ms}ms"
        )

    def delete(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
            self._part_path().unlink(missing_ok=True)
        except OSError as e:
            raise IOFailure(f"could not delete {self.path}: {e}") from e


def cleanup(*sessions: Optional[FileSession]) -> None:
    """Best-effort delete; failures are logged so they never mask the result."""
    for session in sessions:
        if session is None:
            continue
        try:
            session.delete()
        except IOFailure:
            logger.warning("session cleanup failed for %s", session.path, exc_info=True)
