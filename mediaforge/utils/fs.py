import os
import tempfile
from pathlib import Path
from typing import Optional, Union

from .. import settings


def resolve_temp_root(path: Optional[Union[str, os.PathLike]] = None) -> Path:
    """Return the directory session files live in, creating it if needed.

    Falls back to a directory under the system temp dir when the configured
    location is not writable (read-only containers and the like).
    """
    root = Path(path or settings.MEDIA_TMP_DIR)
    try:
        root.mkdir(parents=True, exist_ok=True)
    except PermissionError:
        root = Path(tempfile.gettempdir()) / "mediaforge"
        root.mkdir(parents=True, exist_ok=True)
    return root


def is_stream(source) -> bool:
    """True for readable file-like objects as opposed to filesystem paths."""
    return hasattr(source, "read") and callable(source.read)
