from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from .. import settings
from ..errors import ParseFailure
from ..utils.fs import resolve_temp_root


@dataclass
class ToolConfig:
    """Binary locations and polling budget handed to ``FfmpegService``."""

    ffmpeg_path: str = settings.FFMPEG_PATH
    ffprobe_path: str = settings.FFPROBE_PATH
    temp_root: Path = field(default_factory=resolve_temp_root)
    poll_interval_ms: int = settings.POLL_INTERVAL_MS
    poll_attempts: int = settings.POLL_ATTEMPTS
    tool_timeout_s: Optional[float] = settings.TOOL_TIMEOUT_S

    @classmethod
    def from_settings(cls, **overrides) -> "ToolConfig":
        if "temp_root" in overrides:
            overrides["temp_root"] = resolve_temp_root(overrides["temp_root"])
        return cls(**overrides)


@dataclass
class LoudnormSpec:
    I: float = settings.DEFAULT_LOUDNORM["I"]
    TP: float = settings.DEFAULT_LOUDNORM["TP"]
    LRA: float = settings.DEFAULT_LOUDNORM["LRA"]


@dataclass
class LoudnessMeasurement:
    input_i: float
    input_tp: float
    input_lra: float
    input_thresh: float
    target_offset: float
    output_i: Optional[float] = None
    output_tp: Optional[float] = None
    output_lra: Optional[float] = None
    output_thresh: Optional[float] = None
    normalization_type: Optional[str] = None

    REQUIRED = ("input_i", "input_tp", "input_lra", "input_thresh", "target_offset")
    OPTIONAL = ("output_i", "output_tp", "output_lra", "output_thresh")

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "LoudnessMeasurement":
        """Build a measurement from the loudnorm JSON block.

        ffmpeg prints every number as a string (``"-23.54"``, sometimes
        ``"-inf"`` for silence), so values are converted here.
        """
        values = {}
        for key in cls.REQUIRED:
            if key not in payload:
                raise ParseFailure(f"loudnorm measurement is missing {key!r}")
            values[key] = _to_float(key, payload[key])
        for key in cls.OPTIONAL:
            if key in payload:
                values[key] = _to_float(key, payload[key])
        values["normalization_type"] = payload.get("normalization_type")
        return cls(**values)


def _to_float(key: str, value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ParseFailure(f"loudnorm value {key}={value!r} is not numeric") from None


@dataclass
class RenderResult:
    buffer: bytes
    duration_ms: int
