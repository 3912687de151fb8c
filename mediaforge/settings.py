import os
import tempfile

FFMPEG_PATH = os.getenv("FFMPEG_PATH", "ffmpeg")
FFPROBE_PATH = os.getenv("FFPROBE_PATH", "ffprobe")
MEDIA_TMP_DIR = os.getenv("MEDIA_TMP_DIR", os.path.join(tempfile.gettempdir(), "mediaforge"))
POLL_INTERVAL_MS = int(os.getenv("POLL_INTERVAL_MS", "100"))
POLL_ATTEMPTS = int(os.getenv("POLL_ATTEMPTS", "30"))
TOOL_TIMEOUT_S = int(os.getenv("TOOL_TIMEOUT_S", "1200"))
REQUEST_TIMEOUT_S = int(os.getenv("REQUEST_TIMEOUT_S", "1800"))
MAX_UPLOAD_MB = int(os.getenv("MAX_UPLOAD_MB", "512"))
DEFAULT_LOUDNORM = {"I": -16.0, "LRA": 11.0, "TP": -1.5}
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
