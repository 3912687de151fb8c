import logging

from flask import Flask, jsonify

from . import settings
from .models.specs import ToolConfig
from .services.ffmpeg import FfmpegService


def create_app(config: ToolConfig = None, service: FfmpegService = None):
    """Create and configure the Flask application.

    The app is a thin HTTP front for ``FfmpegService``: uploads become byte
    buffers, each route submits one operation and waits on its future.  Pass
    ``config`` (or a ready ``service``) to point at specific ffmpeg/ffprobe
    binaries or a different temp root; otherwise environment defaults from
    ``settings`` apply.
    """
    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = settings.MAX_UPLOAD_MB * 1024 * 1024
    app.config["REQUEST_TIMEOUT_S"] = settings.REQUEST_TIMEOUT_S
    if settings.DEBUG:
        logging.basicConfig(level=logging.DEBUG)

    if service is None:
        service = FfmpegService(config or ToolConfig.from_settings())
    app.extensions["mediaforge"] = service

    @app.get("/healthz")
    def healthz():
        versions = service.tool_versions()
        return jsonify({
            "status": "ok",
            "ffmpeg": versions["ffmpeg"] is not None,
            "ffprobe": versions["ffprobe"] is not None,
        })

    from .routes import bp as media_bp
    app.register_blueprint(media_bp)

    return app


__all__ = ["create_app", "FfmpegService", "ToolConfig"]
