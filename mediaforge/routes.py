import io
from concurrent.futures import TimeoutError as FutureTimeout
from pathlib import Path

from flask import Blueprint, current_app, jsonify, request, send_file
from werkzeug.utils import secure_filename

from .errors import MediaOpsError, TimeoutFailure
from .services.file_session import cleanup

bp = Blueprint("media", __name__)

MIMETYPES = {
    "mp4": "video/mp4",
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "png": "image/png",
    "jpg": "image/jpeg",
}


class BadRequest(ValueError):
    pass


def _service():
    return current_app.extensions["mediaforge"]


def _upload(field: str):
    f = request.files.get(field)
    if not f or f.filename == "":
        raise BadRequest(f"No file provided (form field must be '{field}').")
    return f


def _ext(upload, default: str) -> str:
    suffix = Path(secure_filename(upload.filename or "")).suffix.lstrip(".").lower()
    return suffix or default


def _number(field: str, cast=float, default=None):
    raw = request.form.get(field)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise BadRequest(f"'{field}' must be a number") from None


def _wait(future):
    try:
        return future.result(timeout=current_app.config["REQUEST_TIMEOUT_S"])
    except FutureTimeout:
        # the operation keeps running and cleans up after itself
        raise TimeoutFailure("operation did not finish within the request timeout") from None


def _send(buffer: bytes, name: str, ext: str, headers=None):
    resp = send_file(
        io.BytesIO(buffer),
        mimetype=MIMETYPES.get(ext, "application/octet-stream"),
        as_attachment=True,
        download_name=f"{name}.{ext}",
    )
    for k, v in (headers or {}).items():
        resp.headers[k] = v
    return resp


@bp.post("/merge")
def merge():
    uploads = [f for f in request.files.getlist("videos") if f.filename]
    if not uploads:
        raise BadRequest("No files provided (form field must be 'videos').")
    service = _service()
    inputs = []
    try:
        for f in uploads:
            s = service.session(_ext(f, "mp4"))
            inputs.append(s)
            s.write_stream(f.stream)
        audio = request.form.get("audio", "1").lower() not in ("0", "false", "no")
        result = _wait(service.merge([str(s.path) for s in inputs], audio))
    finally:
        cleanup(*inputs)
    return _send(result.buffer, "merged", "mp4", {"X-Duration-Ms": str(result.duration_ms)})


@bp.post("/cut")
def cut():
    video = _upload("video").read()
    start_ms = _number("start_ms", int)
    end_ms = _number("end_ms", int)
    return _send(_wait(_service().cut(video, start_ms, end_ms)), "cut", "mp4")


@bp.post("/duration")
def duration():
    f = _upload("media")
    ext = request.form.get("extension") or _ext(f, "mp4")
    duration_ms = _wait(_service().get_duration_from_buffer(f.read(), ext))
    return jsonify({"duration_ms": duration_ms})


@bp.post("/frame")
def frame():
    f = _upload("video")
    at_ms = _number("at_ms", int, 0)
    return _send(_wait(_service().extract_frame(f.read(), at_ms, _ext(f, "mp4"))), "frame", "png")


@bp.post("/watermark")
def watermark():
    video = _upload("video").read()
    image = _upload("image")
    out = _service().watermark_full_size(video, image.read(), _ext(image, "png"))
    return _send(_wait(out), "watermarked", "mp4")


@bp.post("/replace-audio")
def replace_audio():
    video, audio = _upload("video"), _upload("audio")
    delay_ms = _number("delay_ms", int, 0)
    volume = _number("volume", float, 1.0)
    out = _service().replace_audio_into_video(video.stream, audio.stream, delay_ms, volume, _ext(audio, "mp3"))
    return _send(_wait(out), "replaced", "mp4")


@bp.post("/mixin-audio")
def mixin_audio():
    video, audio = _upload("video"), _upload("audio")
    delay_ms = _number("delay_ms", int, 0)
    volume = _number("volume", float, 1.0)
    out = _service().mixin_audio(video.stream, audio.stream, delay_ms, volume, _ext(audio, "mp3"))
    return _send(_wait(out), "mixed", "mp4")


@bp.post("/normalize")
def normalize():
    f = _upload("audio")
    ext = _ext(f, "mp3")
    out = _service().normalize_loudnorm(
        f.read(),
        integrated_target=_number("I", float, -16),
        loudness_range=_number("LRA", float, 11),
        true_peak=_number("TP", float, -1.5),
        extension=ext,
    )
    return _send(_wait(out), "normalized", ext)


@bp.app_errorhandler(ValueError)
def bad_request(e):
    return jsonify({"error": str(e)}), 400


@bp.app_errorhandler(MediaOpsError)
def media_error(e):
    body = {"error": str(e), "kind": type(e).__name__}
    if e.stage:
        body["stage"] = e.stage
    code = 504 if isinstance(e, TimeoutFailure) else 422
    return jsonify(body), code
