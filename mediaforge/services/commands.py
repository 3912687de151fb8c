"""Argument lists for each media operation.

Pure functions: parameters in, argv (without the binary) out.  Nothing here
touches the filesystem or spawns processes.
"""

from typing import Mapping, Optional, Sequence

from ..models.specs import LoudnessMeasurement, LoudnormSpec

BASE = ["-hide_banner", "-nostdin", "-y"]


def _ms(value) -> str:
    return f"{int(value)}ms"


def _adjust(volume: float, delay_ms) -> str:
    delay = int(delay_ms)
    return f"volume={volume:.2f},adelay={delay}|{delay}"


def merge_args(paths: Sequence[str], output: str, audio: bool = True) -> list:
    """Concatenate every input's first video and audio stream in order.

    With ``audio`` on, every input must carry an audio stream or ffmpeg fails
    to link the graph.  Pass ``audio=False`` for video-only clips.
    """
    args = list(BASE)
    for p in paths:
        args += ["-i", str(p)]
    if audio:
        pads = "".join(f"[{i}:v:0][{i}:a:0]" for i in range(len(paths)))
        graph = f"{pads}concat=n={len(paths)}:v=1:a=1[outv][outa]"
        maps = ["-map", "[outv]", "-map", "[outa]"]
    else:
        pads = "".join(f"[{i}:v:0]" for i in range(len(paths)))
        graph = f"{pads}concat=n={len(paths)}:v=1:a=0[outv]"
        maps = ["-map", "[outv]"]
    args += ["-filter_complex", graph, *maps, str(output)]
    return args


def replace_audio_args(video: str, audio: str, output: str, delay_ms=0, volume: float = 1.0) -> list:
    return list(BASE) + [
        "-i", str(video),
        "-i", str(audio),
        "-filter_complex", f"[1:a]{_adjust(volume, delay_ms)}[voice]",
        "-map", "0:v",
        "-map", "[voice]",
        "-c:v", "copy",
        str(output),
    ]


def mixin_audio_args(video: str, audio: str, output: str, delay_ms=0, volume: float = 1.0) -> list:
    graph = ";".join([
        f"[1:a]{_adjust(volume, delay_ms)}[voice]",
        "[0:a][voice]amix=inputs=2:duration=longest[audio_out]",
    ])
    return list(BASE) + [
        "-i", str(video),
        "-i", str(audio),
        "-filter_complex", graph,
        "-map", "0:v",
        "-map", "[audio_out]",
        "-shortest",
        str(output),
    ]


def cut_args(source: str, output: str, start_ms: Optional[int] = None, end_ms: Optional[int] = None) -> list:
    """Seek ``source`` to ``start_ms`` and stop the output at ``end_ms``.

    ``-ss`` is an input option and ``-to`` an output option, so ``end_ms`` is
    a position on the output timeline, which starts at the seek point.
    """
    args = list(BASE)
    if start_ms is not None:
        args += ["-ss", _ms(start_ms)]
    args += ["-accurate_seek", "-i", str(source)]
    if end_ms is not None:
        args += ["-to", _ms(end_ms)]
    args += ["-map", "0", "-shortest", "-crf", "23", str(output)]
    return args


def probe_args(path: str) -> list:
    return ["-v", "error", "-print_format", "json", "-show_format", str(path)]


def extract_frame_args(source: str, output: str, at_ms) -> list:
    return list(BASE) + [
        "-ss", _ms(at_ms),
        "-accurate_seek",
        "-i", str(source),
        "-frames:v", "1",
        "-an",
        str(output),
    ]


def watermark_args(video: str, image: str, output: str) -> list:
    # scale2ref sizes the image against the video frame
    graph = "[1:v][0:v]scale2ref=w=iw:h=ih[wm][base];[base][wm]overlay=0:0:format=auto[outv]"
    return list(BASE) + [
        "-i", str(video),
        "-i", str(image),
        "-filter_complex", graph,
        "-map", "[outv]",
        "-map", "0:a?",
        "-c:a", "copy",
        str(output),
    ]


def loudnorm_filter(params: Mapping) -> str:
    return "loudnorm=" + ":".join(f"{k}={v}" for k, v in params.items())


def loudnorm_measure_args(source: str, spec: LoudnormSpec) -> list:
    params = {"I": spec.I, "TP": spec.TP, "LRA": spec.LRA, "print_format": "json"}
    return ["-hide_banner", "-nostdin", "-nostats", "-i", str(source),
            "-af", loudnorm_filter(params), "-f", "null", "-"]


def loudnorm_transform_args(source: str, output: str, spec: LoudnormSpec, m: LoudnessMeasurement) -> list:
    params = {
        "I": spec.I,
        "TP": spec.TP,
        "LRA": spec.LRA,
        "measured_I": m.input_i,
        "measured_TP": m.input_tp,
        "measured_LRA": m.input_lra,
        "measured_thresh": m.input_thresh,
        "offset": m.target_offset,
        "linear": "true",
        "print_format": "summary",
    }
    return list(BASE) + ["-nostats", "-i", str(source), "-af", loudnorm_filter(params), str(output)]
