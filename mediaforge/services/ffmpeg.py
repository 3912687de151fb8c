"""Operation orchestrator.

Each public method maps one logical media operation onto an ffmpeg/ffprobe
invocation and returns a ``concurrent.futures.Future``.  Failures (tool
errors, file I/O, unparsable output) reject the future; nothing is raised at
call time.  Every session an operation creates is deleted before its future
settles, on success and on failure alike.
"""

import json
import logging
import os
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Callable, List, Optional, Sequence

from ..errors import MediaOpsError, ParseFailure
from ..models.specs import LoudnormSpec, RenderResult, ToolConfig
from ..utils.fs import is_stream
from . import commands
from .file_session import FileSession, cleanup
from .loudness import LoudnormPipeline, MeasureStage
from .runner import OneShot, ToolInvocation, ToolOutput

logger = logging.getLogger(__name__)


def parse_probe_duration(stdout: str) -> int:
    """Return the container duration reported by ``ffprobe -show_format`` in ms."""
    try:
        data = json.loads(stdout or "")
    except ValueError as e:
        raise ParseFailure(f"ffprobe output is not JSON: {e}") from e
    if not isinstance(data, dict):
        raise ParseFailure("ffprobe output is not a JSON object")
    duration = (data.get("format") or {}).get("duration")
    if duration in (None, "", "N/A"):
        return 0
    try:
        return int(float(duration) * 1000)
    except (TypeError, ValueError):
        raise ParseFailure(f"ffprobe duration {duration!r} is not numeric") from None


class FfmpegService:
    def __init__(self, config: Optional[ToolConfig] = None, invocation_factory: Callable = ToolInvocation) -> None:
        self.config = config or ToolConfig.from_settings()
        self.invocation_factory = invocation_factory

    # -- plumbing ---------------------------------------------------------

    def session(self, extension: str) -> FileSession:
        return FileSession(extension, root=self.config.temp_root)

    def launch(
        self,
        binary: str,
        prepare: Callable[[], List[str]],
        sessions: List[FileSession],
        collect: Callable[[ToolOutput], object],
    ) -> Future:
        """Run one tool invocation and settle a future from its outcome.

        ``prepare`` writes inputs and returns the argv tail; ``collect`` turns
        the finished invocation into the operation's result.  ``sessions`` is
        read at settle time so ``prepare`` may still append to it.
        """
        one_shot = OneShot()
        try:
            argv = [binary, *prepare()]
        except Exception as e:
            self._settle(one_shot, sessions, exc=e)
            return one_shot.future

        invocation = self.invocation_factory(argv, timeout=self.config.tool_timeout_s)
        invocation.on("end", lambda output: self._settle(one_shot, sessions, produce=lambda: collect(output)))
        invocation.on("error", lambda exc: self._settle(one_shot, sessions, exc=exc))
        invocation.run()
        return one_shot.future

    def _settle(self, one_shot: OneShot, sessions, produce=None, exc=None) -> None:
        value = None
        if produce is not None and exc is None:
            try:
                value = produce()
            except Exception as e:
                exc = e
        cleanup(*sessions)
        if exc is not None:
            logger.info("operation failed: %s", exc)
            one_shot.reject(exc)
        else:
            one_shot.resolve(value)

    def _materialize(self, source, extension: str, sessions: List[FileSession]) -> str:
        """Return a path for ``source``, draining live streams to a session first."""
        if is_stream(source):
            s = self.session(extension)
            sessions.append(s)
            s.write_stream(source)
            return str(s.path)
        return os.fspath(source)

    def _read_stable(self, session: FileSession) -> bytes:
        return session.wait_for_stable_read(self.config.poll_attempts, self.config.poll_interval_ms)

    # -- operations -------------------------------------------------------

    def merge(self, paths: Sequence[str], audio: bool = True) -> Future:
        """Concatenate ``paths`` in order; resolves to a ``RenderResult``.

        Set ``audio=False`` when the inputs have no audio stream.
        """
        inputs = [os.fspath(p) for p in paths]
        output = self.session("mp4")

        def prepare():
            if not inputs:
                raise ValueError("merge needs at least one input")
            return commands.merge_args(inputs, output.path, audio)

        def collect(_):
            buffer = output.read()
            duration_ms = self.get_duration_from_buffer(buffer).result()
            return RenderResult(buffer=buffer, duration_ms=duration_ms)

        return self.launch(self.config.ffmpeg_path, prepare, [output], collect)

    def replace_audio_into_video(self, video, audio, delay_ms: int = 0, volume: float = 1.0,
                                 audio_extension: str = "mp3") -> Future:
        output = self.session("mp4")
        sessions = [output]

        def prepare():
            video_path = self._materialize(video, "mp4", sessions)
            audio_path = self._materialize(audio, audio_extension, sessions)
            return commands.replace_audio_args(video_path, audio_path, output.path, delay_ms, volume)

        return self.launch(self.config.ffmpeg_path, prepare, sessions, lambda _: output.read())

    def mixin_audio(self, video_with_audio, audio, delay_ms: int = 0, volume: float = 1.0,
                    audio_extension: str = "mp3") -> Future:
        output = self.session("mp4")
        sessions = [output]

        def prepare():
            video_path = self._materialize(video_with_audio, "mp4", sessions)
            audio_path = self._materialize(audio, audio_extension, sessions)
            return commands.mixin_audio_args(video_path, audio_path, output.path, delay_ms, volume)

        return self.launch(self.config.ffmpeg_path, prepare, sessions, lambda _: output.read())

    def cut(self, buffer: bytes, start_ms: Optional[int] = None, end_ms: Optional[int] = None) -> Future:
        source = self.session("mp4")
        output = self.session("mp4")

        def prepare():
            if start_ms is not None and start_ms < 0:
                raise ValueError("start_ms must not be negative")
            source.write(buffer)
            return commands.cut_args(source.path, output.path, start_ms, end_ms)

        return self.launch(self.config.ffmpeg_path, prepare, [source, output],
                           lambda _: self._read_stable(output))

    def get_duration_from_buffer(self, buffer: bytes, extension: str = "mp4") -> Future:
        """Probe ``buffer`` and resolve to its duration in whole milliseconds."""
        source = self.session(extension)

        def prepare():
            source.write(buffer)
            return commands.probe_args(source.path)

        return self.launch(self.config.ffprobe_path, prepare, [source],
                           lambda out: parse_probe_duration(out.stdout))

    def extract_frame(self, buffer: bytes, at_ms: int, extension: str = "mp4",
                      image_extension: str = "png") -> Future:
        source = self.session(extension)
        output = self.session(image_extension)

        def prepare():
            source.write(buffer)
            return commands.extract_frame_args(source.path, output.path, at_ms)

        return self.launch(self.config.ffmpeg_path, prepare, [source, output], lambda _: output.read())

    def watermark_full_size(self, video_buffer: bytes, image_buffer: bytes,
                            image_extension: str = "png") -> Future:
        video = self.session("mp4")
        image = self.session(image_extension)
        output = self.session("mp4")

        def prepare():
            video.write(video_buffer)
            image.write(image_buffer)
            return commands.watermark_args(video.path, image.path, output.path)

        return self.launch(self.config.ffmpeg_path, prepare, [video, image, output], lambda _: output.read())

    def measure_loudness(self, buffer: bytes, spec: Optional[LoudnormSpec] = None,
                         extension: str = "mp3") -> Future:
        return MeasureStage(self, spec or LoudnormSpec(), extension).start(buffer)

    def normalize_loudnorm(self, buffer: bytes, integrated_target: float = -16,
                           loudness_range: float = 11, true_peak: float = -1.5,
                           extension: str = "mp3") -> Future:
        spec = LoudnormSpec(I=integrated_target, TP=true_peak, LRA=loudness_range)
        return LoudnormPipeline(self, spec, extension).run(buffer)

    def tool_versions(self, timeout: float = 10) -> dict:
        """First line of ``-version`` for both tools, ``None`` when unavailable."""
        versions = {}
        for name, binary in (("ffmpeg", self.config.ffmpeg_path), ("ffprobe", self.config.ffprobe_path)):
            fut = self.launch(binary, lambda: ["-version"], [],
                              lambda out: (out.stdout.splitlines() or [None])[0])
            try:
                versions[name] = fut.result(timeout=timeout)
            except (MediaOpsError, FutureTimeout):
                versions[name] = None
        return versions


__all__ = ["FfmpegService", "parse_probe_duration"]
