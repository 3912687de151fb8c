"""Two-pass EBU R128 loudness normalisation.

Pass one runs ``loudnorm`` in analysis mode and parses the JSON block ffmpeg
prints on stderr.  Pass two feeds those readings back into ``loudnorm`` with
``linear=true`` and renders the output.  The stages run strictly in order:
the transform stage is only ever started with a measurement in hand.
"""

import json
import logging
import re
import threading
from concurrent.futures import Future

from ..errors import MediaOpsError, ParseFailure
from ..models.specs import LoudnessMeasurement, LoudnormSpec
from . import commands
from .runner import OneShot

logger = logging.getLogger(__name__)

LOUDNORM_MARKER = re.compile(r"\[Parsed_loudnorm_\d+ @ \w+\]")


def parse_loudnorm_output(text: str) -> LoudnessMeasurement:
    parts = LOUDNORM_MARKER.split(text or "")
    if len(parts) < 2:
        raise ParseFailure("loudnorm summary not found in ffmpeg output")
    tail = parts[-1]
    lb = tail.find("{")
    if lb == -1:
        raise ParseFailure("loudnorm summary has no JSON payload")
    try:
        payload, _ = json.JSONDecoder().raw_decode(tail[lb:])
    except ValueError as e:
        raise ParseFailure(f"loudnorm payload is not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise ParseFailure("loudnorm payload is not a JSON object")
    return LoudnessMeasurement.from_payload(payload)


class MeasureStage:
    name = "measure"

    def __init__(self, service, spec: LoudnormSpec, extension: str = "mp3") -> None:
        self.service = service
        self.spec = spec
        self.extension = extension

    def start(self, buffer: bytes) -> Future:
        source = self.service.session(self.extension)

        def prepare():
            source.write(buffer)
            return commands.loudnorm_measure_args(source.path, self.spec)

        return self.service.launch(self.service.config.ffmpeg_path, prepare, [source],
                                   lambda out: parse_loudnorm_output(out.stderr))


class TransformStage:
    name = "transform"

    def __init__(self, service, spec: LoudnormSpec, extension: str = "mp3") -> None:
        self.service = service
        self.spec = spec
        self.extension = extension

    def start(self, buffer: bytes, measurement: LoudnessMeasurement) -> Future:
        source = self.service.session(self.extension)
        output = self.service.session(self.extension)

        def prepare():
            source.write(buffer)
            return commands.loudnorm_transform_args(source.path, output.path, self.spec, measurement)

        return self.service.launch(self.service.config.ffmpeg_path, prepare, [source, output],
                                   lambda _: output.read())


class LoudnormPipeline:
    def __init__(self, service, spec: LoudnormSpec, extension: str = "mp3") -> None:
        self.spec = spec
        self.measure = MeasureStage(service, spec, extension)
        self.transform = TransformStage(service, spec, extension)

    def run(self, buffer: bytes) -> Future:
        one_shot = OneShot()
        t = threading.Thread(target=self._drive, args=(buffer, one_shot), name="loudnorm", daemon=True)
        t.start()
        return one_shot.future

    def _drive(self, buffer: bytes, one_shot: OneShot) -> None:
        try:
            measurement = self._await(self.measure, buffer)
            logger.debug("measured I=%s TP=%s LRA=%s", measurement.input_i, measurement.input_tp,
                         measurement.input_lra)
            if one_shot.abandoned:
                logger.debug("normalisation abandoned after measuring, skipping transform")
                return
            output = self._await(self.transform, buffer, measurement)
        except Exception as e:
            one_shot.reject(e)
        else:
            one_shot.resolve(output)

    @staticmethod
    def _await(stage, *args):
        try:
            return stage.start(*args).result()
        except MediaOpsError as e:
            if e.stage is None:
                e.stage = stage.name
            raise
