import io
import os
import shutil
import subprocess
import sys

import numpy as np
import soundfile as sf
import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from mediaforge import create_app
from mediaforge.models.specs import ToolConfig
from mediaforge.services.ffmpeg import FfmpegService
from mediaforge.services.runner import ToolOutput

HAVE_FFMPEG = shutil.which('ffmpeg') is not None and shutil.which('ffprobe') is not None


class FakeTool:
    """Stands in for ``ToolInvocation``; records argv and answers synchronously.

    ``responder(argv)`` returns ``("end", stdout, stderr)`` or
    ``("error", exception)``.  It may write to the output path itself to act
    like ffmpeg producing a file.
    """

    def __init__(self, responder=None):
        self.responder = responder or (lambda argv: ('end', '', ''))
        self.calls = []

    def __call__(self, argv, timeout=None):
        self.calls.append(list(argv))
        return _FakeInvocation(self, list(argv))


class _FakeInvocation:
    def __init__(self, tool, argv):
        self.tool = tool
        self.argv = argv
        self.handlers = {}

    def on(self, event, handler):
        self.handlers[event] = handler
        return self

    def run(self):
        reply = self.tool.responder(self.argv)
        if reply[0] == 'end':
            self.handlers['end'](ToolOutput(self.argv, reply[1], reply[2]))
        else:
            self.handlers['error'](reply[1])


@pytest.fixture
def tool_config(tmp_path):
    root = tmp_path / 'sessions'
    return ToolConfig.from_settings(temp_root=root, poll_interval_ms=20, poll_attempts=10)


@pytest.fixture
def fake_tool():
    return FakeTool()


@pytest.fixture
def fake_service(tool_config, fake_tool):
    return FfmpegService(tool_config, invocation_factory=fake_tool)


@pytest.fixture
def service(tool_config):
    if not HAVE_FFMPEG:
        pytest.skip('ffmpeg/ffprobe not installed')
    return FfmpegService(tool_config)


@pytest.fixture
def client(fake_service):
    app = create_app(service=fake_service)
    app.config['TESTING'] = True
    with app.test_client() as c:
        yield c


@pytest.fixture
def leftovers(tool_config):
    """Names of files still present under the session root."""
    def _list():
        root = tool_config.temp_root
        return sorted(p.name for p in root.iterdir()) if root.exists() else []
    return _list


@pytest.fixture
def sine_wav_bytes():
    sr = 48000
    t = np.linspace(0, 2.0, sr * 2, False)
    wave = 0.1 * np.sin(2 * np.pi * 440 * t)
    buf = io.BytesIO()
    sf.write(buf, wave, sr, subtype='PCM_16', format='WAV')
    return buf.getvalue()


def _lavfi_video(path, seconds):
    subprocess.run([
        'ffmpeg', '-hide_banner', '-nostdin', '-y',
        '-f', 'lavfi', '-i', f'testsrc=duration={seconds}:size=160x120:rate=25',
        '-f', 'lavfi', '-i', f'sine=frequency=440:duration={seconds}',
        '-c:v', 'libx264', '-pix_fmt', 'yuv420p', '-c:a', 'aac', '-shortest',
        str(path),
    ], check=True, capture_output=True)
    return path


@pytest.fixture
def video_file(tmp_path):
    if not HAVE_FFMPEG:
        pytest.skip('ffmpeg/ffprobe not installed')
    return _lavfi_video(tmp_path / 'clip.mp4', 10)


@pytest.fixture
def short_video_file(tmp_path):
    if not HAVE_FFMPEG:
        pytest.skip('ffmpeg/ffprobe not installed')
    return _lavfi_video(tmp_path / 'short.mp4', 2)


@pytest.fixture
def png_bytes(tmp_path):
    if not HAVE_FFMPEG:
        pytest.skip('ffmpeg/ffprobe not installed')
    path = tmp_path / 'mark.png'
    subprocess.run([
        'ffmpeg', '-hide_banner', '-nostdin', '-y',
        '-f', 'lavfi', '-i', 'color=c=red:size=32x32',
        '-frames:v', '1', str(path),
    ], check=True, capture_output=True)
    return path.read_bytes()
