import threading
import time

import pytest

from mediaforge.errors import IOFailure, TimeoutFailure
from mediaforge.services.file_session import FileSession, cleanup


def test_path_derived_from_id_and_extension(tmp_path):
    s = FileSession('mp4', 'abc123', root=tmp_path)
    assert s.path == tmp_path / 'abc123.mp4'
    assert not s.exists()


def test_leading_dot_in_extension_is_ignored(tmp_path):
    s = FileSession('.wav', 'x', root=tmp_path)
    assert s.path.name == 'x.wav'


def test_generated_paths_are_unique(tmp_path):
    paths = {FileSession('mp4', root=tmp_path).path for _ in range(500)}
    assert len(paths) == 500


def test_unique_across_threads(tmp_path):
    seen = []
    lock = threading.Lock()

    def make():
        for _ in range(100):
            p = FileSession('mp4', root=tmp_path).path
            with lock:
                seen.append(p)

    threads = [threading.Thread(target=make) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(set(seen)) == len(seen) == 800


def test_write_then_read(tmp_path):
    s = FileSession('bin', root=tmp_path)
    s.write(b'hello')
    assert s.read() == b'hello'
    s.write(b'x')
    assert s.read() == b'x'
    assert not s.path.with_name(s.path.name + '.part').exists()


def test_write_stream_drains(tmp_path):
    import io
    s = FileSession('bin', root=tmp_path)
    s.write_stream(io.BytesIO(b'a' * 10000))
    assert s.read() == b'a' * 10000


def test_write_creates_root(tmp_path):
    s = FileSession('bin', root=tmp_path / 'nested' / 'dir')
    s.write(b'1')
    assert s.exists()


def test_read_missing_raises_io_failure(tmp_path):
    with pytest.raises(IOFailure):
        FileSession('mp4', root=tmp_path).read()


def test_delete_is_idempotent(tmp_path):
    s = FileSession('mp4', root=tmp_path)
    s.delete()
    s.write(b'data')
    s.delete()
    s.delete()
    assert not s.exists()


def test_cleanup_skips_none_and_logs_failures(tmp_path, monkeypatch, caplog):
    good = FileSession('a', root=tmp_path)
    good.write(b'1')
    bad = FileSession('b', root=tmp_path)

    def boom():
        raise IOFailure('nope')

    monkeypatch.setattr(bad, 'delete', boom)
    cleanup(None, bad, good)
    assert not good.exists()
    assert 'session cleanup failed' in caplog.text


def test_wait_for_stable_read_returns_existing_file(tmp_path):
    s = FileSession('bin', root=tmp_path)
    s.write(b'done')
    assert s.wait_for_stable_read(max_attempts=5, poll_interval_ms=10) == b'done'


def test_wait_for_stable_read_waits_for_growth_to_stop(tmp_path):
    s = FileSession('bin', root=tmp_path)
    chunks = [b'x' * 1000] * 10

    def producer():
        time.sleep(0.05)
        with open(s.path, 'wb') as fh:
            for c in chunks:
                fh.write(c)
                fh.flush()
                time.sleep(0.01)

    t = threading.Thread(target=producer)
    t.start()
    data = s.wait_for_stable_read(max_attempts=40, poll_interval_ms=100)
    t.join()
    assert len(data) == 10000


def test_wait_for_stable_read_times_out_when_file_never_appears(tmp_path):
    s = FileSession('bin', root=tmp_path)
    started = time.monotonic()
    with pytest.raises(TimeoutFailure):
        s.wait_for_stable_read(max_attempts=5, poll_interval_ms=10)
    assert time.monotonic() - started < 2


def test_default_root_is_resolved_on_first_use(tmp_path, monkeypatch):
    from mediaforge.services import file_session

    resolved = []

    def fake_root():
        resolved.append(tmp_path)
        return tmp_path

    monkeypatch.setattr(file_session, 'resolve_temp_root', fake_root)
    s = FileSession('mp4', 'lazy')
    assert resolved == []
    s.write(b'data')
    assert resolved == [tmp_path]
    assert (tmp_path / 'lazy.mp4').read_bytes() == b'data'
