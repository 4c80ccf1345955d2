"""Unit tests for the invocation orchestrator."""

import base64
import io
import os
import stat

import pytest
from unittest.mock import MagicMock

from vaultcrypt.core.exceptions import (
    AuthenticationError,
    KeyDecodeError,
    PermissionDeniedError,
    SourceNotFoundError,
    StreamIOError,
    UnsupportedSchemeError,
)
from vaultcrypt.core.invocation import JobResult, StreamJob, execute
from vaultcrypt.security.pipeline import Mode
from vaultcrypt.security.resolver import default_resolver

KEY = os.urandom(32)
LOCATOR = "base64key://" + base64.b64encode(KEY).decode("ascii")


class NonClosingBytesIO(io.BytesIO):
    """Standard stream stand-in that records close() instead of closing."""

    def __init__(self, data=b""):
        super().__init__(data)
        self.close_calls = 0

    def close(self):
        self.close_calls += 1


class RecordingObserver:
    instances = []

    def __init__(self):
        self.totals = []
        self.started = False
        self.stopped = False
        RecordingObserver.instances.append(self)

    def __enter__(self):
        self.started = True
        return self

    def __exit__(self, *exc):
        self.stopped = True

    def on_bytes_written(self, total):
        self.totals.append(total)


@pytest.fixture(autouse=True)
def reset_observers():
    RecordingObserver.instances = []
    yield


@pytest.fixture
def plain_file(tmp_path):
    path = tmp_path / "plain.bin"
    path.write_bytes(os.urandom(100_000))
    return path


def _run(mode, src, dst, locator=LOCATOR, **kwargs):
    kwargs.setdefault("resolver", default_resolver())
    kwargs.setdefault("observer_factory", RecordingObserver)
    return execute(mode, locator, str(src), str(dst), **kwargs)


def test_file_roundtrip(tmp_path, plain_file):
    enc = tmp_path / "plain.enc"
    dec = tmp_path / "plain.dec"

    result = _run(Mode.ENCRYPT, plain_file, enc)
    assert isinstance(result, JobResult)
    assert result.bytes_written == enc.stat().st_size

    _run(Mode.DECRYPT, enc, dec)
    assert dec.read_bytes() == plain_file.read_bytes()


def test_progress_attached_for_file_sink(tmp_path, plain_file):
    _run(Mode.ENCRYPT, plain_file, tmp_path / "out.enc")

    assert len(RecordingObserver.instances) == 1
    obs = RecordingObserver.instances[0]
    assert obs.started and obs.stopped
    assert obs.totals[-1] == (tmp_path / "out.enc").stat().st_size


def test_progress_can_be_disabled(tmp_path, plain_file):
    _run(Mode.ENCRYPT, plain_file, tmp_path / "out.enc", show_progress=False)
    assert RecordingObserver.instances == []


def test_stdin_stdout_roundtrip():
    data = b"piped data" * 1000
    stdin = NonClosingBytesIO(data)
    stdout = NonClosingBytesIO()
    _run(Mode.ENCRYPT, "-", "-", stdin=stdin, stdout=stdout)

    # no progress when writing to stdout
    assert RecordingObserver.instances == []
    # standard streams are never closed
    assert stdin.close_calls == 0 and stdout.close_calls == 0

    plain = NonClosingBytesIO()
    _run(Mode.DECRYPT, "-", "-", stdin=NonClosingBytesIO(stdout.getvalue()), stdout=plain)
    assert plain.getvalue() == data


def test_file_to_stdout_has_no_progress(plain_file):
    stdout = NonClosingBytesIO()
    _run(Mode.ENCRYPT, plain_file, "-", stdout=stdout)
    assert RecordingObserver.instances == []
    assert stdout.getvalue()


def test_output_inherits_source_mode(tmp_path, plain_file):
    os.chmod(plain_file, 0o600)
    out = tmp_path / "out.enc"
    _run(Mode.ENCRYPT, plain_file, out)
    assert stat.S_IMODE(out.stat().st_mode) == 0o600


def test_output_default_mode_without_preserve(tmp_path, plain_file):
    os.chmod(plain_file, 0o600)
    out = tmp_path / "out.enc"
    old_umask = os.umask(0)
    try:
        _run(Mode.ENCRYPT, plain_file, out, preserve_mode=False)
    finally:
        os.umask(old_umask)
    assert stat.S_IMODE(out.stat().st_mode) == 0o644


def test_existing_output_is_truncated(tmp_path, plain_file):
    out = tmp_path / "out.bin"
    out.write_bytes(b"x" * 500_000)
    result = _run(Mode.ENCRYPT, plain_file, out)
    assert out.stat().st_size == result.bytes_written


def test_same_input_and_output_is_rejected(plain_file):
    before = plain_file.read_bytes()
    with pytest.raises(StreamIOError, match="same file"):
        _run(Mode.ENCRYPT, plain_file, plain_file)
    assert plain_file.read_bytes() == before


def test_hard_link_to_input_is_rejected(tmp_path, plain_file):
    link = tmp_path / "link.bin"
    os.link(plain_file, link)
    before = plain_file.read_bytes()
    with pytest.raises(StreamIOError, match="same file"):
        _run(Mode.ENCRYPT, plain_file, link)
    assert plain_file.read_bytes() == before
    assert RecordingObserver.instances == []


class BrokenStdout(NonClosingBytesIO):
    """stdout whose reader went away: every write and flush fails."""

    def write(self, data):
        raise BrokenPipeError(32, "Broken pipe")

    def flush(self):
        raise BrokenPipeError(32, "Broken pipe")


class FailingFinalFlush(NonClosingBytesIO):
    """Accepts the output but fails on the flush after the pipeline is done."""

    def __init__(self):
        super().__init__()
        self.flush_calls = 0

    def flush(self):
        self.flush_calls += 1
        if self.flush_calls > 1:
            raise BrokenPipeError(32, "Broken pipe")


def test_broken_stdout_keeps_write_error(plain_file):
    with pytest.raises(StreamIOError, match="I/O error during encrypt"):
        _run(Mode.ENCRYPT, plain_file, "-", stdout=BrokenStdout())


def test_failed_final_flush_is_stream_error(plain_file):
    stdout = FailingFinalFlush()
    with pytest.raises(StreamIOError, match="flush standard output"):
        _run(Mode.ENCRYPT, plain_file, "-", stdout=stdout)
    assert stdout.flush_calls == 2


def test_missing_source(tmp_path):
    with pytest.raises(SourceNotFoundError):
        _run(Mode.ENCRYPT, tmp_path / "nope", tmp_path / "out")
    assert not (tmp_path / "out").exists()


@pytest.mark.skipif(hasattr(os, "geteuid") and os.geteuid() == 0, reason="root ignores file modes")
def test_unreadable_source(tmp_path, plain_file):
    os.chmod(plain_file, 0)
    with pytest.raises(PermissionDeniedError):
        _run(Mode.ENCRYPT, plain_file, tmp_path / "out")


def test_source_directory(tmp_path):
    with pytest.raises(StreamIOError):
        _run(Mode.ENCRYPT, tmp_path, tmp_path / "out")


def test_sink_in_missing_directory(tmp_path, plain_file):
    with pytest.raises(SourceNotFoundError):
        _run(Mode.ENCRYPT, plain_file, tmp_path / "missing" / "out")


def test_key_resolved_before_files_are_touched(tmp_path, plain_file):
    out = tmp_path / "out"
    with pytest.raises(UnsupportedSchemeError):
        _run(Mode.ENCRYPT, plain_file, out, locator="foo://bar")
    with pytest.raises(KeyDecodeError):
        _run(Mode.ENCRYPT, plain_file, out, locator="base64key://not-valid-base64!!")
    assert not out.exists()


def test_wrong_key_leaves_handles_closed(tmp_path, plain_file, monkeypatch):
    enc = tmp_path / "plain.enc"
    _run(Mode.ENCRYPT, plain_file, enc)

    opened = []
    real_open = open

    def tracking_open(*args, **kwargs):
        handle = real_open(*args, **kwargs)
        opened.append(handle)
        return handle

    monkeypatch.setattr("builtins.open", tracking_open)
    other = "base64key://" + base64.b64encode(b"another key").decode("ascii")
    with pytest.raises(AuthenticationError):
        _run(Mode.DECRYPT, enc, tmp_path / "plain.dec", locator=other)

    assert opened and all(h.closed for h in opened)
    # the observer is stopped even on failure
    assert RecordingObserver.instances[-1].stopped


def test_uses_given_resolver(tmp_path, plain_file):
    resolver = MagicMock()
    resolver.resolve.return_value = KEY
    _run(Mode.ENCRYPT, plain_file, tmp_path / "out", locator="hashivault://app", resolver=resolver)
    locator = resolver.resolve.call_args[0][0]
    assert locator.scheme == "hashivault"
    assert locator.identifier == "app"


def test_stream_job_repr_hides_key():
    job = StreamJob(mode=Mode.ENCRYPT, source=io.BytesIO(), sink=io.BytesIO(), key=b"topsecret")
    assert "topsecret" not in repr(job)
    assert "9 bytes" in repr(job)
