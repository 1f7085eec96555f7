"""Tests for running vmmap and collecting its output."""

from pathlib import Path

import pytest

from vmmap_collector.capture import (
    DEFAULT_EXECUTABLE,
    DEFAULT_MAX_OUTPUT_BYTES,
    CaptureError,
    CaptureExitError,
    CaptureOutputTooLarge,
    CaptureSpawnError,
    VmmapCapture,
)
from vmmap_collector.parser import parse_vmmap


def test_defaults():
    """VmmapCapture runs vmmap from PATH with a 10 MiB ceiling."""
    capture = VmmapCapture()
    assert capture.executable == DEFAULT_EXECUTABLE == "vmmap"
    assert capture.max_output_bytes == DEFAULT_MAX_OUTPUT_BYTES == 10 * 1024 * 1024


def test_capture_returns_stdout(fake_vmmap):
    """Stdout of a successful run is returned as text."""
    script = fake_vmmap('echo "__DATA  1000-2000  [ 4K 4K 4K 0K] rw-/rw- SM=COW /bin/app"')

    text = VmmapCapture(str(script)).capture(4321)

    regions = parse_vmmap(text)
    assert len(regions) == 1
    assert regions[0].detail == "/bin/app"


def test_capture_passes_pid_argument(fake_vmmap):
    """The PID is the only argument."""
    script = fake_vmmap('echo "argc=$# pid=$1"')

    text = VmmapCapture(str(script)).capture(4321)

    assert text.strip() == "argc=1 pid=4321"


def test_capture_ignores_stderr(fake_vmmap):
    """Diagnostics on stderr are not part of the report."""
    script = fake_vmmap('echo "warning: something" >&2\necho "report"')

    text = VmmapCapture(str(script)).capture(1)

    assert text.strip() == "report"


def test_capture_nonzero_exit(fake_vmmap):
    """A non-zero exit is a failure carrying the status."""
    script = fake_vmmap('echo "partial output"\nexit 3')

    with pytest.raises(CaptureExitError) as exc_info:
        VmmapCapture(str(script)).capture(1)

    assert exc_info.value.returncode == 3
    assert "status 3" in str(exc_info.value)


def test_capture_missing_executable(tmp_path: Path):
    """A binary that cannot be spawned raises CaptureSpawnError."""
    capture = VmmapCapture(str(tmp_path / "does-not-exist"))

    with pytest.raises(CaptureSpawnError):
        capture.capture(1)


def test_capture_output_too_large(fake_vmmap):
    """Output past the ceiling is rejected and the child is reaped."""
    script = fake_vmmap("head -c 5000 /dev/zero")

    with pytest.raises(CaptureOutputTooLarge) as exc_info:
        VmmapCapture(str(script), max_output_bytes=100).capture(1)

    assert exc_info.value.limit == 100


def test_capture_output_exactly_at_limit(fake_vmmap):
    """Output of exactly max_output_bytes is accepted."""
    script = fake_vmmap("printf '0123456789'")

    text = VmmapCapture(str(script), max_output_bytes=10).capture(1)

    assert text == "0123456789"


def test_capture_invalid_utf8_is_replaced(fake_vmmap):
    """Undecodable bytes do not fail the capture."""
    script = fake_vmmap("printf 'ok \\377\\n'")

    text = VmmapCapture(str(script)).capture(1)

    assert text.startswith("ok ")
    assert "�" in text


def test_capture_errors_share_base_class():
    """Callers can catch every capture failure with one clause."""
    for exc_type in (CaptureSpawnError, CaptureExitError, CaptureOutputTooLarge):
        assert issubclass(exc_type, CaptureError)
