"""Run vmmap against a process and collect its report.

Output is read fully (up to a hard ceiling) before waiting on the child.
Waiting first could deadlock: vmmap blocks writing to a full pipe while we
block waiting for it to exit.
"""

import subprocess
from typing import Protocol

import structlog

log = structlog.get_logger()

DEFAULT_EXECUTABLE = "vmmap"
DEFAULT_MAX_OUTPUT_BYTES = 10 * 1024 * 1024  # 10 MiB


class CaptureError(Exception):
    """Base class for a failed capture."""


class CaptureSpawnError(CaptureError):
    """The sampling utility could not be started."""


class CaptureReadError(CaptureError):
    """Reading the utility's output failed."""


class CaptureExitError(CaptureError):
    """The utility exited with a non-zero status."""

    def __init__(self, returncode: int) -> None:
        super().__init__(f"vmmap exited with status {returncode}")
        self.returncode = returncode


class CaptureOutputTooLarge(CaptureError):
    """The utility produced more output than the configured ceiling."""

    def __init__(self, limit: int) -> None:
        super().__init__(f"vmmap output exceeded {limit} bytes")
        self.limit = limit


class Capturer(Protocol):
    """Anything that can produce raw vmmap text for a PID."""

    def capture(self, pid: int) -> str: ...


class VmmapCapture:
    """Spawns ``vmmap <pid>`` and returns its stdout as text."""

    def __init__(
        self,
        executable: str = DEFAULT_EXECUTABLE,
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
    ) -> None:
        """Initialize the capturer.

        Args:
            executable: Path or name of the vmmap binary
            max_output_bytes: Ceiling on stdout size; larger output is a failure
        """
        self.executable = executable
        self.max_output_bytes = max_output_bytes

    def capture(self, pid: int) -> str:
        """Run vmmap against ``pid`` and return its report.

        Raises:
            CaptureSpawnError: If the process could not be started
            CaptureReadError: If reading stdout failed
            CaptureOutputTooLarge: If stdout exceeded max_output_bytes
            CaptureExitError: If vmmap exited non-zero
        """
        try:
            process = subprocess.Popen(
                [self.executable, str(pid)],
                stdin=subprocess.DEVNULL,  # No tty interaction
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                start_new_session=True,  # Detach from controlling terminal
            )
        except OSError as e:
            raise CaptureSpawnError(f"Failed to run {self.executable}: {e}") from e

        assert process.stdout is not None
        try:
            try:
                # One extra byte tells "exactly at the limit" from "over it"
                output = process.stdout.read(self.max_output_bytes + 1)
            except OSError as e:
                raise CaptureReadError(f"Failed to read vmmap output: {e}") from e

            if len(output) > self.max_output_bytes:
                raise CaptureOutputTooLarge(self.max_output_bytes)

            returncode = process.wait()
        except CaptureError:
            process.kill()
            process.wait()
            raise
        finally:
            process.stdout.close()

        if returncode != 0:
            raise CaptureExitError(returncode)

        log.debug("vmmap_captured", pid=pid, bytes=len(output))
        return output.decode("utf-8", errors="replace")
