"""Periodic vmmap sampling on a background thread.

One Collector watches one process. start() spawns a single sampling thread
that captures, parses and delivers a Snapshot every interval_ms until stop()
is called. stop() joins the thread, so once it returns nothing is in flight
and no further deliveries happen.

Snapshots are frozen, so delivery hands the same object to the consumer with
no locking. The stop event is the only state the two threads share, apart
from the retained history, which carries its own lock.
"""

import threading
import time
from collections.abc import Callable
from enum import Enum

import structlog

from vmmap_collector.capture import CaptureError, Capturer, VmmapCapture
from vmmap_collector.config import Config
from vmmap_collector.history import SnapshotHistory
from vmmap_collector.parser import parse_vmmap
from vmmap_collector.regions import Snapshot

log = structlog.get_logger()

SnapshotCallback = Callable[[Snapshot], None]


class CollectorState(Enum):
    """Lifecycle states."""

    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"
    DESTROYED = "destroyed"


class CollectorError(Exception):
    """Base class for collector lifecycle failures."""


class CollectorCreateError(CollectorError):
    """The collector could not be constructed."""


class CollectorStartError(CollectorError):
    """The sampling thread could not be started."""


def _epoch_ms() -> int:
    """Current wall-clock time in milliseconds since the Unix epoch."""
    return time.time_ns() // 1_000_000


class Collector:
    """Samples a process's memory map at a fixed interval.

    Lifecycle: idle -> running -> stopping -> idle, and destroyed once
    destroy() is called. Capture, parse and delivery failures inside the loop
    are logged and the loop carries on with the next interval.
    """

    def __init__(
        self,
        pid: int,
        interval_ms: int,
        on_snapshot: SnapshotCallback | None = None,
        *,
        capturer: Capturer | None = None,
        history: SnapshotHistory | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        """Create an idle collector. No thread is started.

        Args:
            pid: Target process ID
            interval_ms: Delay between the end of one capture and the next
            on_snapshot: Called on the sampling thread with each new Snapshot.
                Any one-argument callable works, including Queue.put.
            capturer: Source of raw vmmap text (defaults to running vmmap)
            history: Retained snapshots for pull access (defaults to unbounded)
            clock: Millisecond wall clock, replaceable in tests

        Raises:
            CollectorCreateError: If pid or interval_ms is invalid.
        """
        if pid <= 0:
            raise CollectorCreateError(f"pid must be positive, got {pid}")
        if interval_ms < 1:
            raise CollectorCreateError(f"interval_ms must be >= 1, got {interval_ms}")

        self._pid = pid
        self._interval_ms = interval_ms
        self._on_snapshot = on_snapshot
        self._capturer = capturer if capturer is not None else VmmapCapture()
        self._history = history if history is not None else SnapshotHistory()
        self._clock = clock or _epoch_ms

        # Guards _state and _thread
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._state = CollectorState.IDLE
        self._thread: threading.Thread | None = None

        # Only touched by the sampling thread while running
        self._last_timestamp_ms = 0
        self._failure_count = 0
        self._last_error: str | None = None

    def __enter__(self) -> "Collector":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.destroy()

    @property
    def pid(self) -> int:
        """Target process ID."""
        return self._pid

    @property
    def interval_ms(self) -> int:
        """Milliseconds between captures."""
        return self._interval_ms

    @property
    def state(self) -> CollectorState:
        """Current lifecycle state."""
        with self._lock:
            return self._state

    @property
    def is_running(self) -> bool:
        """True while the sampling thread is active."""
        return self.state is CollectorState.RUNNING

    @property
    def snapshot_count(self) -> int:
        """Number of retained snapshots. For diagnostics."""
        return len(self._history)

    @property
    def failure_count(self) -> int:
        """Number of cycles that produced no snapshot."""
        return self._failure_count

    @property
    def last_error(self) -> str | None:
        """Message from the most recent failed cycle."""
        return self._last_error

    def snapshots(self) -> list[Snapshot]:
        """Copy of the retained snapshots, oldest first."""
        return self._history.snapshots

    def snapshots_json(self) -> str:
        """Retained snapshots as a JSON array."""
        return self._history.to_json()

    def start(self) -> None:
        """Start the sampling thread.

        Does nothing if already running.

        Raises:
            CollectorStartError: If the collector was destroyed, is still
                stopping, or the thread could not be spawned.
        """
        with self._lock:
            if self._state is CollectorState.RUNNING:
                return
            if self._state is CollectorState.DESTROYED:
                raise CollectorStartError("Collector has been destroyed")
            if self._state is CollectorState.STOPPING:
                raise CollectorStartError("Collector is still stopping")

            self._stop_event.clear()
            thread = threading.Thread(
                target=self._run,
                daemon=True,
                name=f"vmmap-collector-{self._pid}",
            )
            self._thread = thread
            self._state = CollectorState.RUNNING
            try:
                thread.start()
            except RuntimeError as e:
                self._thread = None
                self._state = CollectorState.IDLE
                raise CollectorStartError(f"Failed to spawn sampling thread: {e}") from e

        log.info("collector_started", pid=self._pid, interval_ms=self._interval_ms)

    def stop(self) -> None:
        """Stop sampling and wait for the sampling thread to exit.

        Blocks until the current cycle, if any, has finished. Safe to call
        when already stopped, and from several threads at once: every caller
        waits for the same thread. When called from on_snapshot the loop is
        told to exit but the call does not wait for itself.
        """
        with self._lock:
            if self._state is CollectorState.RUNNING:
                self._state = CollectorState.STOPPING
                self._stop_event.set()
            elif self._state is not CollectorState.STOPPING:
                return
            thread = self._thread

        if thread is None or thread is threading.current_thread():
            return

        thread.join()
        with self._lock:
            if self._thread is thread:
                self._thread = None
                self._state = CollectorState.IDLE

        log.info("collector_stopped", pid=self._pid, snapshots=len(self._history))

    def destroy(self) -> None:
        """Stop sampling and release retained snapshots.

        Waits for the sampling thread like stop(), so history is only cleared
        once nothing can still push to it. Idempotent. The collector cannot
        be restarted afterwards.
        """
        if self.state is CollectorState.DESTROYED:
            return
        self.stop()
        with self._lock:
            if self._state is CollectorState.DESTROYED:
                return
            self._state = CollectorState.DESTROYED
        self._history.clear()
        log.debug("collector_destroyed", pid=self._pid)

    def _run(self) -> None:
        """Sampling loop. Runs on the background thread until stop()."""
        log.debug("collection_loop_started", pid=self._pid)
        try:
            while not self._stop_event.is_set():
                try:
                    self._capture_cycle()
                except Exception as e:
                    self._failure_count += 1
                    self._last_error = str(e)
                    log.exception("cycle_failed", pid=self._pid)
                self._stop_event.wait(self._interval_ms / 1000)
        finally:
            with self._lock:
                # Stopped from inside on_snapshot: nobody joins, so reset here
                if self._thread is threading.current_thread():
                    self._thread = None
                    if self._state is CollectorState.STOPPING:
                        self._state = CollectorState.IDLE
            log.debug("collection_loop_exited", pid=self._pid)

    def _next_timestamp(self) -> int:
        """Capture time in ms, never earlier than the previous one."""
        timestamp = max(self._clock(), self._last_timestamp_ms)
        self._last_timestamp_ms = timestamp
        return timestamp

    def _capture_cycle(self) -> Snapshot | None:
        """Capture, parse, retain and deliver one snapshot.

        Returns:
            The snapshot, or None if the capture failed.
        """
        timestamp = self._next_timestamp()
        try:
            text = self._capturer.capture(self._pid)
        except CaptureError as e:
            self._failure_count += 1
            self._last_error = str(e)
            log.warning(
                "capture_failed",
                pid=self._pid,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        snapshot = Snapshot(timestamp_ms=timestamp, regions=tuple(parse_vmmap(text)))
        self._history.push(snapshot)
        log.debug("snapshot_captured", pid=self._pid, regions=len(snapshot.regions))

        if self._on_snapshot is not None:
            try:
                self._on_snapshot(snapshot)
            except Exception:
                log.exception("delivery_failed", pid=self._pid, timestamp_ms=timestamp)

        return snapshot


def create_collector(
    pid: int,
    on_snapshot: SnapshotCallback | None = None,
    *,
    interval_ms: int | None = None,
    config: Config | None = None,
) -> Collector:
    """Build a Collector wired to vmmap using configured paths and limits.

    Args:
        pid: Target process ID
        on_snapshot: Delivery callback for each new Snapshot
        interval_ms: Overrides config.collector.interval_ms when given
        config: Application config (defaults to Config())

    Raises:
        CollectorCreateError: If pid or interval_ms is invalid.
    """
    config = config or Config()
    settings = config.collector
    return Collector(
        pid,
        interval_ms if interval_ms is not None else settings.interval_ms,
        on_snapshot,
        capturer=VmmapCapture(settings.vmmap_path, settings.max_output_bytes),
        history=SnapshotHistory(settings.history_size),
    )
