"""Single-flight ingest triggering and snapshot file watching.

The trigger guarantees at most one ingest cycle runs at a time. Change
notifications that arrive mid-cycle collapse into exactly one follow-up
cycle. The watcher polls the snapshot file signature and notifies the
trigger when it changes.
"""

from __future__ import annotations

from enum import Enum
import os
from pathlib import Path
import threading
from typing import Callable

from core.constants import DEFAULT_POLL_INTERVAL_SECONDS
from core.logging_config import get_logger

_LOGGER = get_logger(__name__)


class TriggerState(str, Enum):
    """Lifecycle state of the change trigger."""

    IDLE = "idle"
    PROCESSING = "processing"
    FAILED = "failed"


class ChangeTrigger:
    """Runs ingest cycles one at a time with a pending queue of depth one."""

    def __init__(self, run_cycle: Callable[[], object]) -> None:
        self._run_cycle = run_cycle
        self._condition = threading.Condition()
        self._state = TriggerState.IDLE
        self._pending = False
        self._cycles_run = 0
        self._failures = 0

    @property
    def state(self) -> TriggerState:
        with self._condition:
            return self._state

    @property
    def cycles_run(self) -> int:
        with self._condition:
            return self._cycles_run

    @property
    def failures(self) -> int:
        with self._condition:
            return self._failures

    def start(self) -> None:
        """Run the initial load synchronously."""
        _LOGGER.info("trigger_initial_load")
        self.notify()

    def notify(self) -> bool:
        """Signal that the snapshot changed.

        Runs the cycle in the calling thread when idle. When a cycle is
        already running, marks one follow-up cycle as pending instead.

        Returns:
            True if this call ran cycles, False if it was coalesced.
        """
        with self._condition:
            if self._state is not TriggerState.IDLE:
                self._pending = True
                return False
            self._state = TriggerState.PROCESSING
        while True:
            self._run_once()
            with self._condition:
                if not self._pending:
                    self._state = TriggerState.IDLE
                    self._condition.notify_all()
                    return True
                self._pending = False
                self._state = TriggerState.PROCESSING

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until no cycle is running or pending.

        Returns:
            True if the trigger became idle before the timeout.
        """
        with self._condition:
            return self._condition.wait_for(
                lambda: self._state is TriggerState.IDLE and not self._pending,
                timeout=timeout,
            )

    def _run_once(self) -> None:
        try:
            self._run_cycle()
        except Exception as error:  # logged; monitoring continues
            with self._condition:
                self._state = TriggerState.FAILED
                self._failures += 1
                self._cycles_run += 1
            _LOGGER.error(
                "trigger_cycle_failed",
                error_type=type(error).__name__,
                error=str(error),
                exc_info=True,
            )
            return
        with self._condition:
            self._cycles_run += 1


class SnapshotFileWatcher:
    """Polls a file's modification signature and reports changes."""

    def __init__(
        self,
        path: str | Path,
        on_change: Callable[[], object],
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
    ) -> None:
        self._path = Path(path).expanduser()
        self._on_change = on_change
        self._poll_interval = poll_interval
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._signature = self._read_signature()

    @property
    def path(self) -> Path:
        return self._path

    def start(self) -> None:
        """Start polling in a background thread."""
        if self._thread is not None:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._loop, name="meetvault-watcher", daemon=True
        )
        self._thread.start()
        _LOGGER.info(
            "watcher_started", path=str(self._path), poll_interval=self._poll_interval
        )

    def stop(self, timeout: float | None = None) -> None:
        """Stop polling and wait for the watcher thread to exit."""
        self._stop_event.set()
        if self._thread is None:
            return
        self._thread.join(timeout)
        self._thread = None
        _LOGGER.info("watcher_stopped", path=str(self._path))

    def poll(self) -> bool:
        """Check the file once.

        Returns:
            True if the file changed and ``on_change`` was called.
        """
        signature = self._read_signature()
        if signature == self._signature:
            return False
        previous = self._signature
        self._signature = signature
        if signature is None:
            _LOGGER.warning("snapshot_missing", path=str(self._path))
            return False
        if previous is None:
            _LOGGER.info("snapshot_appeared", path=str(self._path))
        self._on_change()
        return True

    def _loop(self) -> None:
        while not self._stop_event.wait(self._poll_interval):
            self.poll()

    def _read_signature(self) -> tuple[int, int] | None:
        try:
            stat = os.stat(self._path)
        except FileNotFoundError:
            return None
        return stat.st_mtime_ns, stat.st_size
