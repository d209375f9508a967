"""Per-path monitoring engine and the set that owns all watched paths."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, List, Optional

from .actions import ActionRunner, RunStatus
from .config import WatchConfig
from .debounce import Clock, DebounceGate
from .events import ChangeNotification, ErrorNotification, Notification
from .watch import WatchSource, WatchUnavailable

logger = logging.getLogger(__name__)

DEFAULT_TICK_INTERVAL = 1.0


class MonitorState(str, Enum):
    """Observable state of a single path."""

    IDLE = "idle"
    DIRTY = "dirty"
    ELIGIBLE = "eligible"
    RUNNING = "running"
    CANCELLED = "cancelled"


class DuplicateIDError(ValueError):
    """Raised when a path identifier is registered twice."""


@dataclass
class PathStats:
    """Counters emitted by a path monitor for observability."""

    notifications: int = 0
    errors: int = 0
    runs: int = 0
    failures: int = 0


class PathMonitor:
    """Watches one directory and runs its action once changes settle.

    ``start()`` occupies the calling thread: it ticks every ``tick_interval``
    seconds and runs the action inline, so a path never evaluates new work
    while its action is executing. Notifications arrive on the watch source's
    own thread and only set the dirty flag.
    """

    def __init__(
        self,
        config: WatchConfig,
        *,
        runner: Optional[ActionRunner] = None,
        source: Optional[WatchSource] = None,
        clock: Clock = time.monotonic,
        tick_interval: float = DEFAULT_TICK_INTERVAL,
        cancel_event: Optional[threading.Event] = None,
    ):
        self._config = config
        self._runner = runner or ActionRunner(config.action, config.args)
        self._source = source or WatchSource(config)
        self._clock = clock
        self._tick_interval = tick_interval
        self._cancel_event = cancel_event or threading.Event()
        self._gate = DebounceGate(config.debounce, clock=clock)
        self._gate.start()
        self._state_lock = threading.Lock()
        self._state = MonitorState.IDLE
        self._cancelled = False
        self._watching = False
        self._started = threading.Event()
        self._finished = threading.Event()
        self.stats = PathStats()

    @property
    def config(self) -> WatchConfig:
        return self._config

    @property
    def id(self) -> str:
        return self._config.id

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    @property
    def is_watching(self) -> bool:
        return self._watching and not self._cancelled

    def start(self) -> None:
        """Watch and tick until cancelled."""

        try:
            if self._cancel_event.is_set():
                self.cancel()
                return
            try:
                self._source.start(self.on_notification)
            except WatchUnavailable:
                self._shutdown(announce=False)
                raise
            if self._cancelled:
                return
            self._watching = True
            logger.info("Monitoring: %s (%s)", self._config.root_path, self._config.id)
            self._started.set()

            while not self._cancel_event.wait(self._tick_interval):
                self.tick()
            # Covers a token set by someone other than cancel().
            self.cancel()
        finally:
            self._started.set()
            self._finished.set()

    def cancel(self) -> None:
        self._shutdown(announce=True)

    def _shutdown(self, *, announce: bool) -> None:
        with self._state_lock:
            if self._cancelled:
                return
            self._cancelled = True
            self._state = MonitorState.CANCELLED
        self._cancel_event.set()
        self._source.stop()
        if not announce:
            return
        logger.info("Stopped monitoring: %s (%s)", self._config.root_path, self._config.id)
        logger.debug(
            "Path %s totals: %s notifications, %s errors, %s runs, %s failures",
            self._config.id,
            self.stats.notifications,
            self.stats.errors,
            self.stats.runs,
            self.stats.failures,
        )

    def wait_started(self, timeout: Optional[float] = None) -> bool:
        """Wait until watching began or failed; return whether it is watching."""

        self._started.wait(timeout)
        return self.is_watching

    def join(self, timeout: Optional[float] = None) -> bool:
        return self._finished.wait(timeout)

    def on_notification(self, notification: Notification) -> None:
        if self._cancelled:
            return

        if isinstance(notification, ErrorNotification):
            with self._state_lock:
                self.stats.errors += 1
            logger.error(
                "Watch error for %s (%s): %s",
                self._config.id,
                self._config.root_path,
                notification.message,
            )
            return

        if isinstance(notification, ChangeNotification):
            logger.debug("%s", notification.describe())
            self._gate.mark_dirty()
            with self._state_lock:
                self.stats.notifications += 1
                if self._state is MonitorState.IDLE:
                    self._state = MonitorState.DIRTY

    def tick(self) -> None:
        """Evaluate the debounce gate once and run the action if eligible."""

        if self._cancelled:
            return
        self._source.poll_health()
        if not self._gate.dirty:
            return

        now = self._clock()
        if not self._gate.is_eligible(now):
            return
        self._set_state(MonitorState.ELIGIBLE)

        with self._runner.exclusive() as acquired:
            if not acquired:
                logger.debug("Action for %s still running; retrying next tick", self._config.id)
                return
            self._gate.begin_run(now)
            if not self._enter_running():
                return
            result = self._runner.run()

        if result.status is not RunStatus.COMPLETED:
            with self._state_lock:
                self.stats.failures += 1

        if result.status is RunStatus.NOT_FOUND:
            logger.error(
                "File not found: %s (path %s, %s)",
                self._config.action,
                self._config.id,
                self._config.root_path,
            )
            self.cancel()
            return

        if result.status is RunStatus.LAUNCH_FAILED:
            logger.error(
                "Action for %s (%s) could not be launched, will retry: %s",
                self._config.id,
                self._config.root_path,
                result.error,
            )
            self._gate.mark_dirty()

        self._set_state(MonitorState.DIRTY if self._gate.dirty else MonitorState.IDLE)

    def _enter_running(self) -> bool:
        # Cancellation check and RUNNING transition are one step.
        with self._state_lock:
            if self._cancelled:
                return False
            self._state = MonitorState.RUNNING
            self.stats.runs += 1
            return True

    def _set_state(self, state: MonitorState) -> None:
        with self._state_lock:
            if not self._cancelled:
                self._state = state


class MonitorSet:
    """Owns every path monitor and their threads."""

    def __init__(self, *, tick_interval: float = DEFAULT_TICK_INTERVAL):
        self._tick_interval = tick_interval
        self._monitors: Dict[str, PathMonitor] = {}
        self._threads: List[threading.Thread] = []

    def __len__(self) -> int:
        return len(self._monitors)

    def __iter__(self) -> Iterator[PathMonitor]:
        return iter(list(self._monitors.values()))

    def get(self, ident: str) -> Optional[PathMonitor]:
        return self._monitors.get(ident)

    @property
    def active(self) -> int:
        return sum(1 for monitor in self._monitors.values() if monitor.is_watching)

    def add_path(self, config: WatchConfig, **kwargs) -> PathMonitor:
        if config.id in self._monitors:
            raise DuplicateIDError(f"Duplicate path id '{config.id}'")
        kwargs.setdefault("tick_interval", self._tick_interval)
        monitor = PathMonitor(config, **kwargs)
        self._monitors[config.id] = monitor
        return monitor

    def start_all(self) -> None:
        for monitor in self._monitors.values():
            thread = threading.Thread(
                target=self._run_path,
                args=(monitor,),
                name=f"monitor-{monitor.id}",
                daemon=True,
            )
            self._threads.append(thread)
            thread.start()

    def wait_started(self, timeout: Optional[float] = None) -> int:
        """Wait for every path to start or fail; return how many are watching."""

        deadline = None if timeout is None else time.monotonic() + timeout
        for monitor in self._monitors.values():
            remaining = None if deadline is None else max(deadline - time.monotonic(), 0.0)
            monitor.wait_started(remaining)
        return self.active

    def stop_all(self, timeout: Optional[float] = None) -> None:
        """Cancel every path and wait for in-flight actions to finish."""

        for monitor in self._monitors.values():
            if not monitor.is_cancelled:
                monitor.cancel()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = [thread for thread in self._threads if thread.is_alive()]
        if self._threads:
            logger.warning("%s path(s) did not stop within %ss", len(self._threads), timeout)

    def _run_path(self, monitor: PathMonitor) -> None:
        try:
            monitor.start()
        except WatchUnavailable as exc:
            logger.error(
                "Cannot monitor %s (%s): %s",
                monitor.id,
                monitor.config.root_path,
                exc,
            )
        except Exception:
            logger.exception("Monitor for %s failed", monitor.id)
            monitor.cancel()
