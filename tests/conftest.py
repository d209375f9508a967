import threading
import time
from pathlib import Path
from typing import Callable, List, Optional

import pytest

from foldermonitor.actions import ActionRunner, RunResult, RunStatus
from foldermonitor.config import WatchConfig
from foldermonitor.events import ChangeKind, ChangeNotification
from foldermonitor.watch import WatchUnavailable


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSource:
    """Stands in for WatchSource; tests push notifications with emit()."""

    def __init__(self, fail: Optional[str] = None):
        self.fail = fail
        self.handler: Optional[Callable] = None
        self.stop_calls = 0
        self.health_checks = 0

    def start(self, handler) -> None:
        if self.fail:
            raise WatchUnavailable(self.fail)
        self.handler = handler

    def stop(self) -> None:
        self.stop_calls += 1
        self.handler = None

    def poll_health(self) -> None:
        self.health_checks += 1

    def emit(self, notification=None) -> None:
        if self.handler is None:
            return
        if notification is None:
            notification = ChangeNotification(ChangeKind.MODIFIED, Path("changed.txt"))
        self.handler(notification)


class RecordingRunner(ActionRunner):
    """Records every run instead of launching a process."""

    def __init__(
        self,
        status: RunStatus = RunStatus.COMPLETED,
        *,
        clock: Callable[[], float] = time.monotonic,
        release: Optional[threading.Event] = None,
        duration: float = 0.0,
        barrier: Optional[threading.Barrier] = None,
    ):
        super().__init__("fake-action")
        self.status = status
        self.clock = clock
        self.release = release
        self.duration = duration
        self.barrier = barrier
        self.entered = threading.Event()
        self.calls: List[float] = []
        self.intervals: List[tuple] = []
        self.finished = threading.Event()

    def run(self) -> RunResult:
        started = time.monotonic()
        self.calls.append(self.clock())
        self.entered.set()
        if self.barrier is not None:
            self.barrier.wait()
        if self.release is not None:
            self.release.wait(5)
        if self.duration:
            time.sleep(self.duration)
        finished = time.monotonic()
        self.intervals.append((started, finished))
        self.finished.set()
        return RunResult(status=self.status, returncode=0, started_at=started, finished_at=finished)


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def make_config(tmp_path: Path):
    def _make(ident: str = "docs", **overrides) -> WatchConfig:
        values = {
            "id": ident,
            "root_path": tmp_path,
            "action": "true",
            "timeout": 500,
        }
        values.update(overrides)
        return WatchConfig(**values)

    return _make


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
