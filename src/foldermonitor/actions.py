"""External command execution with a per-path run lock."""
from __future__ import annotations

import logging
import shlex
import subprocess
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Optional

logger = logging.getLogger(__name__)


class RunStatus(str, Enum):
    """Outcome of a single action launch."""

    COMPLETED = "completed"
    NOT_FOUND = "not_found"
    LAUNCH_FAILED = "launch_failed"


@dataclass(frozen=True)
class RunResult:
    """What happened when the action was launched."""

    status: RunStatus
    returncode: Optional[int] = None
    error: Optional[str] = None
    started_at: float = 0.0
    finished_at: float = 0.0

    @property
    def launched(self) -> bool:
        return self.status is RunStatus.COMPLETED


class ActionRunner:
    """Runs the configured command, never twice at the same time.

    ``exclusive()`` guards a run with a non-blocking lock so that a caller
    finding the runner busy can back off instead of queueing. ``run()`` waits
    for the launched process to exit before returning.
    """

    def __init__(self, command: str, args: str = ""):
        self.command = command
        self.args = args
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def exclusive(self) -> Iterator[bool]:
        acquired = self._lock.acquire(blocking=False)
        try:
            yield acquired
        finally:
            if acquired:
                self._lock.release()

    def argv(self) -> List[str]:
        return [self.command, *shlex.split(self.args)]

    def run(self) -> RunResult:
        started = time.monotonic()
        try:
            argv = self.argv()
        except ValueError as exc:
            return RunResult(
                status=RunStatus.LAUNCH_FAILED,
                error=f"Invalid arguments {self.args!r}: {exc}",
                started_at=started,
                finished_at=time.monotonic(),
            )
        logger.info("Running action: %s", shlex.join(argv))
        try:
            completed = subprocess.run(argv, check=False)
        except FileNotFoundError as exc:
            return RunResult(
                status=RunStatus.NOT_FOUND,
                error=str(exc),
                started_at=started,
                finished_at=time.monotonic(),
            )
        except OSError as exc:
            return RunResult(
                status=RunStatus.LAUNCH_FAILED,
                error=str(exc),
                started_at=started,
                finished_at=time.monotonic(),
            )

        finished = time.monotonic()
        if completed.returncode != 0:
            logger.warning("Action %s exited with code %s", self.command, completed.returncode)
        else:
            logger.debug("Action %s finished in %.2fs", self.command, finished - started)
        return RunResult(
            status=RunStatus.COMPLETED,
            returncode=completed.returncode,
            started_at=started,
            finished_at=finished,
        )
