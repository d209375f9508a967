"""watchdog-backed change source for one directory tree."""
from __future__ import annotations

import logging
import os
import threading
from fnmatch import fnmatch
from pathlib import Path
from typing import Callable, Dict, Optional

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .config import WatchConfig
from .events import ChangeKind, ChangeNotification, ErrorNotification, Notification

logger = logging.getLogger(__name__)

NotificationHandler = Callable[[Notification], None]

_KINDS: Dict[str, ChangeKind] = {
    EVENT_TYPE_CREATED: ChangeKind.CREATED,
    EVENT_TYPE_MODIFIED: ChangeKind.MODIFIED,
    EVENT_TYPE_DELETED: ChangeKind.DELETED,
    EVENT_TYPE_MOVED: ChangeKind.RENAMED,
}

# "*.*" is kept as a match-all for configurations written for Windows.
_MATCH_ALL = {"", "*", "*.*"}


class WatchUnavailable(Exception):
    """Raised when a root directory cannot be watched."""


class _Handler(FileSystemEventHandler):
    def __init__(self, source: "WatchSource"):
        super().__init__()
        self._source = source

    def on_any_event(self, event: FileSystemEvent) -> None:
        self._source._on_event(event)


class WatchSource:
    """Delivers change notifications for one configured directory.

    The handler is called from watchdog's observer thread. ``stop()`` waits
    for that thread, so once it returns no further notification is delivered.
    """

    def __init__(self, config: WatchConfig):
        self._config = config
        self._observer: Optional[Observer] = None
        self._handler: Optional[NotificationHandler] = None
        self._lock = threading.Lock()
        self._stopped = False
        self._reported_dead = False

    @property
    def config(self) -> WatchConfig:
        return self._config

    def start(self, handler: NotificationHandler) -> None:
        """Begin observing; does nothing once ``stop()`` has been called."""

        with self._lock:
            if self._stopped:
                logger.debug("Not starting stopped source for %s", self._config.root_path)
                return

        root = self._config.root_path
        if not root.exists():
            raise WatchUnavailable(f"Path does not exist: {root}")
        if not root.is_dir():
            raise WatchUnavailable(f"Path is not a directory: {root}")
        if not os.access(root, os.R_OK | os.X_OK):
            raise WatchUnavailable(f"Permission denied: {root}")

        observer = Observer()
        observer.name = f"watch-{self._config.id}"
        observer.daemon = True
        try:
            observer.schedule(_Handler(self), str(root), recursive=self._config.recursive)
            observer.start()
        except OSError as exc:
            raise WatchUnavailable(f"Unable to watch {root}: {exc}") from exc

        with self._lock:
            stopped_meanwhile = self._stopped
            if not stopped_meanwhile:
                self._handler = handler
                self._observer = observer
        if stopped_meanwhile:
            observer.stop()
            observer.join()
            return
        logger.debug("Observer started for %s (recursive=%s)", root, self._config.recursive)

    def stop(self) -> None:
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            self._handler = None
            observer = self._observer
            self._observer = None

        if observer is not None:
            observer.stop()
            if observer is not threading.current_thread():
                observer.join()
        logger.debug("Observer stopped for %s", self._config.root_path)

    def poll_health(self) -> None:
        """Report, once, an observer thread that died without being stopped."""

        with self._lock:
            observer = self._observer
            if observer is None or self._stopped or self._reported_dead:
                return
            if observer.is_alive():
                return
            self._reported_dead = True
        self._deliver(ErrorNotification(f"Observer for {self._config.root_path} stopped unexpectedly"))

    def matches(self, path: Path) -> bool:
        pattern = self._config.filter
        if pattern in _MATCH_ALL:
            return True
        return fnmatch(path.name, pattern)

    def _on_event(self, event: FileSystemEvent) -> None:
        kind = _KINDS.get(event.event_type)
        if kind is None:
            return

        src = Path(os.fsdecode(event.src_path))
        dest: Optional[Path] = None
        if kind is ChangeKind.RENAMED:
            dest = Path(os.fsdecode(event.dest_path))

        if kind is ChangeKind.DELETED and event.is_directory and src == self._config.root_path:
            self._deliver(ErrorNotification(f"Watched directory was removed: {src}"))
            return

        if not (self.matches(src) or (dest is not None and self.matches(dest))):
            return
        self._deliver(ChangeNotification(kind=kind, path=src, dest_path=dest))

    def _deliver(self, notification: Notification) -> None:
        with self._lock:
            handler = self._handler
            if handler is None:
                return
            handler(notification)
