import threading
import time
from pathlib import Path

import pytest
from watchdog.events import DirDeletedEvent, FileClosedEvent, FileModifiedEvent, FileMovedEvent

from foldermonitor.config import WatchConfig
from foldermonitor.events import ChangeKind, ChangeNotification, ErrorNotification
from foldermonitor.watch import WatchSource, WatchUnavailable


class Collector:
    def __init__(self):
        self.items = []
        self.changed = threading.Event()

    def __call__(self, notification):
        self.items.append(notification)
        self.changed.set()

    def names(self):
        return [n.path.name for n in self.items if isinstance(n, ChangeNotification)]


def _config(root: Path, **overrides) -> WatchConfig:
    values = {"id": "watched", "root_path": root, "action": "true"}
    values.update(overrides)
    return WatchConfig(**values)


@pytest.fixture
def source_factory():
    sources = []

    def _make(config: WatchConfig) -> WatchSource:
        source = WatchSource(config)
        sources.append(source)
        return source

    yield _make
    for source in sources:
        source.stop()


def test_missing_root_is_unavailable(tmp_path):
    source = WatchSource(_config(tmp_path / "missing"))
    with pytest.raises(WatchUnavailable, match="does not exist"):
        source.start(Collector())


def test_file_root_is_unavailable(tmp_path):
    target = tmp_path / "file.txt"
    target.write_text("x")
    with pytest.raises(WatchUnavailable, match="not a directory"):
        WatchSource(_config(target)).start(Collector())


def test_created_file_is_reported(tmp_path, source_factory):
    collector = Collector()
    source_factory(_config(tmp_path)).start(collector)

    (tmp_path / "new.txt").write_text("hello")

    assert collector.changed.wait(5)
    assert "new.txt" in collector.names()


def test_filter_drops_unmatched_names(tmp_path, source_factory):
    collector = Collector()
    source_factory(_config(tmp_path, filter="*.txt")).start(collector)

    (tmp_path / "skip.log").write_text("ignored")
    (tmp_path / "keep.txt").write_text("kept")

    deadline = time.monotonic() + 5
    while "keep.txt" not in collector.names() and time.monotonic() < deadline:
        time.sleep(0.01)

    assert "keep.txt" in collector.names()
    assert all(name.endswith(".txt") for name in collector.names())


def test_nothing_delivered_after_stop(tmp_path):
    collector = Collector()
    source = WatchSource(_config(tmp_path))
    source.start(collector)
    source.stop()
    source.stop()

    (tmp_path / "late.txt").write_text("late")
    time.sleep(0.3)

    assert collector.items == []


def test_event_translation(tmp_path, source_factory):
    collector = Collector()
    source = source_factory(_config(tmp_path, filter="*.md"))
    source.start(collector)

    source._on_event(FileModifiedEvent(str(tmp_path / "notes.md")))
    source._on_event(FileMovedEvent(str(tmp_path / "draft.tmp"), str(tmp_path / "final.md")))
    source._on_event(FileModifiedEvent(str(tmp_path / "other.txt")))
    source._on_event(FileClosedEvent(str(tmp_path / "notes.md")))

    changes = [n for n in collector.items if n.path.parent == tmp_path]
    kinds = [(n.kind, n.path.name) for n in changes if n.path.name in ("notes.md", "draft.tmp")]
    assert (ChangeKind.MODIFIED, "notes.md") in kinds
    assert (ChangeKind.RENAMED, "draft.tmp") in kinds
    renamed = [n for n in changes if n.kind is ChangeKind.RENAMED]
    assert renamed[0].dest_path == tmp_path / "final.md"
    assert "other.txt" not in collector.names()
    assert len([n for n in changes if n.path.name == "notes.md"]) == 1


def test_root_deletion_is_an_error(tmp_path, source_factory):
    collector = Collector()
    source = source_factory(_config(tmp_path))
    source.start(collector)

    source._on_event(DirDeletedEvent(str(tmp_path)))

    errors = [n for n in collector.items if isinstance(n, ErrorNotification)]
    assert errors
    assert str(tmp_path) in errors[0].message


@pytest.mark.parametrize("pattern", ["", "*", "*.*"])
def test_match_all_patterns(tmp_path, pattern):
    source = WatchSource(_config(tmp_path, filter=pattern))
    assert source.matches(Path("Makefile"))
    assert source.matches(Path("a.txt"))


def test_glob_pattern_matches_base_name(tmp_path):
    source = WatchSource(_config(tmp_path, filter="*.py"))
    assert source.matches(Path("pkg/module.py"))
    assert not source.matches(Path("pkg.py/readme"))


def test_stopped_source_cannot_be_restarted(tmp_path):
    collector = Collector()
    source = WatchSource(_config(tmp_path))
    source.stop()

    source.start(collector)
    (tmp_path / "after.txt").write_text("late")
    time.sleep(0.3)

    assert collector.items == []
    assert source._observer is None
