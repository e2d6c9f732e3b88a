"""
Tests for the file system watcher.
"""

import pytest
from watchdog.events import (
    DirCreatedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from reviewctx.content import LocalContentProvider
from reviewctx.indexer import IndexCoordinator
from reviewctx.updater import IncrementalUpdater
from reviewctx.watcher import ChangeCollector, RepositoryWatcher


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def collector(temp_dir, clock):
    return ChangeCollector(temp_dir, extensions=[".py", ".js"], exclude_dirs=["node_modules"], clock=clock)


def path(temp_dir, name):
    return str(temp_dir / name)


def pending(collector):
    return {c.filename: (c.status, c.previous_filename) for c in collector.drain(0)}


class TestChangeCollector:
    """Tests for event to FileChange mapping."""

    def test_basic_events(self, collector, temp_dir):
        collector.on_created(FileCreatedEvent(path(temp_dir, "src/new.py")))
        collector.on_modified(FileModifiedEvent(path(temp_dir, "src/old.py")))
        collector.on_deleted(FileDeletedEvent(path(temp_dir, "src/gone.js")))

        assert pending(collector) == {
            "src/new.py": ("added", None),
            "src/old.py": ("modified", None),
            "src/gone.js": ("removed", None),
        }

    def test_modification_keeps_addition(self, collector, temp_dir):
        collector.on_created(FileCreatedEvent(path(temp_dir, "a.py")))
        collector.on_modified(FileModifiedEvent(path(temp_dir, "a.py")))

        assert pending(collector) == {"a.py": ("added", None)}

    def test_deletion_replaces_modification(self, collector, temp_dir):
        collector.on_modified(FileModifiedEvent(path(temp_dir, "a.py")))
        collector.on_deleted(FileDeletedEvent(path(temp_dir, "a.py")))

        assert pending(collector) == {"a.py": ("removed", None)}

    def test_move(self, collector, temp_dir):
        collector.on_modified(FileModifiedEvent(path(temp_dir, "a.py")))
        collector.on_moved(FileMovedEvent(path(temp_dir, "a.py"), path(temp_dir, "b.py")))
        collector.on_modified(FileModifiedEvent(path(temp_dir, "b.py")))

        assert pending(collector) == {"b.py": ("renamed", "a.py")}

    def test_move_to_ignored_name_is_removal(self, collector, temp_dir):
        collector.on_moved(FileMovedEvent(path(temp_dir, "a.py"), path(temp_dir, "a.py.bak")))
        assert pending(collector) == {"a.py": ("removed", None)}

    def test_move_from_ignored_name_is_addition(self, collector, temp_dir):
        collector.on_moved(FileMovedEvent(path(temp_dir, "draft.txt"), path(temp_dir, "draft.py")))
        assert pending(collector) == {"draft.py": ("added", None)}

    def test_ignored_events(self, collector, temp_dir, tmp_path):
        collector.on_created(FileCreatedEvent(path(temp_dir, "notes.txt")))
        collector.on_created(FileCreatedEvent(path(temp_dir, "node_modules/x/index.js")))
        collector.on_created(FileCreatedEvent(path(temp_dir, ".cache/a.py")))
        collector.on_created(FileCreatedEvent(str(tmp_path / "elsewhere.py")))
        collector.on_created(DirCreatedEvent(path(temp_dir, "pkg.py")))

        assert pending(collector) == {}

    def test_debounce(self, collector, clock, temp_dir):
        """Changes are released only after a quiet period."""
        clock.now = 10.0
        collector.on_modified(FileModifiedEvent(path(temp_dir, "a.py")))

        clock.now = 10.2
        assert collector.drain(0.5) == []
        clock.now = 10.6
        assert [c.filename for c in collector.drain(0.5)] == ["a.py"]
        assert collector.drain(0.5) == []

    def test_on_change_callback(self, temp_dir, clock):
        seen = []
        collector = ChangeCollector(temp_dir, [".py"], [], on_change=seen.append, clock=clock)

        collector.on_created(FileCreatedEvent(path(temp_dir, "a.py")))

        assert [c.filename for c in seen] == ["a.py"]


def test_process_pending_updates_index(scope, memory_store, chunker, generator, config, sample_codebase):
    coordinator = IndexCoordinator(scope, memory_store, chunker, generator, config)
    coordinator.initialize(sample_codebase, background=False)
    coordinator.shutdown()
    updater = IncrementalUpdater(
        scope, memory_store, chunker, generator, LocalContentProvider(sample_codebase), config,
    )
    watcher = RepositoryWatcher(updater, sample_codebase, config, debounce_seconds=0)

    assert watcher.process_pending() is None

    new_file = sample_codebase / "src" / "tax.py"
    new_file.write_text("def tax(amount):\n    return amount * 0.2\n")
    watcher.collector.on_created(FileCreatedEvent(str(new_file)))
    report = watcher.process_pending()

    assert report.updated == ["src/tax.py"]
    assert memory_store.get_by_file("src/tax.py")[0].function_name == "tax"
    assert not watcher.is_running


def test_start_requires_directory(config, temp_dir):
    watcher = RepositoryWatcher(updater=None, root=temp_dir / "missing", config=config)

    with pytest.raises(ValueError):
        watcher.start()
    assert not watcher.is_running
