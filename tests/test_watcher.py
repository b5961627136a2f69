"""Tests for debounced change notifications."""

import time

import pytest
from watchdog.events import (
    DirModifiedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from graph.watcher import TemplateChangeHandler
from graph.workspace import FileChange, Workspace
from scanner.config import ScanConfig


@pytest.fixture
def workspace(repos):
    ws = Workspace(repos.main, ScanConfig(debounce_seconds=0.25))
    ws.open()
    yield ws
    ws.close()


@pytest.fixture
def handler(workspace):
    # Long enough that only explicit flushes deliver events
    handler = TemplateChangeHandler(workspace, debounce_seconds=60)
    yield handler
    handler.cancel()


class TestTemplateChangeHandler:
    """Tests for TemplateChangeHandler."""

    def test_debounce_from_config(self, workspace):
        """Test the workspace setting is the default window."""
        assert TemplateChangeHandler(workspace).debounce_seconds == 0.25

    def test_created_then_modified_stays_created(self, handler, repos):
        """Test a modification after creation is still a creation."""
        path = repos.main / "templates" / "new.yml"
        handler.on_created(FileCreatedEvent(str(path)))
        handler.on_modified(FileModifiedEvent(str(path)))

        assert handler._pending == {path: FileChange.CREATED}

    def test_flush_applies_changes(self, handler, workspace, repos):
        """Test flushed changes reach the index."""
        path = repos.main / "templates" / "new.yml"
        path.write_text("steps:\n  - template: local-template.yml\n", encoding="utf-8")
        handler.on_created(FileCreatedEvent(str(path)))

        assert handler.flush() == 1
        assert path in workspace.index.get_callers(repos.local_template)
        assert handler.flush() == 0

    def test_move_is_delete_plus_create(self, handler, workspace, repos):
        """Test a rename moves the file within the index."""
        dest = repos.main / "templates" / "renamed.yml"
        repos.local_template.rename(dest)
        handler.on_moved(FileMovedEvent(str(repos.local_template), str(dest)))

        assert handler._pending == {
            repos.local_template: FileChange.DELETED,
            dest: FileChange.CREATED,
        }
        assert handler.flush() == 2
        assert dest in workspace.index.all_files()
        assert repos.local_template not in workspace.index.all_files()

    def test_deleted(self, handler, workspace, repos):
        """Test a deletion drops the file from the corpus."""
        repos.local_template.unlink()
        handler.on_deleted(FileDeletedEvent(str(repos.local_template)))

        assert handler.flush() == 1
        assert repos.local_template not in workspace.index.all_files()

    def test_ignored_events(self, handler, repos):
        """Test directory events and non-template files are not applied."""
        handler.on_modified(DirModifiedEvent(str(repos.main / "templates")))
        handler.on_modified(FileModifiedEvent(str(repos.main / "README.md")))

        assert list(handler._pending) == [repos.main / "README.md"]
        assert handler.flush() == 0

    def test_timer_flushes(self, workspace, repos):
        """Test pending changes are delivered once the window passes."""
        handler = TemplateChangeHandler(workspace, debounce_seconds=0.05)
        path = repos.main / "templates" / "timed.yml"
        path.write_text("steps: []\n", encoding="utf-8")
        handler.on_created(FileCreatedEvent(str(path)))

        deadline = time.monotonic() + 5
        while path not in workspace.index.all_files() and time.monotonic() < deadline:
            time.sleep(0.02)

        assert path in workspace.index.all_files()

    def test_cancel(self, handler, repos):
        """Test cancel drops pending changes."""
        handler.on_modified(FileModifiedEvent(str(repos.pipeline)))
        handler.cancel()

        assert handler.flush() == 0
