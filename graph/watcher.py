"""Filesystem watching that feeds change notifications into a workspace."""

import logging
import threading
from pathlib import Path
from typing import Dict, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .workspace import FileChange, Workspace


logger = logging.getLogger(__name__)


class TemplateChangeHandler(FileSystemEventHandler):
    """
    Collect filesystem events and forward them to Workspace.notify.

    Events are debounced: each new event restarts a timer, and when it
    fires the latest change per path is delivered. A move is a delete of
    the old path plus a create of the new one.
    """

    def __init__(self, workspace: Workspace, debounce_seconds: Optional[float] = None):
        super().__init__()
        self.workspace = workspace
        if debounce_seconds is None:
            debounce_seconds = workspace.config.debounce_seconds
        self.debounce_seconds = debounce_seconds
        self._lock = threading.Lock()
        self._pending: Dict[Path, FileChange] = {}
        self._timer: Optional[threading.Timer] = None

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._schedule(event.src_path, FileChange.CHANGED)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._schedule(event.src_path, FileChange.CREATED)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._schedule(event.src_path, FileChange.DELETED)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._schedule(event.src_path, FileChange.DELETED)
            self._schedule(event.dest_path, FileChange.CREATED)

    def _schedule(self, src_path, change: FileChange) -> None:
        path = Path(src_path)
        with self._lock:
            previous = self._pending.get(path)
            # A file created and then modified inside one window is still new
            if previous is FileChange.CREATED and change is FileChange.CHANGED:
                change = FileChange.CREATED
            self._pending[path] = change

            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.debounce_seconds, self.flush)
            self._timer.daemon = True
            self._timer.start()

    def flush(self) -> int:
        """
        Deliver pending changes now.

        Returns:
            Number of changes the workspace accepted.
        """
        with self._lock:
            pending = self._pending
            self._pending = {}
            if self._timer is not None:
                self._timer.cancel()
            self._timer = None

        accepted = 0
        for path, change in pending.items():
            if self.workspace.notify(change, path):
                accepted += 1
        if accepted:
            logger.info("Applied %d template change(s)", accepted)
        return accepted

    def cancel(self) -> None:
        """Drop pending changes without delivering them."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = None
            self._pending.clear()


def watch(workspace: Workspace, handler: Optional[TemplateChangeHandler] = None) -> Observer:
    """
    Start a recursive observer on the workspace root.

    Args:
        workspace: Workspace receiving the notifications.
        handler: Handler to use; a TemplateChangeHandler by default.

    Returns:
        The started observer; call ``stop()`` and ``join()`` to shut it down.
    """
    if handler is None:
        handler = TemplateChangeHandler(workspace)
    observer = Observer()
    observer.schedule(handler, str(workspace.root), recursive=True)
    observer.start()
    logger.info("Watching %s for template changes", workspace.root)
    return observer
