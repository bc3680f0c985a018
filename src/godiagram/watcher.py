"""Recursive file-system notifications for the watched source tree."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from godiagram.detect import is_skipped_dir

logger = logging.getLogger(__name__)

WRITE = "write"
CREATE = "create"
REMOVE = "remove"

ChangeCallback = Callable[[str, str], None]


def _relevant(path: str, is_directory: bool, root: Path) -> bool:
    p = Path(path)
    try:
        parts = p.relative_to(root).parts
    except ValueError:
        parts = p.parts
    dirs = parts if is_directory else parts[:-1]
    if any(is_skipped_dir(part) for part in dirs):
        return False
    return is_directory or p.suffix == ".go"


class _ChangeHandler(FileSystemEventHandler):
    def __init__(self, root: Path, on_change: ChangeCallback) -> None:
        self.root = root
        self.on_change = on_change

    def _emit(self, path: str, kind: str, is_directory: bool) -> None:
        if _relevant(path, is_directory, self.root):
            logger.debug("modified file: %s (%s)", path, kind)
            self.on_change(path, kind)

    def on_any_event(self, event: FileSystemEvent) -> None:
        src = event.src_path.decode() if isinstance(event.src_path, bytes) else event.src_path
        if event.event_type == EVENT_TYPE_MODIFIED:
            # Directory mtime updates duplicate the file events they stem from.
            if not event.is_directory:
                self._emit(src, WRITE, False)
        elif event.event_type == EVENT_TYPE_CREATED:
            self._emit(src, CREATE, event.is_directory)
        elif event.event_type == EVENT_TYPE_DELETED:
            self._emit(src, REMOVE, event.is_directory)
        elif event.event_type == EVENT_TYPE_MOVED:
            dest = event.dest_path.decode() if isinstance(event.dest_path, bytes) else event.dest_path
            self._emit(src, REMOVE, event.is_directory)
            self._emit(dest, CREATE, event.is_directory)


class SourceWatcher:
    """Watch *root* recursively and report Go source changes to *on_change*.

    The schedule is recursive, so directories created after start-up are
    watched as well.
    """

    def __init__(self, root: Path, on_change: ChangeCallback) -> None:
        self.root = root
        self._handler = _ChangeHandler(root, on_change)
        self._observer: Observer | None = None

    @property
    def running(self) -> bool:
        return self._observer is not None

    def start(self) -> None:
        if self._observer is not None:
            return
        if not self.root.is_dir():
            logger.warning("Watched root %s is not a directory; not watching", self.root)
            return
        observer = Observer()
        observer.schedule(self._handler, str(self.root), recursive=True)
        observer.daemon = True
        observer.start()
        self._observer = observer
        logger.info("Watching %s", self.root)

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=5)
        self._observer = None
