"""File system watchers for theme-sync.

Uses the watchdog library to follow two trees at once. Changes in the
source tree are copied (or deleted) into the output tree; changes in the
output tree, whoever made them, are synced to the remote store. Raw
events are held per path until the file has settled, so one write that
raises several events is handled once, with its final content.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from pathlib import Path
from typing import Any

from watchdog.events import (
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from theme_sync.errors import PipelineError
from theme_sync.ignore import IgnoreFilter, is_junk
from theme_sync.paths import EventKind, FileEvent, translate
from theme_sync.sync import SyncCoordinator

logger = logging.getLogger(__name__)


def _fspath(path: str | bytes) -> str:
    return os.fsdecode(path)


def _signature(path: str) -> tuple[int, int] | None:
    try:
        stat = os.stat(path)
    except OSError:
        return None
    return stat.st_size, stat.st_mtime_ns


class SettleTracker:
    """Holds paths until their events stop and their content stops changing.

    A path settles once no event has arrived for ``settle_seconds`` and,
    unless it was removed, its size and mtime match what was last seen.
    The latest event kind for a path wins, except that a change after an
    add is still reported as an add.
    """

    def __init__(
        self,
        settle_seconds: float,
        on_settled: Callable[[str, EventKind], None],
        name: str = "SettleTracker",
    ):
        self._settle_seconds = settle_seconds
        self._on_settled = on_settled
        self._name = name
        # path -> (kind, last_seen, signature)
        self._pending: dict[str, tuple[EventKind, float, tuple[int, int] | None]] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def settle_seconds(self) -> float:
        return self._settle_seconds

    def start(self) -> None:
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name=self._name)
        self._thread.start()

    def stop(self) -> None:
        """Stop polling; paths still pending are abandoned."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None

    def track(self, path: str, kind: EventKind) -> None:
        """Register (or refresh) a path with its latest event."""
        signature = None if kind is EventKind.REMOVED else _signature(path)
        with self._lock:
            previous = self._pending.get(path)
            if previous and previous[0] is EventKind.ADDED and kind is EventKind.CHANGED:
                kind = EventKind.ADDED
            self._pending[path] = (kind, time.monotonic(), signature)

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def poll(self, now: float | None = None) -> list[tuple[str, EventKind]]:
        """Hand every settled path to the callback; returns what was handed over."""
        now = time.monotonic() if now is None else now
        settled: list[tuple[str, EventKind]] = []
        with self._lock:
            for path, (kind, last_seen, signature) in list(self._pending.items()):
                if kind is not EventKind.REMOVED:
                    current = _signature(path)
                    if current is None:
                        # vanished; its removal event will follow
                        del self._pending[path]
                        continue
                    if current != signature:
                        # still being written
                        self._pending[path] = (kind, now, current)
                        continue
                if now - last_seen >= self._settle_seconds:
                    settled.append((path, kind))
            for path, _ in settled:
                del self._pending[path]

        for path, kind in settled:
            try:
                self._on_settled(path, kind)
            except Exception:
                logger.exception("Error handling settled %s", path)
        return settled

    def _run(self) -> None:
        interval = max(0.05, self._settle_seconds / 4)
        while not self._stop.wait(timeout=interval):
            self.poll()


class _TreeHandler(FileSystemEventHandler, ABC):
    """Turns raw watchdog events into FileEvents, one file at a time.

    With ``settle_seconds`` above zero, events go through a SettleTracker
    first; otherwise they are handled as they arrive.
    """

    def __init__(self, source_root: str, dest_root: str, settle_seconds: float = 0):
        super().__init__()
        self.source_root = str(source_root)
        self.dest_root = str(dest_root)
        self.tracker: SettleTracker | None = None
        if settle_seconds > 0:
            self.tracker = SettleTracker(
                settle_seconds, self._apply, name=f"{type(self).__name__}Settle"
            )

    def start(self) -> None:
        if self.tracker is not None:
            self.tracker.start()

    def stop(self) -> None:
        if self.tracker is not None:
            self.tracker.stop()

    def _translate(self, path: str | bytes, kind: EventKind) -> FileEvent | None:
        try:
            return translate(_fspath(path), self.source_root, self.dest_root, kind)
        except PipelineError as exc:
            logger.error("%s", exc)
            return None

    def _record(self, path: str | bytes, kind: EventKind) -> None:
        path = _fspath(path)
        if self.tracker is not None:
            self.tracker.track(path, kind)
        else:
            self._apply(path, kind)

    def _apply(self, path: str, kind: EventKind) -> None:
        # one bad file must never take the observer thread down
        handle = self.handle_remove if kind is EventKind.REMOVED else self.handle_upsert
        try:
            handle(path, kind)
        except Exception:
            logger.exception("Error handling %s event for %s", kind.value, path)

    def on_created(self, event: FileCreatedEvent) -> None:  # type: ignore[override]
        if not event.is_directory:
            self._record(event.src_path, EventKind.ADDED)

    def on_modified(self, event: FileModifiedEvent) -> None:  # type: ignore[override]
        if not event.is_directory:
            self._record(event.src_path, EventKind.CHANGED)

    def on_deleted(self, event: FileDeletedEvent) -> None:  # type: ignore[override]
        if not event.is_directory:
            self._record(event.src_path, EventKind.REMOVED)

    def on_moved(self, event: FileMovedEvent) -> None:  # type: ignore[override]
        """A rename is a removal of the old path plus an add of the new one."""
        if event.is_directory:
            return
        self._record(event.src_path, EventKind.REMOVED)
        self._record(event.dest_path, EventKind.ADDED)

    @abstractmethod
    def handle_upsert(self, path: str, kind: EventKind) -> None:
        """Handle a settled add or change of *path*."""

    @abstractmethod
    def handle_remove(self, path: str, kind: EventKind) -> None:
        """Handle a settled removal of *path*."""


class SourceTreeHandler(_TreeHandler):
    """Mirrors source-tree changes into the output tree."""

    def __init__(
        self,
        source_root: str,
        dest_root: str,
        ignore: IgnoreFilter,
        copy_file: Callable[[FileEvent], bool],
        delete_file: Callable[[FileEvent], bool],
        settle_seconds: float = 0,
    ):
        super().__init__(source_root, dest_root, settle_seconds)
        self._ignore = ignore
        self._copy_file = copy_file
        self._delete_file = delete_file

    def _should_skip(self, path: str) -> bool:
        # the output tree may be nested inside the source tree
        if Path(path).is_relative_to(self.dest_root):
            return True
        # watchers can fire for paths their own exclusions should have hidden
        return self._ignore.matches_path(path, self.source_root)

    def handle_upsert(self, path: str, kind: EventKind) -> None:
        if self._should_skip(path):
            return
        event = self._translate(path, kind)
        if event is not None:
            self._copy_file(event)

    def handle_remove(self, path: str, kind: EventKind) -> None:
        if self._should_skip(path):
            return
        event = self._translate(path, kind)
        if event is not None:
            self._delete_file(event)


class OutputTreeHandler(_TreeHandler):
    """Hands output-tree changes to the sync coordinator."""

    def __init__(
        self,
        source_root: str,
        dest_root: str,
        coordinator: SyncCoordinator,
        settle_seconds: float = 0,
    ):
        super().__init__(source_root, dest_root, settle_seconds)
        self._coordinator = coordinator

    def handle_upsert(self, path: str, kind: EventKind) -> None:
        if is_junk(path):
            return
        event = self._translate(path, kind)
        if event is not None:
            self._coordinator.dispatch_sync(event)

    def handle_remove(self, path: str, kind: EventKind) -> None:
        if is_junk(path):
            return
        event = self._translate(path, kind)
        if event is not None:
            self._coordinator.dispatch_unsync(event)


class DualTreeWatcher:
    """Two persistent observers, one per tree.

    Usage:
        watcher = DualTreeWatcher(src, out, source_handler, output_handler)
        watcher.start()
        ...
        watcher.stop()
    """

    def __init__(
        self,
        source_root: str,
        dest_root: str,
        source_handler: SourceTreeHandler,
        output_handler: OutputTreeHandler,
    ):
        self.source_root = str(source_root)
        self.dest_root = str(dest_root)
        self._source_handler = source_handler
        self._output_handler = output_handler
        self._observers: list[Any] = []

    # ---- lifecycle ----

    def start(self) -> None:
        """Start watching both trees. Pre-existing files raise no events."""
        for folder in (self.source_root, self.dest_root):
            if not os.path.isdir(folder):
                logger.error("Folder does not exist: %s", folder)
                raise FileNotFoundError(f"Folder does not exist: {folder}")

        self._source_handler.start()
        self._output_handler.start()
        for folder, handler, name in (
            (self.source_root, self._source_handler, "SourceWatcher"),
            (self.dest_root, self._output_handler, "OutputWatcher"),
        ):
            observer = Observer()
            observer.name = name
            observer.schedule(handler, folder, recursive=True)
            observer.start()
            self._observers.append(observer)
            logger.info("Watching '%s'", folder)

    def stop(self) -> None:
        """Stop both observers and release resources."""
        observers, self._observers = self._observers, []
        for observer in observers:
            observer.stop()
        for observer in observers:
            observer.join(timeout=5)
        self._source_handler.stop()
        self._output_handler.stop()
        if observers:
            logger.info("Watchers stopped.")

    @property
    def is_running(self) -> bool:
        """Return whether both observers are alive."""
        return bool(self._observers) and all(o.is_alive() for o in self._observers)
