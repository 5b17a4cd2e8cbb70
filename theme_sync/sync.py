"""Push output-tree changes to the remote store and tell browsers to reload."""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Callable
from typing import Protocol

from theme_sync.paths import FileEvent
from theme_sync.store import RemoteStore

logger = logging.getLogger(__name__)

RELOAD_EVENT = "refresh"


class ReloadChannel(Protocol):
    def emit(self, event_name: str) -> None: ...


def _spawn_thread(target: Callable[..., object], *args: object) -> None:
    threading.Thread(target=target, args=args, daemon=True, name="Sync").start()


class SyncCoordinator:
    """
    Reacts to output-tree events.

    ``sync``/``unsync`` run one remote operation to completion and never
    raise. ``dispatch_sync``/``dispatch_unsync`` start one without waiting.
    Operations on the same key run one after another, in dispatch order;
    different keys each get their own worker, with no cap on how many run
    at once, and finish in any order.
    """

    def __init__(
        self,
        store: RemoteStore,
        reload: ReloadChannel,
        spawn: Callable[..., None] | None = None,
    ):
        self.store = store
        self.reload = reload
        self._spawn = spawn or _spawn_thread
        # key -> operations waiting or running; the head is the running one
        self._queues: dict[str, deque] = {}
        self._in_flight = 0
        self._lock = threading.Lock()

    @property
    def in_flight(self) -> int:
        """Dispatched operations that have not finished yet."""
        with self._lock:
            return self._in_flight

    def sync(self, event: FileEvent) -> bool:
        if event.is_empty:
            return True
        return self._run(self.store.sync, event, "synced", "syncing")

    def unsync(self, event: FileEvent) -> bool:
        if event.is_empty:
            return True
        return self._run(self.store.unsync, event, "unsynced", "unsyncing")

    def dispatch_sync(self, event: FileEvent) -> None:
        self._dispatch(self.sync, event)

    def dispatch_unsync(self, event: FileEvent) -> None:
        self._dispatch(self.unsync, event)

    def _dispatch(self, operation: Callable[[FileEvent], bool], event: FileEvent) -> None:
        if event.is_empty:
            return
        with self._lock:
            self._in_flight += 1
            queue = self._queues.get(event.key)
            if queue is not None:
                # a worker is already draining this key
                queue.append((operation, event))
                return
            self._queues[event.key] = deque([(operation, event)])
        self._spawn(self._drain, event.key)

    def _drain(self, key: str) -> None:
        while True:
            with self._lock:
                operation, event = self._queues[key][0]
            try:
                operation(event)
            finally:
                with self._lock:
                    self._in_flight -= 1
                    queue = self._queues[key]
                    queue.popleft()
                    drained = not queue
                    if drained:
                        del self._queues[key]
            if drained:
                return

    def _run(self, operation, event: FileEvent, done: str, doing: str) -> bool:
        try:
            operation(event.dest_path)
            self.reload.emit(RELOAD_EVENT)
        except Exception as exc:
            logger.error("%s %s failed\n%s", doing, event.key, exc)
            return False
        logger.info("%s %s", done, event.key)
        return True
