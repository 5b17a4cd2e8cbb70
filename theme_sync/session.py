"""Watch session lifecycle.

Owns every long-lived resource of a ``watch`` run: the two tree
observers, the bundler watch loop, the reload endpoint and the remote
store session. Resources are acquired on ``__enter__`` and released
exactly once on ``__exit__`` (or ``close()``), best-effort. Remote syncs
still in flight at that point are abandoned.
"""

from __future__ import annotations

import logging
import signal
import threading
from collections.abc import Callable

from theme_sync.bundler import BundlerWatch
from theme_sync.reload import ReloadServer
from theme_sync.store import RemoteStore
from theme_sync.watcher import DualTreeWatcher

logger = logging.getLogger(__name__)


class WatchSession:
    def __init__(
        self,
        watcher: DualTreeWatcher,
        reload: ReloadServer,
        store: RemoteStore,
        start_bundler: Callable[[], BundlerWatch] | None = None,
    ):
        self.watcher = watcher
        self.reload = reload
        self.store = store
        self._start_bundler = start_bundler
        self.bundler_watch: BundlerWatch | None = None
        self._stop = threading.Event()
        self._closed = False
        self._lock = threading.Lock()

    def __enter__(self) -> WatchSession:
        try:
            self.reload.start()
            self.watcher.start()
            if self._start_bundler is not None:
                self.bundler_watch = self._start_bundler()
        except BaseException:
            self.close()
            raise
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def stop(self) -> None:
        """Ask ``wait()`` to return."""
        self._stop.set()

    def wait(self) -> None:
        """Block until ``stop()`` is called or SIGINT/SIGTERM arrives."""
        previous = {}
        if threading.current_thread() is threading.main_thread():
            def _handler(sig, frame):
                logger.info("Received signal %d, shutting down.", sig)
                self.stop()

            for sig in (signal.SIGINT, signal.SIGTERM):
                previous[sig] = signal.signal(sig, _handler)

        try:
            while not self._stop.wait(timeout=1):
                pass
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)

    def close(self) -> None:
        """Release every resource; later calls do nothing."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._stop.set()

        closers = [
            ("bundler watch", self.bundler_watch.stop if self.bundler_watch else None),
            ("watchers", self.watcher.stop),
            ("reload server", self.reload.close),
            ("store session", self.store.close),
        ]
        for name, closer in closers:
            if closer is None:
                continue
            try:
                closer()
            except Exception:
                logger.exception("Failed to close %s", name)
        logger.info("Watch session closed.")
