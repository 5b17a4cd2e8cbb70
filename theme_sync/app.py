"""
Main application controller for theme-sync.

Ties together configuration, the full copy, the bundler, the dual tree
watcher, the remote store and the reload channel. One ``App`` holds the
whole run context; every component receives what it needs from it.
"""

import functools
import logging
import logging.handlers
import sys

from theme_sync import __app_name__, __version__
from theme_sync.bundler import Bundler, BuildStats, log_stats
from theme_sync.config import Config
from theme_sync.copier import copy_file, copy_tree, delete_file
from theme_sync.errors import PipelineError
from theme_sync.ignore import IgnoreFilter
from theme_sync.reload import ReloadServer
from theme_sync.session import WatchSession
from theme_sync.store import SyncMode, open_store
from theme_sync.sync import SyncCoordinator
from theme_sync.watcher import DualTreeWatcher, OutputTreeHandler, SourceTreeHandler

logger = logging.getLogger(__name__)


class App:
    """Central orchestrator exposing ``copy``, ``build`` and ``watch``."""

    def __init__(self, config: Config, theme_name: str | None = None) -> None:
        self.config = config
        self.theme = config.theme(theme_name)
        self.ignore = IgnoreFilter(self.theme.ignore_files)
        self.bundler = Bundler.from_config(config)

    @property
    def source_root(self) -> str:
        return str(self.config.source_root)

    @property
    def dest_root(self) -> str:
        return str(self.config.dest_root)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def copy(self) -> int:
        """Repopulate the output tree. Raises PipelineError on any failure."""
        logger.info("copying %s -> %s", self.source_root, self.dest_root)
        return copy_tree(self.config.source_root, self.config.dest_root, self.ignore)

    def build(self) -> BuildStats | None:
        """Run the bundler once. Raises PipelineError on failure."""
        if self.bundler is None:
            logger.info("Nothing to build (no 'js' section configured).")
            return None
        logger.info("building")
        stats = self.bundler.build()
        log_stats(stats)
        return stats

    def watch(self) -> None:
        """Watch both trees until the process is told to stop."""
        with self.open_session() as session:
            logger.info("watching")
            session.wait()

    def open_session(self) -> WatchSession:
        """Wire up every watch-time component into one (unstarted) session."""
        store = open_store(self.theme, self.config.dest_root)
        if store.mode is SyncMode.LOCAL:
            logger.warning(
                "Theme '%s' is in local-only mode; changes will not be synced.",
                self.theme.name,
            )
        reload = ReloadServer(self.config.reload_host, self.config.reload_port)
        coordinator = SyncCoordinator(store, reload)

        settle = self.config.settle_seconds
        source_handler = SourceTreeHandler(
            self.source_root, self.dest_root, self.ignore, copy_file, delete_file, settle
        )
        output_handler = OutputTreeHandler(
            self.source_root, self.dest_root, coordinator, settle
        )
        watcher = DualTreeWatcher(
            self.source_root, self.dest_root, source_handler, output_handler
        )

        start_bundler = None
        if self.bundler is not None:
            start_bundler = functools.partial(
                self.bundler.watch, on_stats=log_stats, on_error=_log_build_error
            )

        return WatchSession(watcher, reload, store, start_bundler)


def _log_build_error(exc: PipelineError) -> None:
    logger.error("%s", exc)


def setup_logging(config: Config) -> None:
    """Configure rotating file log and stderr handler."""
    level = getattr(logging, config.log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    # Rotating file handler
    log_path = config.log_path
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.handlers.RotatingFileHandler(
            str(log_path),
            maxBytes=config.max_log_size_mb * 1024 * 1024,
            backupCount=config.log_backup_count,
            encoding="utf-8",
        )
    except OSError as exc:
        logger.warning("Cannot write log file %s: %s", log_path, exc)
    else:
        fh.setLevel(level)
        fh.setFormatter(fmt)
        root_logger.addHandler(fh)

    # Stderr handler
    sh = logging.StreamHandler(sys.stderr)
    sh.setLevel(level)
    sh.setFormatter(fmt)
    root_logger.addHandler(sh)

    logger.debug("%s %s starting.", __app_name__, __version__)
