"""
Build stage for theme-sync.

Wraps an external bundler command (esbuild, rollup, webpack, ...). A
one-shot build runs the command once and reports the resulting assets;
watch mode re-runs it whenever one of its input folders changes. The
bundler writes straight into the output tree, where the output watcher
picks the files up for syncing.
"""

from __future__ import annotations

import gzip
import logging
import shlex
import subprocess
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from theme_sync.errors import ErrorKind, PipelineError

if TYPE_CHECKING:
    from theme_sync.config import Config

logger = logging.getLogger(__name__)

_STDERR_TAIL = 20  # lines of bundler stderr kept in error messages


def _kb(num_bytes: int) -> float:
    return round(num_bytes / 1024, 2)


def _num(value: float) -> str:
    return f"{value:g}"


@dataclass
class Asset:
    """One bundled file and its size in kb."""

    filename: str
    raw: float
    gzip: float | None = None

    @property
    def display_size(self) -> str:
        if self.gzip:
            return f"{_num(self.gzip)}kb gzipped"
        return f"{_num(self.raw)}kb"


@dataclass
class BuildStats:
    duration_ms: int
    assets: list[Asset] = field(default_factory=list)


def format_stats(stats: BuildStats) -> str:
    """Render build stats for the console.

        built in 120ms
          > assets/index.js 12kb gzipped
    """
    lines = [f"built in {stats.duration_ms}ms"]
    for asset in stats.assets:
        lines.append(f"  > {asset.filename} {asset.display_size}")
    return "\n".join(lines)


def log_stats(stats: BuildStats) -> None:
    logger.info("%s", format_stats(stats))


class _RebuildHandler(FileSystemEventHandler):
    """Schedules a debounced rebuild for any file change under the inputs."""

    def __init__(self, schedule: Callable[[], None]):
        super().__init__()
        self._schedule = schedule

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type in ("opened", "closed", "closed_no_write"):
            return
        self._schedule()


class BundlerWatch:
    """Handle on a running bundler watch loop."""

    def __init__(
        self,
        bundler: Bundler,
        on_stats: Callable[[BuildStats], None],
        on_error: Callable[[PipelineError], None],
    ):
        self._bundler = bundler
        self._on_stats = on_stats
        self._on_error = on_error
        self._timer: threading.Timer | None = None
        self._timer_lock = threading.Lock()
        self._build_lock = threading.Lock()
        self._observer = None
        self._stopped = False

    def start(self) -> None:
        observer = Observer()
        handler = _RebuildHandler(self.schedule)
        for path in self._bundler.watch_paths:
            if not path.exists():
                logger.warning("Bundler watch path does not exist: %s", path)
                continue
            observer.schedule(handler, str(path), recursive=path.is_dir())
        observer.start()
        self._observer = observer
        logger.info(
            "Bundler watching %s",
            ", ".join(str(p) for p in self._bundler.watch_paths) or "nothing",
        )

    def schedule(self) -> None:
        """Start (or restart) the debounce timer for a rebuild."""
        with self._timer_lock:
            if self._stopped:
                return
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self._bundler.debounce, self.rebuild)
            self._timer.daemon = True
            self._timer.start()

    def rebuild(self) -> None:
        """Run one build, reporting stats or the error; never raises."""
        with self._build_lock:
            if self._stopped:
                return
            try:
                stats = self._bundler.build()
            except PipelineError as exc:
                self._on_error(exc)
                return
            self._on_stats(stats)

    def stop(self) -> None:
        with self._timer_lock:
            self._stopped = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None
        logger.debug("Bundler watch stopped.")


class Bundler:
    """
    Runs the configured bundler command.

    Parameters
    ----------
    command : sequence of str
        Argument vector, e.g. ``["npx", "esbuild", "src/scripts/index.js",
        "--bundle", "--outfile=build/assets/index.js"]``.
    cwd : Path
        Working directory for the command (the project root).
    outputs : list of Path
        Files the command writes; their sizes are reported after each build.
    watch_paths : list of Path
        Inputs that trigger a rebuild in watch mode.
    debounce : float
        Seconds of quiet before a rebuild starts.
    """

    def __init__(
        self,
        command: Sequence[str],
        cwd: Path,
        outputs: list[Path] | None = None,
        watch_paths: list[Path] | None = None,
        debounce: float = 0.2,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ):
        self.command = list(command)
        self.cwd = Path(cwd)
        self.outputs = list(outputs or [])
        self.watch_paths = list(watch_paths or [])
        self.debounce = debounce
        self._runner = runner

    @classmethod
    def from_config(cls, config: Config) -> Bundler | None:
        """Build a Bundler from the ``js`` config section, or None."""
        js = config.js
        if js is None:
            return None
        command = js["command"]
        if isinstance(command, str):
            command = shlex.split(command)
        return cls(
            command=command,
            cwd=config.root,
            outputs=config.resolve_paths(js.get("outputs")),
            watch_paths=config.resolve_paths(js.get("watch")),
            debounce=float(js.get("debounce_ms", 200)) / 1000,
        )

    def build(self) -> BuildStats:
        """Run the bundler once. Raises PipelineError(BUILD_FAILED)."""
        started = time.monotonic()
        try:
            result = self._runner(
                self.command,
                cwd=str(self.cwd),
                capture_output=True,
                text=True,
            )
        except OSError as exc:
            raise PipelineError(
                ErrorKind.BUILD_FAILED, f"cannot run {self.command[0]}: {exc}"
            ) from exc
        duration_ms = int((time.monotonic() - started) * 1000)

        if result.returncode != 0:
            tail = "\n".join((result.stderr or "").strip().splitlines()[-_STDERR_TAIL:])
            raise PipelineError(
                ErrorKind.BUILD_FAILED,
                f"bundler exited with status {result.returncode}\n{tail}".rstrip(),
            )

        return BuildStats(duration_ms=duration_ms, assets=self._collect_assets())

    def _collect_assets(self) -> list[Asset]:
        assets = []
        for path in self.outputs:
            try:
                data = path.read_bytes()
            except OSError:
                logger.warning("Bundler output missing after build: %s", path)
                continue
            try:
                name = path.relative_to(self.cwd).as_posix()
            except ValueError:
                name = path.name
            assets.append(
                Asset(filename=name, raw=_kb(len(data)), gzip=_kb(len(gzip.compress(data))))
            )
        return assets

    def watch(
        self,
        on_stats: Callable[[BuildStats], None],
        on_error: Callable[[PipelineError], None],
    ) -> BundlerWatch:
        """Start the watch loop; builds once up front, like the bundler CLIs do."""
        handle = BundlerWatch(self, on_stats, on_error)
        handle.start()
        handle.schedule()
        return handle
