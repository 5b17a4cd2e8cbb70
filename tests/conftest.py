"""Pytest fixtures for theme-sync tests."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from theme_sync.store import SyncMode
from theme_sync.sync import SyncCoordinator


class FakeStore:
    mode = SyncMode.REMOTE

    def __init__(self, fail_on: set[str] | None = None) -> None:
        self.calls: list[tuple[str, str]] = []
        self.fail_on = fail_on or set()
        self.closed = False

    def sync(self, dest_path: str) -> None:
        self.calls.append(("sync", dest_path))
        if dest_path in self.fail_on:
            raise ConnectionError("store unreachable")

    def unsync(self, dest_path: str) -> None:
        self.calls.append(("unsync", dest_path))
        if dest_path in self.fail_on:
            raise ConnectionError("store unreachable")

    def close(self) -> None:
        self.closed = True


class FakeReload:
    def __init__(self) -> None:
        self.events: list[str] = []

    def emit(self, event_name: str) -> None:
        self.events.append(event_name)


def run_inline(target, *args) -> None:
    target(*args)


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def reload() -> FakeReload:
    return FakeReload()


@pytest.fixture
def coordinator(store: FakeStore, reload: FakeReload) -> SyncCoordinator:
    return SyncCoordinator(store, reload, spawn=run_inline)


@pytest.fixture
def project(tmp_path: Path) -> tuple[Path, Path]:
    """Create an empty source and output tree."""
    src = tmp_path / "src"
    out = tmp_path / "build"
    src.mkdir()
    out.mkdir()
    return src, out


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Undo handlers added by setup_logging() during a test."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
