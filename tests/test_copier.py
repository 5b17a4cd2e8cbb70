"""Tests for the full copy stage and per-file copy/delete."""

from __future__ import annotations

from pathlib import Path

import pytest

from theme_sync.copier import copy_file, copy_tree, delete_file
from theme_sync.errors import ErrorKind, PipelineError
from theme_sync.ignore import IgnoreFilter
from theme_sync.paths import EventKind, translate


def _files(root: Path) -> set[str]:
    return {p.relative_to(root).as_posix() for p in root.rglob("*") if p.is_file()}


def test_copy_tree_mirrors_non_ignored_files(project: tuple[Path, Path]) -> None:
    src, out = project
    (src / "layout").mkdir()
    (src / "layout" / "theme.liquid").write_text("{{ content_for_layout }}")
    (src / "a.liquid").write_text("a")
    (src / "b.tmp").write_text("scratch")

    count = copy_tree(src, out, IgnoreFilter(["*.tmp"]))

    assert count == 2
    assert _files(out) == {"layout/theme.liquid", "a.liquid"}
    assert (out / "layout" / "theme.liquid").read_text() == "{{ content_for_layout }}"


def test_copy_tree_removes_leftovers(project: tuple[Path, Path]) -> None:
    src, out = project
    (src / "a.liquid").write_text("a")
    (out / "stale.liquid").write_text("old")
    (out / "old-dir").mkdir()
    (out / "old-dir" / "x.js").write_text("old")

    copy_tree(src, out, IgnoreFilter())

    assert _files(out) == {"a.liquid"}
    assert not (out / "old-dir").exists()


def test_copy_tree_creates_missing_output(tmp_path: Path) -> None:
    src = tmp_path / "src"
    src.mkdir()
    (src / "a.liquid").write_text("a")

    copy_tree(src, tmp_path / "build", IgnoreFilter())

    assert (tmp_path / "build" / "a.liquid").exists()


def test_copy_tree_missing_source_is_fatal(tmp_path: Path) -> None:
    with pytest.raises(PipelineError) as excinfo:
        copy_tree(tmp_path / "nope", tmp_path / "build", IgnoreFilter())

    assert excinfo.value.kind is ErrorKind.COPY_FAILED


def test_copy_tree_io_error_is_fatal(project: tuple[Path, Path], monkeypatch) -> None:
    src, out = project
    (src / "a.liquid").write_text("a")

    def broken_copy(*args, **kwargs):
        raise PermissionError("denied")

    monkeypatch.setattr("theme_sync.copier.shutil.copy2", broken_copy)

    with pytest.raises(PipelineError) as excinfo:
        copy_tree(src, out, IgnoreFilter())

    assert excinfo.value.kind is ErrorKind.COPY_FAILED
    assert excinfo.value.key == "a.liquid"


def test_copy_file_creates_parents(project: tuple[Path, Path]) -> None:
    src, out = project
    (src / "sections").mkdir()
    (src / "sections" / "hero.liquid").write_text("hero")
    event = translate(str(src / "sections" / "hero.liquid"), str(src), str(out))

    assert copy_file(event)
    assert (out / "sections" / "hero.liquid").read_text() == "hero"


def test_copy_file_failure_is_isolated(project: tuple[Path, Path], caplog) -> None:
    src, out = project
    event = translate(str(src / "missing.liquid"), str(src), str(out))

    assert copy_file(event) is False
    assert "missing.liquid" in caplog.text


def test_delete_file(project: tuple[Path, Path]) -> None:
    src, out = project
    (out / "a.liquid").write_text("a")
    event = translate(str(src / "a.liquid"), str(src), str(out), EventKind.REMOVED)

    assert delete_file(event)
    assert not (out / "a.liquid").exists()


def test_delete_missing_file_is_fine(project: tuple[Path, Path]) -> None:
    src, out = project
    event = translate(str(src / "gone.liquid"), str(src), str(out), EventKind.REMOVED)

    assert delete_file(event)


def test_empty_events_are_noops() -> None:
    empty = translate(None, "/proj/src", "/proj/build")

    assert copy_file(empty)
    assert delete_file(empty)
