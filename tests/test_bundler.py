"""Tests for the build stage."""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from theme_sync.bundler import (
    Asset,
    Bundler,
    BundlerWatch,
    BuildStats,
    format_stats,
    log_stats,
)
from theme_sync.errors import ErrorKind, PipelineError


def _runner(returncode: int = 0, stderr: str = "", write: dict[Path, bytes] | None = None):
    calls = []

    def run(command, **kwargs):
        calls.append((command, kwargs))
        for path, data in (write or {}).items():
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        return subprocess.CompletedProcess(command, returncode, stdout="", stderr=stderr)

    run.calls = calls
    return run


def test_format_stats_raw_size() -> None:
    stats = BuildStats(duration_ms=120, assets=[Asset("app.js", raw=40)])

    text = format_stats(stats)

    assert "120ms" in text
    assert "app.js" in text
    assert "40kb" in text
    assert "gzipped" not in text


def test_format_stats_prefers_gzip() -> None:
    stats = BuildStats(duration_ms=120, assets=[Asset("app.js", raw=40, gzip=12)])

    text = format_stats(stats)

    assert "12kb gzipped" in text
    assert "40kb" not in text


def test_format_stats_one_line_per_asset() -> None:
    stats = BuildStats(
        duration_ms=5,
        assets=[Asset("a.js", raw=1.5), Asset("b.js", raw=2)],
    )

    assert format_stats(stats).splitlines() == [
        "built in 5ms",
        "  > a.js 1.5kb",
        "  > b.js 2kb",
    ]


def test_log_stats(caplog) -> None:
    caplog.set_level("INFO")

    log_stats(BuildStats(duration_ms=120, assets=[Asset("app.js", raw=40)]))

    assert "built in 120ms" in caplog.text
    assert "app.js 40kb" in caplog.text


def test_build_reports_outputs(tmp_path: Path) -> None:
    output = tmp_path / "build" / "assets" / "index.js"
    run = _runner(write={output: b"x" * 2048})
    bundler = Bundler(["esbuild"], cwd=tmp_path, outputs=[output], runner=run)

    stats = bundler.build()

    assert run.calls[0][0] == ["esbuild"]
    assert run.calls[0][1]["cwd"] == str(tmp_path)
    assert stats.duration_ms >= 0
    assert [a.filename for a in stats.assets] == ["build/assets/index.js"]
    assert stats.assets[0].raw == 2
    assert stats.assets[0].gzip is not None
    assert stats.assets[0].gzip < 2


def test_build_skips_missing_outputs(tmp_path: Path) -> None:
    bundler = Bundler(
        ["esbuild"], cwd=tmp_path, outputs=[tmp_path / "nope.js"], runner=_runner()
    )

    assert bundler.build().assets == []


def test_build_failure_raises(tmp_path: Path) -> None:
    bundler = Bundler(
        ["esbuild"], cwd=tmp_path, runner=_runner(returncode=1, stderr="syntax error")
    )

    with pytest.raises(PipelineError) as excinfo:
        bundler.build()

    assert excinfo.value.kind is ErrorKind.BUILD_FAILED
    assert "syntax error" in str(excinfo.value)


def test_build_missing_executable_raises(tmp_path: Path) -> None:
    def run(command, **kwargs):
        raise FileNotFoundError(command[0])

    bundler = Bundler(["no-such-bundler"], cwd=tmp_path, runner=run)

    with pytest.raises(PipelineError) as excinfo:
        bundler.build()

    assert excinfo.value.kind is ErrorKind.BUILD_FAILED


def test_watch_rebuild_reports_errors_and_keeps_going(tmp_path: Path) -> None:
    results = iter([_runner(returncode=1, stderr="boom"), _runner()])

    def run(command, **kwargs):
        return next(results)(command, **kwargs)

    bundler = Bundler(["esbuild"], cwd=tmp_path, runner=run)
    stats, errors = [], []
    handle = BundlerWatch(bundler, on_stats=stats.append, on_error=errors.append)

    handle.rebuild()
    handle.rebuild()

    assert len(errors) == 1
    assert errors[0].kind is ErrorKind.BUILD_FAILED
    assert len(stats) == 1


def test_from_config_without_js(tmp_path: Path) -> None:
    from theme_sync.config import Config

    assert Bundler.from_config(Config(tmp_path / "theme-sync.json")) is None


def test_from_config_string_command_keeps_quoted_arguments(tmp_path: Path) -> None:
    import json

    from theme_sync.config import Config

    path = tmp_path / "theme-sync.json"
    path.write_text(
        json.dumps({"js": {"command": "esbuild \"src/my app.js\" --outdir=build/assets"}}),
        encoding="utf-8",
    )

    bundler = Bundler.from_config(Config(path))

    assert bundler.command == ["esbuild", "src/my app.js", "--outdir=build/assets"]


def test_stopped_watch_ignores_changes(tmp_path: Path) -> None:
    run = _runner()
    handle = BundlerWatch(
        Bundler(["esbuild"], cwd=tmp_path, runner=run), lambda s: None, lambda e: None
    )

    handle.stop()
    handle.schedule()
    handle.rebuild()

    assert run.calls == []
