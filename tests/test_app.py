"""Tests for the orchestrator surface and the CLI."""

from __future__ import annotations

import json
import subprocess
from pathlib import Path

import pytest

from theme_sync.__main__ import main
from theme_sync.app import App
from theme_sync.bundler import Bundler
from theme_sync.config import Config
from theme_sync.errors import PipelineError
from theme_sync.store import NullStore


def _config(tmp_path: Path, **extra) -> Config:
    data = {
        "in": "src",
        "out": "build",
        "reload": {"host": "127.0.0.1", "port": 0},
        "themes": {"development": {"ignore_files": ["*.tmp"]}},
        **extra,
    }
    path = tmp_path / "theme-sync.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return Config(path)


def test_copy_scenario(tmp_path: Path) -> None:
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "a.liquid").write_text("a")
    (tmp_path / "src" / "b.tmp").write_text("b")

    count = App(_config(tmp_path)).copy()

    assert count == 1
    assert (tmp_path / "build" / "a.liquid").exists()
    assert not (tmp_path / "build" / "b.tmp").exists()


def test_copy_failure_raises(tmp_path: Path) -> None:
    with pytest.raises(PipelineError):
        App(_config(tmp_path)).copy()


def test_build_without_bundler_is_skipped(tmp_path: Path, caplog) -> None:
    caplog.set_level("INFO")

    assert App(_config(tmp_path)).build() is None
    assert "Nothing to build" in caplog.text


def test_build_logs_stats(tmp_path: Path, caplog) -> None:
    caplog.set_level("INFO")
    output = tmp_path / "build" / "assets" / "index.js"

    def run(command, **kwargs):
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text("console.log(1)")
        return subprocess.CompletedProcess(command, 0, "", "")

    app = App(_config(tmp_path))
    app.bundler = Bundler(["esbuild"], cwd=tmp_path, outputs=[output], runner=run)

    stats = app.build()

    assert stats is not None
    assert "building" in caplog.text
    assert "build/assets/index.js" in caplog.text


def test_build_failure_propagates(tmp_path: Path) -> None:
    def run(command, **kwargs):
        return subprocess.CompletedProcess(command, 2, "", "Unexpected token")

    app = App(_config(tmp_path))
    app.bundler = Bundler(["esbuild"], cwd=tmp_path, runner=run)

    with pytest.raises(PipelineError):
        app.build()


def test_bundler_from_js_config(tmp_path: Path) -> None:
    app = App(_config(tmp_path, js={
        "command": "npx esbuild src/scripts/index.js --bundle",
        "outputs": ["build/assets/index.js"],
        "watch": ["src/scripts"],
        "debounce_ms": 50,
    }))

    assert app.bundler is not None
    assert app.bundler.command[:2] == ["npx", "esbuild"]
    assert app.bundler.outputs == [tmp_path.resolve() / "build" / "assets" / "index.js"]
    assert app.bundler.watch_paths == [tmp_path.resolve() / "src" / "scripts"]
    assert app.bundler.debounce == 0.05


def test_local_mode_session_is_wired(tmp_path: Path, caplog) -> None:
    (tmp_path / "src").mkdir()
    (tmp_path / "build").mkdir()

    session = App(_config(tmp_path)).open_session()

    assert isinstance(session.store, NullStore)
    assert "local-only mode" in caplog.text
    with session:
        assert session.watcher.is_running
    assert session.closed


def test_main_copy(tmp_path: Path) -> None:
    config = _config(tmp_path)
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "a.liquid").write_text("a")

    assert main(["copy", str(config.path)]) == 0
    assert (tmp_path / "build" / "a.liquid").exists()


def test_main_copy_failure_exits_nonzero(tmp_path: Path) -> None:
    config = _config(tmp_path)

    assert main(["copy", str(config.path)]) == 1


def test_main_unknown_env(tmp_path: Path) -> None:
    config = _config(tmp_path)

    assert main(["copy", str(config.path), "--env", "production"]) == 1


def test_main_init_writes_config(tmp_path: Path) -> None:
    path = tmp_path / "theme-sync.json"

    assert main(["init", str(path)]) == 0
    assert json.loads(path.read_text())["in"] == "src"
    assert main(["init", str(path)]) == 1


def test_main_usage(capsys) -> None:
    assert main([]) == 0
    assert main(["deploy"]) == 2
    assert "theme_sync watch" in capsys.readouterr().out
