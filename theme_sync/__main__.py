"""Entry point for theme-sync.

Usage:
    python -m theme_sync copy  [config] [--env NAME]   Repopulate the output tree
    python -m theme_sync build [config] [--env NAME]   Bundle scripts once
    python -m theme_sync watch [config] [--env NAME]   Watch, sync and live-reload
    python -m theme_sync start [config] [--env NAME]   copy + build + watch
    python -m theme_sync init  [config]                Write a default config file
"""

import logging
import sys
from pathlib import Path

from theme_sync.config import Config
from theme_sync.errors import PipelineError

logger = logging.getLogger(__name__)

COMMANDS = ("copy", "build", "watch", "start", "init")


def _parse(argv: list[str]) -> tuple[str, Path | None, str | None]:
    cmd = argv[0] if argv else ""
    config_path = None
    env = None
    rest = argv[1:]
    while rest:
        arg = rest.pop(0)
        if arg in ("--env", "-e") and rest:
            env = rest.pop(0)
        elif arg.startswith("--env="):
            env = arg.split("=", 1)[1]
        elif config_path is None:
            config_path = Path(arg)
        else:
            raise SystemExit(f"Unexpected argument: {arg}")
    return cmd, config_path, env


def main(argv: list[str] | None = None) -> int:
    """Dispatch to the requested command; returns the exit status."""
    cmd, config_path, env = _parse(sys.argv[1:] if argv is None else argv)
    if cmd not in COMMANDS:
        print(__doc__)
        return 0 if cmd in ("", "-h", "--help", "help") else 2

    from theme_sync.app import App, setup_logging

    try:
        config = Config(config_path)
        if cmd == "init":
            if config.path.exists():
                print(f"{config.path} already exists.")
                return 1
            config.save()
            print(f"Wrote {config.path}")
            return 0

        setup_logging(config)
        app = App(config, env)
        if cmd in ("copy", "start"):
            app.copy()
        if cmd in ("build", "start"):
            app.build()
        if cmd in ("watch", "start"):
            app.watch()
    except (PipelineError, OSError) as exc:
        logger.error("%s", exc)
        if not logging.getLogger().handlers:
            print(exc, file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
