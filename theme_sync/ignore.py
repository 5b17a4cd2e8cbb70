"""Glob-based path exclusion shared by the full copy and the live watchers."""

from __future__ import annotations

import fnmatch
import logging
import posixpath
from collections.abc import Iterable
from pathlib import Path

logger = logging.getLogger(__name__)

# Never pushed to the remote store, whatever the theme config says.
JUNK_NAMES = (".DS_Store", "Thumbs.db")


class IgnoreFilter:
    """Read-only set of glob patterns, fixed for the run.

    A key is ignored when a pattern matches the whole key, its basename,
    or any of its parent directories ("node_modules" ignores everything
    below it).
    """

    def __init__(self, patterns: Iterable[str] | None = None):
        self._patterns = tuple(p.strip() for p in (patterns or ()) if p.strip())

    @property
    def patterns(self) -> tuple[str, ...]:
        return self._patterns

    def matches(self, key: str) -> bool:
        """Return True when *key* (a relative, "/"-separated path) is ignored."""
        if not key or not self._patterns:
            return False
        key = key.replace("\\", "/").strip("/")
        candidates = [key, posixpath.basename(key)]
        parent = posixpath.dirname(key)
        while parent:
            candidates.append(parent)
            candidates.append(posixpath.basename(parent))
            parent = posixpath.dirname(parent)

        for pattern in self._patterns:
            pattern = pattern.rstrip("/")
            for candidate in candidates:
                if fnmatch.fnmatchcase(candidate, pattern):
                    logger.debug("Ignoring %s (matches %s)", key, pattern)
                    return True
        return False

    def matches_path(self, path: str | Path, root: str | Path) -> bool:
        """Key *path* against *root*, then test it."""
        try:
            key = Path(path).relative_to(root).as_posix()
        except ValueError:
            return False
        return self.matches(key)


def is_junk(path: str) -> bool:
    return posixpath.basename(path.replace("\\", "/")) in JUNK_NAMES
