"""Map absolute paths onto theme keys and their source/output locations.

    e.g. "/home/me/shop/src/snippets/snip.liquid" with roots
    "/home/me/shop/src" and "/home/me/shop/build" becomes

    FileEvent(
        key="snippets/snip.liquid",
        source_path="/home/me/shop/src/snippets/snip.liquid",
        dest_path="/home/me/shop/build/snippets/snip.liquid",
    )
"""

from __future__ import annotations

import posixpath
from dataclasses import dataclass
from enum import Enum

from theme_sync.errors import ErrorKind, PipelineError


class EventKind(Enum):
    ADDED = "added"
    CHANGED = "changed"
    REMOVED = "removed"


@dataclass(frozen=True)
class FileEvent:
    """A file change, keyed the same way whichever tree reported it."""

    kind: EventKind
    source_path: str
    key: str
    dest_path: str

    @property
    def is_empty(self) -> bool:
        return not self.key


def _normalize(path: str) -> str:
    return path.replace("\\", "/").rstrip("/") if path != "/" else path


def _relative(path: str, root: str) -> str | None:
    root = _normalize(root)
    if path.startswith(root + "/"):
        return path[len(root) + 1:]
    return None


def translate(
    path: str | None,
    source_root: str,
    dest_root: str,
    kind: EventKind = EventKind.CHANGED,
) -> FileEvent:
    """Return the FileEvent for *path*.

    A falsy path yields an event with an empty key, which every consumer
    treats as a no-op. Raises PipelineError(OUTSIDE_ROOT) when *path* lives
    under neither root.
    """
    if not path:
        return FileEvent(kind, "", "", "")

    normalized = _normalize(str(path))
    # the innermost root wins when one tree is nested in the other
    roots = sorted((str(source_root), str(dest_root)), key=len, reverse=True)
    key = None
    for root in roots:
        key = _relative(normalized, root)
        if key is not None:
            break
    if not key:
        raise PipelineError(
            ErrorKind.OUTSIDE_ROOT,
            f"not under {source_root} or {dest_root}",
            key=normalized,
        )

    return FileEvent(
        kind=kind,
        source_path=str(path),
        key=key,
        dest_path=posixpath.join(_normalize(str(dest_root)), key),
    )
