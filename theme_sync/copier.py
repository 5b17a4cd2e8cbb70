"""
File copy engine for theme-sync.

Populates the output tree from the source tree in one pass at startup,
and copies or deletes single files while watching. The full copy is a
prerequisite for everything else, so any failure there aborts the run;
per-file failures while watching are logged and isolated.
"""

import logging
import os
import shutil
from pathlib import Path

from theme_sync.errors import ErrorKind, PipelineError
from theme_sync.ignore import IgnoreFilter
from theme_sync.paths import FileEvent

logger = logging.getLogger(__name__)


def empty_dir(path: Path) -> None:
    """Remove everything inside *path*, creating it if missing."""
    path.mkdir(parents=True, exist_ok=True)
    for child in path.iterdir():
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink()


def copy_tree(source_root: Path, dest_root: Path, ignore: IgnoreFilter) -> int:
    """
    Empty *dest_root*, then copy every non-ignored file from *source_root*.

    Returns the number of files copied. Raises PipelineError(COPY_FAILED)
    on the first I/O error; partial output is never left to stand in for a
    successful copy.
    """
    source_root = Path(source_root)
    dest_root = Path(dest_root)
    if not source_root.is_dir():
        raise PipelineError(
            ErrorKind.COPY_FAILED, f"source folder does not exist: {source_root}"
        )

    count = 0
    key = ""
    try:
        empty_dir(dest_root)
        for item in sorted(source_root.glob("**/*")):
            if not item.is_file() or item.is_relative_to(dest_root):
                continue
            key = item.relative_to(source_root).as_posix()
            if ignore.matches(key):
                continue
            dest = dest_root / key
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(item, dest)
            count += 1
    except OSError as exc:
        raise PipelineError(ErrorKind.COPY_FAILED, str(exc), key=key) from exc

    logger.info("Copied %d file%s to %s", count, "" if count == 1 else "s", dest_root)
    return count


def copy_file(event: FileEvent) -> bool:
    """Copy one source file verbatim into the output tree."""
    if event.is_empty:
        return True
    try:
        os.makedirs(os.path.dirname(event.dest_path), exist_ok=True)
        shutil.copy2(event.source_path, event.dest_path)
    except OSError as exc:
        err = PipelineError(ErrorKind.COPY_FAILED, str(exc), key=event.key)
        logger.error("%s", err)
        return False
    logger.debug("Copied %s -> %s", event.source_path, event.dest_path)
    return True


def delete_file(event: FileEvent) -> bool:
    """Remove the output-tree counterpart of a deleted source file."""
    if event.is_empty:
        return True
    try:
        if os.path.isdir(event.dest_path):
            shutil.rmtree(event.dest_path)
        else:
            os.remove(event.dest_path)
    except FileNotFoundError:
        logger.debug("Nothing to delete at %s", event.dest_path)
    except OSError as exc:
        err = PipelineError(ErrorKind.DELETE_FAILED, str(exc), key=event.key)
        logger.error("%s", err)
        return False
    else:
        logger.debug("Deleted %s", event.dest_path)
    return True
