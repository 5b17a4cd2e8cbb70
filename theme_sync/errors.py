"""Error kinds raised across the build/sync pipeline."""

from enum import Enum


class ErrorKind(Enum):
    """Every failure the pipeline can report."""

    CONFIG_INVALID = "config invalid"
    OUTSIDE_ROOT = "outside root"
    COPY_FAILED = "copy failed"
    DELETE_FAILED = "delete failed"
    BUILD_FAILED = "build failed"
    REMOTE_SYNC = "sync failed"
    REMOTE_UNSYNC = "unsync failed"


class PipelineError(Exception):
    """A failure with a known kind and, where relevant, the file key it concerns."""

    def __init__(self, kind: ErrorKind, message: str, key: str = ""):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.key = key

    def __str__(self) -> str:
        if self.key:
            return f"{self.kind.value}: {self.key}: {self.message}"
        return f"{self.kind.value}: {self.message}"
