from __future__ import annotations

import enum
from typing import Optional


class ErrorKind(enum.Enum):
    FILESYSTEM = "filesystem"
    STREAM = "stream"
    STRUCTURE = "structure"
    FORMAT = "format"
    CRYPTO = "crypto"
    CONFIG = "config"
    REMOTE = "remote"


class WeaveError(Exception):
    """Base class for weave errors; carries an error kind and the path involved."""

    kind = ErrorKind.FILESYSTEM

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.path = path

    def __str__(self) -> str:
        if self.path:
            return f"{self.message}: {self.path}"
        return self.message


# Filesystem
class SourceReadError(WeaveError):
    kind = ErrorKind.FILESYSTEM


class ArchiveCreateError(WeaveError):
    kind = ErrorKind.FILESYSTEM


# Open streams
class EntryWriteError(WeaveError):
    kind = ErrorKind.STREAM


class CopyError(WeaveError):
    kind = ErrorKind.STREAM


# Splice contract
class AlignmentError(WeaveError):
    kind = ErrorKind.FORMAT


class EncryptionError(WeaveError):
    kind = ErrorKind.CRYPTO


class JobConfigError(WeaveError):
    kind = ErrorKind.CONFIG


class RemoteError(WeaveError):
    kind = ErrorKind.REMOTE
