from __future__ import annotations

import gzip
import shutil

from .constants import DEFAULT_CHUNK_SIZE
from .errors import ArchiveCreateError, CopyError, SourceReadError
from .result import Outcome


def compress_archive(src: str, dest: str) -> Outcome[str]:
    """Stream every byte of ``src`` through gzip into ``dest``."""
    try:
        out = open(dest, "wb")
    except OSError as exc:
        return Outcome.failure(ArchiveCreateError(f"Unable to create ({exc.strerror})", dest))
    try:
        with out, gzip.GzipFile(filename="", mode="wb", fileobj=out, mtime=0) as gz:
            try:
                inp = open(src, "rb")
            except OSError as exc:
                return Outcome.failure(SourceReadError(f"Unable to open for reading ({exc.strerror})", src))
            with inp:
                shutil.copyfileobj(inp, gz, DEFAULT_CHUNK_SIZE)
    except OSError as exc:
        return Outcome.failure(CopyError(f"Compression failed ({exc})", src))
    return Outcome.success(dest)


def decompress_archive(src: str, dest: str) -> Outcome[str]:
    """Inverse of :func:`compress_archive`."""
    try:
        inp = gzip.open(src, "rb")
    except OSError as exc:
        return Outcome.failure(SourceReadError(f"Unable to open for reading ({exc.strerror})", src))
    try:
        with inp, open(dest, "wb") as out:
            shutil.copyfileobj(inp, out, DEFAULT_CHUNK_SIZE)
    except (OSError, EOFError) as exc:
        return Outcome.failure(CopyError(f"Decompression failed ({exc})", src))
    return Outcome.success(dest)
