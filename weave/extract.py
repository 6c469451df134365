from __future__ import annotations

import os
import tarfile
import tempfile
from typing import List, Optional

from .compress import decompress_archive
from .encryption import MAGIC as ENCRYPTED_MAGIC, decrypt_file
from .errors import EncryptionError, SourceReadError


GZIP_MAGIC = b"\x1f\x8b"


def _sniff(path: str) -> bytes:
    try:
        with open(path, "rb") as fh:
            return fh.read(len(ENCRYPTED_MAGIC))
    except OSError as exc:
        raise SourceReadError(f"Unable to open for reading ({exc.strerror})", path) from exc


def _temp_path(workdir: str, suffix: str) -> str:
    fd, path = tempfile.mkstemp(prefix="weave", suffix=suffix, dir=workdir)
    os.close(fd)
    return path


def extract_artifact(path: str, outdir: str, *, key_file: Optional[str] = None) -> List[str]:
    """Unpack a (possibly encrypted, possibly gzipped) archive into ``outdir``.

    Layers are recognised by their magic bytes, not by file name. Returns the
    member names that were extracted.
    """
    temps: List[str] = []
    workdir = tempfile.gettempdir()
    current = path
    try:
        if _sniff(current) == ENCRYPTED_MAGIC:
            if key_file is None:
                raise EncryptionError("Artifact is encrypted; a key file is required", path)
            plain = _temp_path(workdir, ".gz")
            temps.append(plain)
            current = decrypt_file(current, key_file, plain)
        if _sniff(current)[:2] == GZIP_MAGIC:
            tar_path = _temp_path(workdir, ".tar")
            temps.append(tar_path)
            current = decompress_archive(current, tar_path).unwrap()

        os.makedirs(outdir, exist_ok=True)
        try:
            with tarfile.open(current, mode="r:") as tar:
                members = tar.getmembers()
                tar.extractall(outdir, members=members, filter="data")
        except tarfile.TarError as exc:
            raise SourceReadError(f"Unable to read archive ({exc})", path) from exc
        return [m.name for m in members]
    finally:
        for tmp in temps:
            try:
                os.remove(tmp)
            except FileNotFoundError:
                pass
