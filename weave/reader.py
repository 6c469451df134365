from __future__ import annotations

import tarfile

from .constants import BLOCK_SIZE
from .writer import ArchiveIndex, Entry


def _padded(size: int) -> int:
    return -(-size // BLOCK_SIZE) * BLOCK_SIZE


def read_index(archive_path: str) -> ArchiveIndex:
    """Rebuild the entry layout of an existing tar archive with a standard reader.

    Offsets point at the first header of each member, extended (pax/GNU long
    name) headers included.
    """
    index = ArchiveIndex(path=archive_path)
    with tarfile.open(archive_path, mode="r:") as tar:
        for info in tar:
            end = info.offset_data + _padded(info.size) if info.isreg() else info.offset_data
            index.entries.append(Entry(name=info.name, start=info.offset, length=end - info.offset))
    return index
