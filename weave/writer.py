from __future__ import annotations

import os
import tarfile
from dataclasses import dataclass, field
from typing import BinaryIO, Iterator, List, Optional

from .constants import DEFAULT_CHUNK_SIZE, ENTRY_MODE
from .errors import EntryWriteError, SourceReadError
from .pathutil import archive_name, resolve_source


@dataclass
class Entry:
    name: str
    start: int
    length: int  # header + content + block padding

    @property
    def end(self) -> int:
        return self.start + self.length


@dataclass
class ArchiveIndex:
    """Byte layout of one archive, gathered while it is written.

    Only kept for diagnostics; a standard tar reader does not need it.
    """
    path: str
    entries: List[Entry] = field(default_factory=list)

    def __iter__(self) -> Iterator[Entry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def names(self) -> List[str]:
        return [e.name for e in self.entries]

    @property
    def data_end(self) -> Optional[int]:
        """Offset just past the last entry (where the end marker starts), if any."""
        if not self.entries:
            return None
        return self.entries[-1].end


class TarStreamWriter:
    """Tar writer attached to an already-open, seekable stream.

    The writer starts at the stream's current offset and knows nothing about
    bytes before it, which is what lets the splicer resume an existing archive.
    ``close()`` writes the two-block end marker and truncates the optional
    record padding tarfile adds after it, so the archive ends on the marker.
    """

    def __init__(self, fh: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.fh = fh
        self.tar: Optional[tarfile.TarFile] = tarfile.open(
            fileobj=fh,
            mode="w",
            format=tarfile.PAX_FORMAT,
            copybufsize=chunk_size,
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.close()
        else:
            self.abandon()

    @property
    def closed(self) -> bool:
        return self.tar is None

    def add(self, info: tarfile.TarInfo, src: BinaryIO) -> None:
        if self.tar is None:
            raise EntryWriteError("Archive writer is closed", info.name)
        self.tar.addfile(info, src)

    def close(self) -> int:
        """Finalize the archive and return the offset of its last byte + 1."""
        if self.tar is None:
            return self.fh.tell()
        tar, self.tar = self.tar, None
        tar.close()
        end = tar.offset
        self.fh.truncate(end)
        self.fh.seek(end)
        return end

    def abandon(self) -> None:
        """Drop the writer without writing an end marker (failed archives stay unterminated)."""
        self.tar = None


def write_entry(fh: BinaryIO, writer: TarStreamWriter, fs_path: str, root_dir: str) -> Entry:
    """Write one file as a tar entry at the stream's current position.

    Args:
        fh: The open archive stream ``writer`` is attached to.
        writer: Tar writer bound to ``fh``.
        fs_path: Source file; relative paths are taken from ``root_dir``.
        root_dir: Directory stripped from the entry name.

    Returns:
        The entry with its header offset and total length in the stream.

    Raises:
        SourceReadError: The source cannot be stat'ed, opened, or lies outside ``root_dir``.
        EntryWriteError: Writing the header or copying the content failed. The
            entry may be partially written; the archive must be discarded.
    """
    start = fh.tell()
    src_path = resolve_source(fs_path, root_dir)
    try:
        st = os.stat(src_path)
    except OSError as exc:
        raise SourceReadError(f"Unable to query file ({exc.strerror})", src_path) from exc
    try:
        name = archive_name(fs_path, root_dir)
    except ValueError as exc:
        raise SourceReadError(f"Unable to name entry ({exc})", src_path) from exc

    info = tarfile.TarInfo(name)
    info.type = tarfile.REGTYPE
    info.size = st.st_size
    info.mode = ENTRY_MODE
    info.mtime = int(st.st_mtime)

    try:
        src = open(src_path, "rb")
    except OSError as exc:
        raise SourceReadError(f"Unable to open for reading ({exc.strerror})", src_path) from exc
    with src:
        try:
            writer.add(info, src)
        except (OSError, ValueError) as exc:
            # tarfile raises OSError("unexpected end of data") when the source shrinks mid-copy
            raise EntryWriteError(f"Unable to write entry {name} ({exc})", src_path) from exc

    return Entry(name=name, start=start, length=fh.tell() - start)
