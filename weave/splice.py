from __future__ import annotations

from typing import BinaryIO, List, Optional

from .builder import ProgressFn
from .constants import BLOCK_SIZE, DEFAULT_CHUNK_SIZE, END_MARKER_SIZE
from .errors import AlignmentError, ArchiveCreateError, CopyError, EntryWriteError, ErrorKind, WeaveError
from .result import Outcome
from .writer import ArchiveIndex, Entry, TarStreamWriter, write_entry


def _raw_copy(src: BinaryIO, dst: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE) -> int:
    copied = 0
    while True:
        buf = src.read(chunk_size)
        if not buf:
            return copied
        dst.write(buf)
        copied += len(buf)


def _marker_offset(fh: BinaryIO, copied: int, base_index: Optional[ArchiveIndex], base_path: str) -> int:
    """Check that the copied archive ends on a clean end marker and return where it starts."""
    if copied % BLOCK_SIZE:
        raise AlignmentError(
            f"Base archive length {copied} is not a multiple of the {BLOCK_SIZE}-byte block size", base_path
        )
    if copied < END_MARKER_SIZE:
        raise AlignmentError(f"Base archive is shorter than its end marker ({copied} bytes)", base_path)
    marker_at = copied - END_MARKER_SIZE
    fh.seek(marker_at)
    if fh.read(END_MARKER_SIZE).count(0) != END_MARKER_SIZE:
        raise AlignmentError("Base archive does not end with an end-of-archive marker", base_path)
    if base_index is not None and base_index.data_end is not None and base_index.data_end != marker_at:
        raise AlignmentError(
            f"End marker at offset {marker_at} does not follow the last indexed entry (ends at {base_index.data_end})",
            base_path,
        )
    return marker_at


def splice_archive(
    base_index: Optional[ArchiveIndex],
    base_path: str,
    root_dir: str,
    paths: List[str],
    dest: str,
    *,
    progress: Optional[ProgressFn] = None,
) -> Outcome[ArchiveIndex]:
    """Copy ``base_path`` to ``dest`` and append ``paths`` over its end marker.

    The base entries are raw bytes in ``dest``; they are never re-encoded. The
    returned index holds the base entries (taken from ``base_index`` when
    given) followed by the new ones. An empty base yields a standalone
    archive of only the new entries. With no ``paths`` the result is
    byte-identical to the base archive. A partially written ``dest`` is left
    in place on failure.
    """
    try:
        fh = open(dest, "w+b")
    except OSError as exc:
        return Outcome.failure(ArchiveCreateError(f"Unable to create archive ({exc.strerror})", dest))

    outcome: Outcome[ArchiveIndex] = Outcome()
    index = ArchiveIndex(path=dest, entries=[Entry(e.name, e.start, e.length) for e in (base_index or [])])
    total = len(paths)
    try:
        with fh:
            try:
                base = open(base_path, "rb")
            except OSError as exc:
                raise ArchiveCreateError(f"Unable to open base archive ({exc.strerror})", base_path) from exc
            with base:
                try:
                    copied = _raw_copy(base, fh)
                except OSError as exc:
                    raise CopyError(f"Copy from base archive failed ({exc})", base_path) from exc

            if copied == 0:
                outcome.warn(ErrorKind.STRUCTURE, "Did not copy anything from base archive", base_path)
                # nothing of the base made it into dest
                index.entries = []
                start_at = 0
            else:
                start_at = _marker_offset(fh, copied, base_index, base_path)
            fh.seek(start_at)

            with TarStreamWriter(fh) as writer:
                for done, fs_path in enumerate(paths, start=1):
                    index.entries.append(write_entry(fh, writer, fs_path, root_dir))
                    if progress is not None:
                        progress(done, total)
    except WeaveError as exc:
        outcome.error = exc
        return outcome
    except OSError as exc:
        outcome.error = EntryWriteError(f"Unable to finalize archive ({exc})", dest)
        return outcome

    outcome.value = index
    return outcome
