from __future__ import annotations

from typing import Callable, List, Optional

from .errors import ArchiveCreateError, EntryWriteError, WeaveError
from .result import Outcome
from .writer import ArchiveIndex, TarStreamWriter, write_entry


ProgressFn = Callable[[int, int], None]


def build_archive(
    root_dir: str,
    paths: List[str],
    dest: str,
    *,
    progress: Optional[ProgressFn] = None,
) -> Outcome[ArchiveIndex]:
    """Create a new tar archive at ``dest`` holding ``paths`` in the given order.

    The first entry that cannot be written aborts the build. Bytes written up
    to that point are left on disk without an end marker; the file is not
    removed.
    """
    try:
        fh = open(dest, "wb")
    except OSError as exc:
        return Outcome.failure(ArchiveCreateError(f"Unable to create archive ({exc.strerror})", dest))

    index = ArchiveIndex(path=dest)
    total = len(paths)
    try:
        with fh, TarStreamWriter(fh) as writer:
            for done, fs_path in enumerate(paths, start=1):
                index.entries.append(write_entry(fh, writer, fs_path, root_dir))
                if progress is not None:
                    progress(done, total)
    except WeaveError as exc:
        return Outcome.failure(exc)
    except OSError as exc:
        return Outcome.failure(EntryWriteError(f"Unable to finalize archive ({exc})", dest))
    return Outcome.success(index)
