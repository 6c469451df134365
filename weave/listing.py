from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import List, Pattern, Sequence

from .errors import SourceReadError
from .pathutil import norm_path


@dataclass
class FileListing:
    root: str
    paths: List[str] = field(default_factory=list)  # relative, forward slashes, sorted walk order
    total_size: int = 0
    newest_mtime: int = 0


def matches_any(rel_path: str, patterns: Sequence[Pattern[str]]) -> bool:
    return any(p.search(rel_path) for p in patterns)


def list_files(root: str, ignore: Sequence[Pattern[str]] = ()) -> FileListing:
    """Walk ``root`` in a stable order and collect regular files.

    Files whose relative path matches an ``ignore`` pattern are skipped and do
    not count towards the size/mtime totals. Symlinked directories are not
    followed, and entries that are not regular files (including dangling
    symlinks) are skipped.
    """
    if not os.path.isdir(root):
        raise SourceReadError("Source directory does not exist", root)
    listing = FileListing(root=os.path.abspath(root))
    for dirpath, dirnames, filenames in os.walk(listing.root):
        dirnames[:] = sorted(d for d in dirnames if not os.path.islink(os.path.join(dirpath, d)))
        for fn in sorted(filenames):
            full = os.path.join(dirpath, fn)
            rel = norm_path(os.path.relpath(full, start=listing.root))
            if matches_any(rel, ignore):
                continue
            # dangling links and special files are not archived
            if not os.path.isfile(full):
                continue
            try:
                st = os.stat(full)
            except OSError as exc:
                raise SourceReadError(f"Unable to query file ({exc.strerror})", full) from exc
            listing.paths.append(rel)
            listing.total_size += st.st_size
            listing.newest_mtime = max(listing.newest_mtime, int(st.st_mtime))
    return listing


def working_stem(listing: FileListing) -> str:
    """Name prefix for working files; unchanged inputs give the same stem."""
    return f"{listing.total_size}-{listing.newest_mtime}"


def compile_patterns(patterns: Sequence[str]) -> List[Pattern[str]]:
    return [re.compile(p) for p in patterns]
