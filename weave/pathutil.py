from __future__ import annotations

import os


def norm_path(p: str) -> str:
    """Normalize archive paths to a canonical forward-slash form.

    Rules:
    - Convert backslashes to slashes
    - Strip leading/trailing slashes
    - Remove empty and '.' segments
    - Reject '..' segments
    """
    p = p.replace("\\", "/").strip("/")
    parts = [q for q in p.split("/") if q not in ("", ".")]
    for q in parts:
        if q == "..":
            raise ValueError("Path may not contain '..'")
    return "/".join(parts)


def resolve_source(fs_path: str, root_dir: str) -> str:
    """Return the filesystem path for ``fs_path``; relative paths live under ``root_dir``."""
    if os.path.isabs(fs_path):
        return fs_path
    return os.path.join(root_dir, fs_path)


def archive_name(fs_path: str, root_dir: str) -> str:
    """Strip ``root_dir`` from ``fs_path`` and return the archive-relative name.

    Raises ValueError when the path does not live under the root.
    """
    full = os.path.abspath(resolve_source(fs_path, root_dir))
    root = os.path.abspath(root_dir)
    name = norm_path(os.path.relpath(full, start=root))
    if not name:
        raise ValueError("Path names the root directory itself")
    return name
