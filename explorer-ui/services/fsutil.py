"""Small filesystem helpers shared by the transfer engine and the trash."""

from __future__ import annotations

import os
import shutil
import stat
from typing import Optional


def ensure_dir(path: str) -> str:
    os.makedirs(path, exist_ok=True)
    return path


def path_exists(path: str) -> bool:
    """True when something (including a dangling symlink) occupies ``path``."""
    return os.path.lexists(path)


def is_real_dir(path: str) -> bool:
    """Directory check that does not follow a final symlink."""
    try:
        st = os.lstat(path)
    except FileNotFoundError:
        return False
    return stat.S_ISDIR(st.st_mode)


def remove_entry(path: str) -> None:
    """Remove a file, symlink or directory tree (symlinks are never followed)."""
    if is_real_dir(path):
        shutil.rmtree(path)
    else:
        os.unlink(path)


def is_same_or_descendant(parent: str, child: str) -> bool:
    parent = os.path.normpath(parent)
    child = os.path.normpath(child)
    if child == parent:
        return True
    prefix = parent if parent.endswith(os.sep) else parent + os.sep
    return child.startswith(prefix)


def tree_size_bytes(path: str, *, max_items: int = 250_000) -> Optional[int]:
    """Total size of a file or directory tree, without following symlinks.

    Returns None when the tree is larger than ``max_items`` entries or cannot
    be fully read.
    """
    try:
        st = os.lstat(path)
    except OSError:
        return None
    if not stat.S_ISDIR(st.st_mode):
        return int(st.st_size)

    total = 0
    items = 0
    stack = [path]
    while stack:
        current = stack.pop()
        try:
            with os.scandir(current) as it:
                for entry in it:
                    items += 1
                    if items > max_items:
                        return None
                    if entry.is_dir(follow_symlinks=False):
                        stack.append(entry.path)
                    else:
                        total += int(entry.stat(follow_symlinks=False).st_size)
        except OSError:
            return None
    return total
