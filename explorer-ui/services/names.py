"""Collision-free name allocation inside a destination directory.

The check-then-use pattern is racy against other writers. Callers hold
``directory_lock(dest_dir)`` from allocation until the entry is created, which
serializes writers inside this process; against other processes the copy and
move primitives refuse to overwrite an existing entry, so a lost race surfaces
as ``AlreadyExistsError`` and the caller may retry with a fresh name.
"""

from __future__ import annotations

import os
import threading
import weakref

from .errors import AlreadyExistsError
from .fsutil import path_exists
from .paths import split_name


DEFAULT_FOLDER_NAME = "Untitled Folder"
MAX_NAME_ATTEMPTS = 10000

# Entries vanish once no caller references the lock.
_LOCKS: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
_LOCKS_GUARD = threading.Lock()


def directory_lock(directory: str) -> threading.Lock:
    """Process-wide lock keyed by the absolute destination directory."""
    key = os.path.normcase(os.path.abspath(directory))
    with _LOCKS_GUARD:
        lock = _LOCKS.get(key)
        if lock is None:
            lock = threading.Lock()
            _LOCKS[key] = lock
        return lock


def find_available_name(directory: str, desired_name: str) -> str:
    """``x.txt`` -> ``x (1).txt`` -> ``x (2).txt`` ... until one is free."""
    if not path_exists(os.path.join(directory, desired_name)):
        return desired_name

    base, extension = split_name(desired_name)
    for counter in range(1, MAX_NAME_ATTEMPTS + 1):
        candidate = f"{base} ({counter}){extension}"
        if not path_exists(os.path.join(directory, candidate)):
            return candidate
    raise AlreadyExistsError(f"No free name left for {desired_name!r}")


def find_available_folder_name(directory: str, base_name: str = DEFAULT_FOLDER_NAME) -> str:
    """``Untitled Folder`` -> ``Untitled Folder 2`` -> ``Untitled Folder 3`` ..."""
    if not path_exists(os.path.join(directory, base_name)):
        return base_name

    for counter in range(2, MAX_NAME_ATTEMPTS + 2):
        candidate = f"{base_name} {counter}"
        if not path_exists(os.path.join(directory, candidate)):
            return candidate
    raise AlreadyExistsError(f"No free folder name left for {base_name!r}")
