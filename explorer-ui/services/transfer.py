"""Copy/move engine for volume entries.

Single-entry primitives (``copy_entry`` / ``move_entry``) work on verified
absolute paths and never overwrite an existing destination. The batch
helpers take request items, resolve them through a ``PathResolver`` and
report one result per item; one failing item never aborts the batch.
"""

from __future__ import annotations

import errno
import os
import shutil
from contextlib import suppress
from typing import Any, Dict, List, Optional

from .errors import (
    AlreadyExistsError,
    CrossDeviceFallbackError,
    FileOpsError,
    SourceNotFoundError,
    ValidationError,
)
from .fsutil import ensure_dir, is_real_dir, is_same_or_descendant, path_exists, remove_entry
from .logging_setup import core_log, core_logger
from .names import DEFAULT_FOLDER_NAME, directory_lock, find_available_folder_name, find_available_name
from .paths import PathResolver, TransferItem, combine_relative_path, ensure_valid_name, normalize_relative_path, parent_of


_LOG = core_logger("transfer")

_COPY_CHUNK = 1024 * 1024
_OPERATIONS = ("copy", "move")
# link(2) failures meaning "no hard links here" (FAT, exFAT, some FUSE mounts).
_NO_HARDLINK_ERRNOS = frozenset(
    (errno.EPERM, errno.EMLINK, errno.ENOSYS, errno.EOPNOTSUPP, getattr(errno, "ENOTSUP", errno.EOPNOTSUPP))
)


# --- single-entry primitives ---


def _copy_metadata(src: str, dst: str) -> None:
    # Timestamps/modes are best-effort; some mounts (exFAT, FUSE) reject them.
    try:
        shutil.copystat(src, dst, follow_symlinks=False)
    except (OSError, NotImplementedError):
        pass


def _copy_file(src: str, dst: str) -> None:
    # "xb" fails with FileExistsError instead of truncating a file that
    # appeared after the existence check.
    with open(src, "rb") as fsrc, open(dst, "xb") as fdst:
        shutil.copyfileobj(fsrc, fdst, _COPY_CHUNK)
    _copy_metadata(src, dst)


def _copy_tree(src_dir: str, dst_dir: str) -> None:
    os.mkdir(dst_dir)
    with os.scandir(src_dir) as it:
        for entry in it:
            dp = os.path.join(dst_dir, entry.name)
            if entry.is_symlink():
                os.symlink(os.readlink(entry.path), dp)
            elif entry.is_dir(follow_symlinks=False):
                _copy_tree(entry.path, dp)
            else:
                _copy_file(entry.path, dp)
    _copy_metadata(src_dir, dst_dir)


def _exists_error(destination: str) -> AlreadyExistsError:
    return AlreadyExistsError(f"Destination already exists: {os.path.basename(destination)}")


def copy_entry(source: str, destination: str, is_directory: bool) -> None:
    """Copy a file, symlink or directory tree to a destination that must not exist."""
    if path_exists(destination):
        raise _exists_error(destination)
    try:
        if os.path.islink(source):
            os.symlink(os.readlink(source), destination)
        elif is_directory:
            _copy_tree(source, destination)
        else:
            _copy_file(source, destination)
    except FileExistsError as exc:
        raise _exists_error(destination) from exc


def _rename_dir(source: str, destination: str) -> Optional[OSError]:
    """Rename a directory; returns the error that calls for a copy instead."""
    try:
        os.rename(source, destination)
    except OSError as exc:
        # rename(2) refuses a non-empty target directory.
        if exc.errno in (errno.EEXIST, errno.ENOTEMPTY):
            raise _exists_error(destination) from exc
        if exc.errno != errno.EXDEV:
            raise
        return exc
    return None


def _link_file(source: str, destination: str) -> Optional[OSError]:
    """Move a file or symlink by hard link + unlink.

    Unlike rename(2), link(2) fails on an existing destination, so an entry
    created by another writer after our existence check is never replaced.
    Returns the error that calls for a copy instead (other device, or a
    filesystem without hard links).
    """
    try:
        os.link(source, destination, follow_symlinks=False)
    except FileExistsError as exc:
        raise _exists_error(destination) from exc
    except OSError as exc:
        if exc.errno == errno.EXDEV or exc.errno in _NO_HARDLINK_ERRNOS:
            return exc
        raise
    try:
        os.unlink(source)
    except OSError:
        # Both names point at the same inode; drop the new one.
        with suppress(OSError):
            os.unlink(destination)
        raise
    return None


def move_entry(source: str, destination: str, is_directory: bool) -> None:
    """Move ``source`` to ``destination`` without replacing an existing entry.

    Falls back to copy+delete when no in-place move is possible.
    """
    if path_exists(destination):
        raise _exists_error(destination)
    reason = _rename_dir(source, destination) if is_directory else _link_file(source, destination)
    if reason is None:
        return

    core_log("info", "transfer.move_copy_fallback", logger=_LOG, src=source, dst=destination, reason=reason)

    try:
        copy_entry(source, destination, is_directory)
    except (FileOpsError, OSError) as exc:
        # Keep the source: the copy is incomplete.
        raise CrossDeviceFallbackError(f"Copy fallback of a move failed, source kept: {exc}") from exc

    try:
        remove_entry(source)
    except OSError as exc:
        raise CrossDeviceFallbackError(f"Copied but could not remove the source: {exc}") from exc


# --- batch operations ---


def _item_label(raw: Any) -> str:
    """Best-effort display path for items that fail before resolution."""
    if isinstance(raw, str):
        return raw
    if not isinstance(raw, dict):
        return ""
    parts = [raw.get("relativePath") or raw.get("path"), raw.get("name")]
    return "/".join(p for p in parts if isinstance(p, str) and p)


def _error_result(path: str, exc: Exception) -> Dict[str, Any]:
    if isinstance(exc, FileOpsError):
        return {"path": path, "status": "error", "error": exc.message, "code": exc.code}
    return {"path": path, "status": "error", "error": str(exc) or exc.__class__.__name__}


def _require_items(items: Any) -> List[Any]:
    if not isinstance(items, (list, tuple)) or not items:
        raise ValidationError("At least one item is required.")
    return list(items)


def _transfer_one(
    raw: Any,
    *,
    dest_rel: str,
    dest_abs: str,
    operation: str,
    resolver: PathResolver,
) -> Dict[str, Any]:
    label = _item_label(raw)
    try:
        item = TransferItem.from_payload(raw)
        src_rel = item.relative_path
        label = src_rel
        src_abs = resolver.resolve(src_rel)
        if not path_exists(src_abs):
            raise SourceNotFoundError(f"Source path not found: {src_rel}")

        if operation == "move" and parent_of(src_rel) == dest_rel:
            return {"from": src_rel, "to": src_rel, "status": "skipped", "skipped": True}

        is_directory = is_real_dir(src_abs)
        if is_directory and is_same_or_descendant(src_abs, dest_abs):
            raise ValidationError(f"Cannot {operation} a folder into itself: {src_rel}")

        with directory_lock(dest_abs):
            name = find_available_name(dest_abs, item.name)
            target_abs = os.path.join(dest_abs, name)
            if operation == "copy":
                copy_entry(src_abs, target_abs, is_directory)
            else:
                move_entry(src_abs, target_abs, is_directory)

        return {"from": src_rel, "to": combine_relative_path(dest_rel, name), "status": "transferred"}
    except SourceNotFoundError as exc:
        return {"path": label, "status": "missing", "error": exc.message}
    except (FileOpsError, OSError) as exc:
        core_log("warning", f"transfer.{operation}_failed", logger=_LOG, path=label, error=exc)
        return _error_result(label, exc)


def transfer_items(items: Any, destination: Any, operation: str, resolver: PathResolver) -> Dict[str, Any]:
    """Copy or move request items into ``destination`` (a relative directory).

    Returns ``{"destination": rel, "items": [...]}`` with one result per item,
    in request order. Whole-request problems raise ``ValidationError``.
    """
    if operation not in _OPERATIONS:
        raise ValidationError(f"Unsupported operation: {operation}")
    entries = _require_items(items)
    if destination is not None and not isinstance(destination, str):
        raise ValidationError("Destination must be a string.")

    dest_rel = normalize_relative_path(destination)
    if not dest_rel:
        raise ValidationError(
            "Cannot copy or move items to the root volume path. Please select a specific volume first."
        )
    dest_abs = resolver.resolve_dir(dest_rel)
    if path_exists(dest_abs) and not os.path.isdir(dest_abs):
        raise ValidationError("Destination must be a directory.")
    ensure_dir(dest_abs)

    results = [
        _transfer_one(raw, dest_rel=dest_rel, dest_abs=dest_abs, operation=operation, resolver=resolver)
        for raw in entries
    ]
    core_log(
        "info",
        f"transfer.{operation}",
        logger=_LOG,
        destination=dest_rel,
        items=len(results),
        transferred=sum(1 for r in results if r.get("status") == "transferred"),
    )
    return {"destination": dest_rel, "items": results}


def delete_items(items: Any, resolver: PathResolver) -> List[Dict[str, Any]]:
    """Permanently remove request items (no trash)."""
    results: List[Dict[str, Any]] = []
    for raw in _require_items(items):
        label = _item_label(raw)
        try:
            label, absolute = resolver.resolve_item(raw)
            if not path_exists(absolute):
                results.append({"path": label, "status": "missing"})
                continue
            remove_entry(absolute)
            results.append({"path": label, "status": "deleted"})
        except (FileOpsError, OSError) as exc:
            core_log("warning", "transfer.delete_failed", logger=_LOG, path=label, error=exc)
            results.append(_error_result(label, exc))
    core_log("info", "transfer.delete", logger=_LOG, items=len(results))
    return results


def create_folder(parent: Any, name: Optional[str], resolver: PathResolver) -> str:
    """Create a new folder under ``parent`` and return its relative path."""
    if parent is not None and not isinstance(parent, str):
        raise ValidationError("Path must be a string.")
    parent_rel = normalize_relative_path(parent)
    parent_abs = resolver.resolve_dir(parent_rel)
    if not path_exists(parent_abs):
        raise SourceNotFoundError("Destination path does not exist.")
    if not os.path.isdir(parent_abs):
        raise ValidationError("Destination must be an existing directory.")

    base = ensure_valid_name(name) if isinstance(name, str) and name.strip() else DEFAULT_FOLDER_NAME

    with directory_lock(parent_abs):
        final = find_available_folder_name(parent_abs, base)
        try:
            os.mkdir(os.path.join(parent_abs, final))
        except FileExistsError as exc:
            raise AlreadyExistsError(f"Directory \"{final}\" already exists") from exc

    rel = combine_relative_path(parent_rel, final)
    core_log("info", "transfer.mkdir", logger=_LOG, path=rel)
    return rel


def rename_item(parent: Any, name: Any, new_name: Any, resolver: PathResolver) -> str:
    """Rename ``parent/name`` to ``parent/new_name`` and return the new relative path."""
    item = TransferItem.from_payload({"name": name, "path": parent if isinstance(parent, str) else ""})
    current_rel = item.relative_path
    current_abs = resolver.resolve(current_rel)
    if not path_exists(current_abs):
        raise SourceNotFoundError("Item not found.")

    validated = ensure_valid_name(new_name)
    if validated == item.name:
        return current_rel

    target_rel = combine_relative_path(item.path, validated)
    target_abs = resolver.resolve(target_rel)

    with directory_lock(os.path.dirname(current_abs)):
        if path_exists(target_abs) and not _same_entry(current_abs, target_abs):
            raise AlreadyExistsError(f"The name \"{validated}\" is already taken.")
        os.rename(current_abs, target_abs)

    core_log("info", "transfer.rename", logger=_LOG, src=current_rel, dst=target_rel)
    return target_rel


def _same_entry(a: str, b: str) -> bool:
    # Case-only renames on case-insensitive filesystems (lstat: never via a link).
    try:
        sa, sb = os.lstat(a), os.lstat(b)
    except OSError:
        return False
    return (sa.st_dev, sa.st_ino) == (sb.st_dev, sb.st_ino)
