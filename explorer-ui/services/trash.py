"""Recoverable delete (trash) for volume entries.

Deleting relocates the entry into a per-volume quarantine directory instead
of removing it:

    <VolumeRoot>/<volume>/.trash/items/<trashId>/<originalName>
    <VolumeRoot>/<volume>/.trash/items/<trashId>/meta.json

Keeping the quarantine on the volume the item came from makes trashing a
plain rename in the common case. ``meta.json`` is the only persisted state;
entries are looked up by scanning every volume for ``<trashId>``.
"""

from __future__ import annotations

import json
import os
import re
import secrets
import shutil
import stat
import time
from contextlib import suppress
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from .errors import FileOpsError, PathOutsideRootError, SourceNotFoundError, ValidationError
from .fsutil import ensure_dir, is_real_dir, path_exists, tree_size_bytes
from .logging_setup import core_log, core_logger
from .names import directory_lock, find_available_folder_name, find_available_name
from .paths import (
    PathResolver,
    TransferItem,
    combine_relative_path,
    ensure_valid_name,
    normalize_relative_path,
    parent_of,
    volume_of,
)
from .transfer import move_entry


TRASH_DIRNAME = ".trash"
TRASH_ITEMS_DIRNAME = "items"
META_FILENAME = "meta.json"
_META_TMP_FILENAME = META_FILENAME + ".tmp"
_RESERVED_NAMES = (META_FILENAME, _META_TMP_FILENAME)
DEFAULT_EXCLUDED_NAMES = ("thumbs.db", ".DS_Store")

_ID_RE = re.compile(r"[0-9a-f]{8,64}")
_MAX_KIND_LEN = 10

_LOG = core_logger("trash")


def generate_trash_id() -> str:
    return secrets.token_hex(16)


def is_valid_trash_id(value: Any) -> bool:
    return isinstance(value, str) and _ID_RE.fullmatch(value) is not None


def utc_now_iso(now: Optional[float] = None) -> str:
    dt = datetime.fromtimestamp(time.time() if now is None else now, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def parse_iso_ts(value: Any) -> Optional[float]:
    """Epoch seconds for an ISO-8601 string, or None when unparsable."""
    if not isinstance(value, str) or not value.strip():
        return None
    s = value.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def kind_for(name: str, is_directory: bool) -> str:
    if is_directory:
        return "directory"
    _base, _dot, ext = name.rpartition(".")
    if not _dot or not _base:
        return "unknown"
    ext = ext.lower()
    if not ext or len(ext) > _MAX_KIND_LEN:
        return "unknown"
    return ext


@dataclass(frozen=True)
class TrashEntry:
    """Metadata persisted as meta.json next to a trashed payload."""

    id: str
    volume: str
    original_relative_path: str
    original_name: str
    original_parent: str
    is_directory: bool
    size: int
    deleted_at: str
    # On-disk payload name when the original name clashes with meta.json.
    stored_name: str = ""

    @property
    def payload_name(self) -> str:
        return self.stored_name or self.original_name

    def to_meta(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "volume": self.volume,
            "originalRelativePath": self.original_relative_path,
            "originalName": self.original_name,
            "originalParent": self.original_parent,
            "isDirectory": self.is_directory,
            "size": self.size,
            "deletedAt": self.deleted_at,
            **({"storedName": self.stored_name} if self.stored_name else {}),
        }

    @classmethod
    def from_meta(cls, data: Dict[str, Any], *, trash_id: str, volume: str) -> "TrashEntry":
        """Tolerant reader: missing optional fields fall back to what the
        on-disk location implies."""
        name = data.get("originalName")
        if not isinstance(name, str) or not name:
            raise ValidationError("Trash metadata has no original name.")
        meta_volume = data.get("volume")
        if not isinstance(meta_volume, str) or not meta_volume:
            meta_volume = volume
        parent = data.get("originalParent")
        if not isinstance(parent, str) or not parent:
            parent = meta_volume
        rel = data.get("originalRelativePath")
        if not isinstance(rel, str) or not rel:
            rel = f"{parent}/{name}"
        try:
            size = int(data.get("size") or 0)
        except (TypeError, ValueError):
            size = 0
        deleted_at = data.get("deletedAt")
        stored = data.get("storedName")
        return cls(
            id=str(data.get("id") or trash_id),
            volume=meta_volume,
            original_relative_path=rel,
            original_name=name,
            original_parent=parent,
            is_directory=bool(data.get("isDirectory")),
            size=size,
            deleted_at=deleted_at if isinstance(deleted_at, str) else "",
            stored_name=stored if isinstance(stored, str) and stored else "",
        )


class TrashStore:
    """Move entries into quarantine, list, restore and purge them."""

    def __init__(self, resolver: PathResolver, *, excluded_names: Iterable[str] = DEFAULT_EXCLUDED_NAMES) -> None:
        self.resolver = resolver
        self.excluded_names = frozenset(excluded_names)

    # --- layout ---

    def items_root(self, volume: str) -> str:
        return self.resolver.resolve_dir(f"{volume}/{TRASH_DIRNAME}/{TRASH_ITEMS_DIRNAME}")

    def _iter_volumes(self) -> Iterator[str]:
        with os.scandir(self.resolver.root) as it:
            names = sorted(
                e.name for e in it
                if e.is_dir(follow_symlinks=False) and e.name not in self.excluded_names
            )
        yield from names

    def _existing_items_root(self, volume: str) -> Optional[str]:
        try:
            root = self.items_root(volume)
        except PathOutsideRootError as exc:
            core_log("warning", "trash.items_root_refused", logger=_LOG, volume=volume, error=exc.message)
            return None
        return root if is_real_dir(root) else None

    def _iter_entries(self) -> Iterator[Tuple[str, str, str]]:
        """Yield ``(volume, trash_id, entry_dir)`` for every quarantine dir."""
        for volume in self._iter_volumes():
            root = self._existing_items_root(volume)
            if root is None:
                continue
            try:
                with os.scandir(root) as it:
                    entries = [(e.name, e.path) for e in it if e.is_dir(follow_symlinks=False)]
            except OSError as exc:
                core_log("warning", "trash.read_items_failed", logger=_LOG, volume=volume, error=exc)
                continue
            for trash_id, entry_dir in entries:
                yield volume, trash_id, entry_dir

    def find_entry(self, trash_id: str) -> Optional[Tuple[str, str]]:
        """Return ``(volume, entry_dir)`` for a trash id, scanning all volumes."""
        if not is_valid_trash_id(trash_id):
            return None
        for volume in self._iter_volumes():
            root = self._existing_items_root(volume)
            if root is None:
                continue
            candidate = os.path.join(root, trash_id)
            if is_real_dir(candidate):
                return volume, candidate
        return None

    # --- metadata ---

    @staticmethod
    def _write_meta(entry_dir: str, entry: TrashEntry) -> None:
        path = os.path.join(entry_dir, META_FILENAME)
        tmp = path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as fp:
            json.dump(entry.to_meta(), fp, ensure_ascii=False, indent=2)
        os.replace(tmp, path)

    @staticmethod
    def _read_meta(entry_dir: str) -> Dict[str, Any]:
        with open(os.path.join(entry_dir, META_FILENAME), "r", encoding="utf-8") as fp:
            data = json.load(fp)
        if not isinstance(data, dict):
            raise ValueError("trash metadata must be a JSON object")
        return data

    def _load_entry(self, volume: str, trash_id: str, entry_dir: str) -> Optional[TrashEntry]:
        try:
            return TrashEntry.from_meta(self._read_meta(entry_dir), trash_id=trash_id, volume=volume)
        except (OSError, ValueError, ValidationError) as exc:
            core_log("warning", "trash.bad_metadata", logger=_LOG, entry=entry_dir, error=exc)
            return None

    # --- delete to trash ---

    def move_items_to_trash(self, items: Any) -> List[Dict[str, Any]]:
        if not isinstance(items, (list, tuple)) or not items:
            raise ValidationError("At least one item is required.")
        results = [self._trash_one(raw) for raw in items]
        core_log(
            "info",
            "trash.move",
            logger=_LOG,
            items=len(results),
            trashed=sum(1 for r in results if r.get("status") == "trashed"),
        )
        return results

    def _trash_one(self, raw: Any) -> Dict[str, Any]:
        rel = raw if isinstance(raw, str) else ""
        try:
            item = TransferItem.from_payload(raw)
            rel = item.relative_path
            absolute = self.resolver.resolve(rel)
            if not path_exists(absolute):
                return {"path": rel, "status": "missing"}

            volume = volume_of(rel)
            if volume is None or rel == volume:
                raise ValidationError(f"Could not determine volume for path: {rel}")
            if rel.split("/")[1] == TRASH_DIRNAME:
                raise ValidationError("Item is already in the trash.")

            st = os.lstat(absolute)
            is_directory = stat.S_ISDIR(st.st_mode)
            size = tree_size_bytes(absolute)
            entry = TrashEntry(
                id=generate_trash_id(),
                volume=volume,
                original_relative_path=rel,
                original_name=item.name,
                original_parent=parent_of(rel) or volume,
                is_directory=is_directory,
                size=int(st.st_size if size is None else size),
                deleted_at=utc_now_iso(),
                stored_name=("_" + item.name) if item.name in _RESERVED_NAMES else "",
            )

            entry_dir = os.path.join(ensure_dir(self.items_root(volume)), entry.id)
            os.mkdir(entry_dir)
            # Metadata first: a quarantine dir with a payload is never unlisted.
            self._write_meta(entry_dir, entry)
            payload = os.path.join(entry_dir, entry.payload_name)
            try:
                move_entry(absolute, payload, is_directory)
            except (FileOpsError, OSError):
                if not path_exists(payload):
                    with suppress(OSError):
                        shutil.rmtree(entry_dir)
                raise

            core_log("info", "trash.trashed", logger=_LOG, path=rel, id=entry.id)
            return {"path": rel, "status": "trashed", "id": entry.id}
        except (FileOpsError, OSError) as exc:
            core_log("error", "trash.move_failed", logger=_LOG, path=rel, error=exc)
            message = exc.message if isinstance(exc, FileOpsError) else (str(exc) or exc.__class__.__name__)
            return {"path": rel, "status": "error", "error": message}

    # --- listing ---

    def _describe(self, entry: TrashEntry, trash_id: str, entry_dir: str) -> Dict[str, Any]:
        payload = os.path.join(entry_dir, entry.payload_name)
        try:
            st: Optional[os.stat_result] = os.lstat(payload)
        except OSError as exc:
            core_log("warning", "trash.payload_missing", logger=_LOG, path=payload, error=exc)
            st = None

        if st is None:
            is_directory, size = entry.is_directory, entry.size
        else:
            is_directory = stat.S_ISDIR(st.st_mode)
            # A trashed tree does not change; its size was measured at delete time.
            size = entry.size if is_directory else int(st.st_size)

        return {
            "id": trash_id,
            "name": entry.original_name,
            "volume": entry.volume,
            "kind": kind_for(entry.original_name, is_directory),
            "isDirectory": is_directory,
            "size": size,
            "deletedAt": entry.deleted_at or None,
            "originalRelativePath": entry.original_relative_path,
            "originalParent": entry.original_parent,
            "missing": st is None,
        }

    def list_trash_items(self) -> List[Dict[str, Any]]:
        """All trash entries, most recently deleted first."""
        items: List[Dict[str, Any]] = []
        for volume, trash_id, entry_dir in self._iter_entries():
            entry = self._load_entry(volume, trash_id, entry_dir)
            if entry is None:
                continue
            items.append(self._describe(entry, trash_id, entry_dir))
        items.sort(key=lambda it: parse_iso_ts(it.get("deletedAt")) or 0.0, reverse=True)
        return items

    def stats(self) -> Dict[str, Any]:
        items = self.list_trash_items()
        return {"items": len(items), "usedBytes": sum(int(it.get("size") or 0) for it in items)}

    # --- restore ---

    def restore_trash_item(self, trash_id: Any) -> Dict[str, Any]:
        try:
            found = self.find_entry(trash_id)
            if found is None:
                return {"id": trash_id, "status": "missing"}
            volume, entry_dir = found
            path = self._restore_entry(trash_id, volume, entry_dir)
            core_log("info", "trash.restored", logger=_LOG, id=trash_id, path=path)
            return {"id": trash_id, "status": "restored", "path": path}
        except (FileOpsError, OSError, ValueError) as exc:
            core_log("error", "trash.restore_failed", logger=_LOG, id=trash_id, error=exc)
            message = exc.message if isinstance(exc, FileOpsError) else (str(exc) or exc.__class__.__name__)
            return {"id": trash_id, "status": "error", "error": message}

    def restore_trash_items(self, ids: Any) -> List[Dict[str, Any]]:
        if not isinstance(ids, (list, tuple)) or not ids:
            raise ValidationError("At least one id is required.")
        return [self.restore_trash_item(trash_id) for trash_id in ids]

    def _restore_entry(self, trash_id: str, volume: str, entry_dir: str) -> str:
        entry = TrashEntry.from_meta(self._read_meta(entry_dir), trash_id=trash_id, volume=volume)
        ensure_valid_name(entry.original_name)

        payload = os.path.join(entry_dir, entry.payload_name)
        if not path_exists(payload):
            raise SourceNotFoundError("Trashed item is missing from the trash.")

        # The quarantine's own volume wins; the parent must stay inside it.
        parent_rel = normalize_relative_path(entry.original_parent)
        if volume_of(parent_rel) != volume:
            parent_rel = volume
        parent_abs = self.resolver.resolve_dir(parent_rel)
        if not os.path.isdir(parent_abs):
            parent_rel = volume
            parent_abs = ensure_dir(self.resolver.resolve_dir(volume))

        is_directory = is_real_dir(payload)
        with directory_lock(parent_abs):
            if entry.is_directory:
                name = find_available_folder_name(parent_abs, entry.original_name)
            else:
                name = find_available_name(parent_abs, entry.original_name)
            move_entry(payload, os.path.join(parent_abs, name), is_directory)

        try:
            shutil.rmtree(entry_dir)
        except OSError as exc:
            # The payload is already back in place; only metadata is left over.
            core_log("error", "trash.cleanup_failed", logger=_LOG, entry=entry_dir, error=exc)
        return combine_relative_path(parent_rel, name)

    # --- permanent removal ---

    def delete_trash_items(self, ids: Any) -> List[Dict[str, Any]]:
        if not isinstance(ids, (list, tuple)) or not ids:
            raise ValidationError("At least one id is required.")
        results: List[Dict[str, Any]] = []
        for trash_id in ids:
            found = self.find_entry(trash_id)
            if found is None:
                results.append({"id": trash_id, "status": "missing"})
                continue
            try:
                shutil.rmtree(found[1])
            except OSError as exc:
                core_log("error", "trash.delete_failed", logger=_LOG, id=trash_id, error=exc)
                results.append({"id": trash_id, "status": "error", "error": str(exc) or "delete_failed"})
                continue
            results.append({"id": trash_id, "status": "deleted"})
        core_log("info", "trash.delete", logger=_LOG, items=len(results))
        return results

    def empty_trash(self) -> Dict[str, Any]:
        deleted = 0
        errors: List[Dict[str, Any]] = []
        for _volume, trash_id, entry_dir in list(self._iter_entries()):
            try:
                shutil.rmtree(entry_dir)
                deleted += 1
            except OSError as exc:
                errors.append({"id": trash_id, "error": str(exc) or "delete_failed"})
        core_log("info", "trash.clear", logger=_LOG, deleted=deleted, errors=len(errors))
        return {"deleted": deleted, "errors": errors}

    def _deleted_ts(self, volume: str, trash_id: str, entry_dir: str) -> Optional[float]:
        entry = self._load_entry(volume, trash_id, entry_dir)
        ts = parse_iso_ts(entry.deleted_at) if entry is not None else None
        if ts is not None:
            return ts
        try:
            return os.lstat(entry_dir).st_mtime
        except OSError:
            return None

    def purge_expired(self, ttl_days: int, *, now: Optional[float] = None) -> List[str]:
        """Permanently delete entries trashed more than ``ttl_days`` ago."""
        if ttl_days <= 0:
            return []
        cutoff = (time.time() if now is None else now) - ttl_days * 86400
        purged: List[str] = []
        for volume, trash_id, entry_dir in list(self._iter_entries()):
            ts = self._deleted_ts(volume, trash_id, entry_dir)
            if ts is None or ts >= cutoff:
                continue
            try:
                shutil.rmtree(entry_dir)
            except OSError as exc:
                core_log("warning", "trash.purge_failed", logger=_LOG, id=trash_id, error=exc)
                continue
            purged.append(trash_id)
        if purged:
            core_log("info", "trash.purge", logger=_LOG, purged=len(purged), ttl_days=ttl_days)
        return purged
