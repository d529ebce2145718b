"""Volume path handling: normalization, containment and name validation.

Client-supplied paths are always *relative* to the configured volume root and
use ``/`` as separator. Safety is enforced in two independent layers:

1) ``normalize_relative_path`` resolves ``.``/``..`` lexically and rejects any
   path that would climb above the root (pure string work, no disk I/O).
2) ``resolve_volume_path`` joins the normalized path with the root and checks
   again that the result is the root itself or strictly below it.

``PathResolver`` binds both layers to one root and additionally refuses paths
whose parent directory resolves (through symlinks) outside the root.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from .errors import InvalidPathError, PathOutsideRootError, ValidationError


_RESERVED_NAMES = (".", "..")


def normalize_relative_path(value: Optional[str]) -> str:
    """Return the canonical relative form of ``value`` ('' is the root)."""
    if value is None:
        return ""
    if not isinstance(value, str):
        raise InvalidPathError("path must be a string")
    if "\x00" in value:
        raise InvalidPathError("path must not contain NUL bytes")

    parts: list[str] = []
    for seg in value.replace("\\", "/").split("/"):
        if seg in ("", "."):
            continue
        if seg == "..":
            if not parts:
                raise InvalidPathError("Invalid path. Traversal outside the volume root is not allowed.")
            parts.pop()
            continue
        parts.append(seg)
    return "/".join(parts)


def _root_prefix(root: str) -> str:
    return root if root.endswith(os.sep) else root + os.sep


def _is_within(root: str, path: str) -> bool:
    return path == root or path.startswith(_root_prefix(root))


def resolve_volume_path(relative: Optional[str], root: str) -> str:
    """Join ``root`` with a normalized relative path and verify containment."""
    root = os.path.abspath(root)
    rel = normalize_relative_path(relative)
    if rel:
        absolute = os.path.normpath(os.path.join(root, *rel.split("/")))
    else:
        absolute = root
    # Last line of defense; must hold even if normalization is wrong.
    if not _is_within(root, absolute):
        raise PathOutsideRootError("Resolved path is outside the configured volume root.")
    return absolute


def combine_relative_path(parent: Optional[str], name: str) -> str:
    base = normalize_relative_path(parent)
    if not base:
        return normalize_relative_path(name)
    return normalize_relative_path(f"{base}/{name}")


def ensure_valid_name(name: Any) -> str:
    """Validate a bare file/folder name and return it trimmed."""
    if not isinstance(name, str):
        raise ValidationError("A valid name is required.")
    cleaned = name.strip()
    if not cleaned:
        raise ValidationError("Name cannot be empty.")
    if "/" in cleaned or "\\" in cleaned:
        raise ValidationError("Name cannot contain path separators.")
    if "\x00" in cleaned:
        raise ValidationError("Name cannot contain NUL bytes.")
    if cleaned in _RESERVED_NAMES:
        raise ValidationError("This name is not allowed.")
    return cleaned


def split_name(name: str) -> Tuple[str, str]:
    """Split ``name`` into ``(base, extension)`` on the last dot.

    ``archive.tar.gz`` -> ``("archive.tar", ".gz")``; names without a dot (or
    with only a leading one, like ``.bashrc``) have an empty extension.
    """
    idx = name.rfind(".")
    if idx <= 0:
        return name, ""
    return name[:idx], name[idx:]


def volume_of(relative: str) -> Optional[str]:
    """First segment of a normalized relative path, or None for the root."""
    rel = normalize_relative_path(relative)
    if not rel:
        return None
    return rel.split("/", 1)[0]


def parent_of(relative: str) -> str:
    rel = normalize_relative_path(relative)
    head, _sep, _tail = rel.rpartition("/")
    return head


@dataclass(frozen=True)
class TransferItem:
    """One file-manager entry named by a request: ``path`` is its parent."""

    name: str
    path: str = ""
    kind: Optional[str] = None

    @property
    def relative_path(self) -> str:
        return combine_relative_path(self.path, self.name)

    @classmethod
    def from_payload(cls, payload: Any) -> "TransferItem":
        """Build an item from any of the accepted request shapes.

        Accepted: ``{"name", "path"}`` (path is the parent directory),
        ``{"relativePath"}`` or ``{"path"}`` alone (full path), or a plain
        string holding the full relative path.
        """
        if isinstance(payload, TransferItem):
            return payload
        if isinstance(payload, str):
            payload = {"relativePath": payload}
        if not isinstance(payload, dict):
            raise ValidationError("Each item must be an object.")

        kind = payload.get("kind")
        kind = kind if isinstance(kind, str) else None
        name = payload.get("name")

        if isinstance(payload.get("relativePath"), str) or not isinstance(name, str):
            full = payload.get("relativePath")
            if not isinstance(full, str):
                full = payload.get("path")
            rel = normalize_relative_path(full if isinstance(full, str) else "")
            if not rel:
                raise ValidationError("Each item must include a name.")
            parent, _sep, name = rel.rpartition("/")
        else:
            parent = payload.get("path") or ""
            if not isinstance(parent, str):
                raise ValidationError("Item path must be a string.")

        # Names of existing entries are kept verbatim; validation only rejects
        # separators and reserved names.
        ensure_valid_name(name)
        return cls(name=name, path=normalize_relative_path(parent), kind=kind)


class PathResolver:
    """Resolve relative paths against one volume root."""

    def __init__(self, root: str, *, strict_symlinks: bool = True) -> None:
        if not root or not os.path.isabs(root):
            raise ValueError(f"volume root must be an absolute path: {root!r}")
        self.root = os.path.normpath(root)
        self.strict_symlinks = strict_symlinks
        self._real_root = os.path.realpath(self.root)

    def resolve(self, relative: Optional[str]) -> str:
        absolute = resolve_volume_path(relative, self.root)
        if self.strict_symlinks and absolute != self.root:
            # Parents must not leave the root through symlinks; the entry
            # itself may be a link (it is moved/removed, never followed).
            real_parent = os.path.realpath(os.path.dirname(absolute))
            if not _is_within(self._real_root, real_parent):
                raise PathOutsideRootError("Resolved path escapes the volume root through a symlink.")
        return absolute

    def resolve_dir(self, relative: Optional[str]) -> str:
        """Resolve a directory that entries are written into.

        Unlike ``resolve`` the path itself is followed: a directory symlink
        pointing outside the root is refused.
        """
        absolute = self.resolve(relative)
        if self.strict_symlinks and absolute != self.root:
            if not _is_within(self._real_root, os.path.realpath(absolute)):
                raise PathOutsideRootError("Directory resolves outside the volume root through a symlink.")
        return absolute

    def resolve_item(self, item: Any) -> Tuple[str, str]:
        """Return ``(relative_path, absolute_path)`` for a request item."""
        entry = TransferItem.from_payload(item)
        relative = entry.relative_path
        return relative, self.resolve(relative)

    volume_of = staticmethod(volume_of)
    parent_of = staticmethod(parent_of)

    def relative_of(self, absolute: str) -> str:
        absolute = os.path.normpath(absolute)
        if not _is_within(self.root, absolute):
            raise PathOutsideRootError("Path is outside the configured volume root.")
        rel = os.path.relpath(absolute, self.root)
        return normalize_relative_path(rel.replace(os.sep, "/"))
