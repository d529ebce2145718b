"""File operation API: copy, move, delete (to trash or permanently), mkdir, rename.

All paths in request bodies are relative to the configured volume root.
Batch endpoints always answer 200 with one result per item; only
whole-request problems (no items, bad destination, ...) produce an error
status.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List

from flask import Blueprint, jsonify, request

from services.errors import FileOpsError
from services.logging_setup import core_log, core_logger
from services.paths import PathResolver
from services.transfer import create_folder, delete_items, rename_item, transfer_items
from services.trash import TrashStore


_LOG = core_logger("routes.files")


def error_response(message: str, status: int = 400, *, ok: bool | None = None, **extra: Any) -> Any:
    """Return a JSON error response: at least ``{"error": ...}``."""
    payload: Dict[str, Any] = {"error": message}
    if ok is not None:
        payload["ok"] = ok
    payload.update(extra)
    return jsonify(payload), status


def fileops_error_response(exc: FileOpsError) -> Any:
    return error_response(exc.code, exc.http_status, ok=False, message=exc.message)


def batch_response(items: List[Dict[str, Any]], ok_statuses: Iterable[str], **extra: Any) -> Any:
    accepted = set(ok_statuses)
    success = all(it.get("status") in accepted for it in items)
    return jsonify({"ok": True, "success": success, **extra, "items": items})


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def create_files_blueprint(resolver: PathResolver, trash: TrashStore) -> Blueprint:
    """Create /api/files/* blueprint bound to one volume root."""

    bp = Blueprint("files", __name__)

    @bp.errorhandler(FileOpsError)
    def _handle_fileops_error(exc: FileOpsError) -> Any:
        core_log("warning", "files.request_failed", logger=_LOG, path=request.path, code=exc.code, error=exc.message)
        return fileops_error_response(exc)

    def _transfer(operation: str) -> Any:
        data = _json_body()
        result = transfer_items(data.get("items"), data.get("destination"), operation, resolver)
        return batch_response(result["items"], ("transferred", "skipped"), destination=result["destination"])

    @bp.post("/api/files/copy")
    def api_files_copy() -> Any:
        """Body (JSON): ``{"items": [{name, path}, ...], "destination": "vol/dir"}``"""
        return _transfer("copy")

    @bp.post("/api/files/move")
    def api_files_move() -> Any:
        return _transfer("move")

    @bp.delete("/api/files")
    def api_files_delete() -> Any:
        """Send items to the trash, or remove them for good with ``permanent: true``."""
        data = _json_body()
        if data.get("permanent") is True:
            return batch_response(delete_items(data.get("items"), resolver), ("deleted",))
        return batch_response(trash.move_items_to_trash(data.get("items")), ("trashed",))

    @bp.post("/api/files/folder")
    def api_files_mkdir() -> Any:
        data = _json_body()
        rel = create_folder(data.get("path"), data.get("name"), resolver)
        return jsonify({"ok": True, "path": rel}), 201

    @bp.post("/api/files/rename")
    def api_files_rename() -> Any:
        """Body (JSON): ``{"path": parent, "name": current, "newName": new}``"""
        data = _json_body()
        rel = rename_item(data.get("path"), data.get("name"), data.get("newName"), resolver)
        return jsonify({"ok": True, "path": rel})

    return bp
