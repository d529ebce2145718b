"""Trash API: list, stats, restore, permanent delete and clear.

Expired entries (older than the configured TTL) are purged lazily while
listing, at most once per purge interval.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict

from flask import Blueprint, jsonify, request

from routes_files import batch_response, fileops_error_response
from services.errors import FileOpsError
from services.logging_setup import core_log, core_logger
from services.trash import TrashStore


_LOG = core_logger("routes.trash")


def create_trash_blueprint(
    trash: TrashStore,
    *,
    ttl_days: int = 30,
    purge_interval: int = 3600,
    clock: Callable[[], float] = time.time,
) -> Blueprint:
    """Create /api/trash/* blueprint.

    Args:
        trash: store shared with the files blueprint.
        ttl_days: entries older than this are purged (0 disables).
        purge_interval: minimum seconds between two purge runs.
        clock: time source, injectable for tests.
    """

    bp = Blueprint("trash", __name__)

    maint_lock = threading.Lock()
    maint: Dict[str, Any] = {"last_purge_ts": 0.0}

    def _maybe_purge() -> None:
        if ttl_days <= 0:
            return
        now = clock()
        with maint_lock:
            if now - float(maint["last_purge_ts"] or 0.0) <= float(purge_interval):
                return
            maint["last_purge_ts"] = now
            purged = trash.purge_expired(ttl_days, now=now)
        if purged:
            core_log("info", "trash.auto_purge", logger=_LOG, purged=len(purged))

    def _ids() -> Any:
        data = request.get_json(silent=True)
        return data.get("ids") if isinstance(data, dict) else None

    @bp.errorhandler(FileOpsError)
    def _handle_fileops_error(exc: FileOpsError) -> Any:
        core_log("warning", "trash.request_failed", logger=_LOG, path=request.path, code=exc.code, error=exc.message)
        return fileops_error_response(exc)

    @bp.get("/api/trash")
    def api_trash_list() -> Any:
        _maybe_purge()
        return jsonify({"ok": True, "items": trash.list_trash_items()})

    @bp.get("/api/trash/stats")
    def api_trash_stats() -> Any:
        return jsonify({"ok": True, "ttlDays": int(ttl_days), **trash.stats()})

    @bp.post("/api/trash/restore")
    def api_trash_restore() -> Any:
        """Body (JSON): ``{"ids": ["<trashId>", ...]}``"""
        return batch_response(trash.restore_trash_items(_ids()), ("restored",))

    @bp.delete("/api/trash")
    def api_trash_delete() -> Any:
        return batch_response(trash.delete_trash_items(_ids()), ("deleted",))

    @bp.post("/api/trash/clear")
    def api_trash_clear() -> Any:
        """Permanently remove every trash entry on every volume."""
        result = trash.empty_trash()
        return jsonify({"ok": True, "success": not result["errors"], **result})

    return bp
