"""Flask application factory for the volume explorer backend."""

from __future__ import annotations

import time
from typing import Any, Optional

from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException

from routes_files import create_files_blueprint
from routes_trash import create_trash_blueprint
from services.config import ExplorerConfig, load_config
from services.logging_setup import access_enabled, access_logger, core_log, core_logger, setup_logging
from services.paths import PathResolver
from services.trash import TrashStore


_LOG = core_logger("app")


def _install_access_log(app: Flask) -> None:
    @app.before_request
    def _access_log_before_request() -> None:
        g._explorer_t0 = time.time()

    @app.after_request
    def _access_log_after_request(response: Any) -> Any:
        if not access_enabled():
            return response
        method = request.method or ""
        status = getattr(response, "status_code", 0) or 0
        client = request.headers.get("X-Forwarded-For") or request.remote_addr or ""
        t0 = getattr(g, "_explorer_t0", None)
        if t0:
            dt_ms = int((time.time() - float(t0)) * 1000.0)
            line = f"{client} {method} {request.path} -> {status} ({dt_ms}ms)"
        else:
            line = f"{client} {method} {request.path} -> {status}"
        access_logger().info(line)
        return response


def create_app(config: Optional[ExplorerConfig] = None) -> Flask:
    """Build the app; ``config`` defaults to the environment (see services.config)."""
    config = config or load_config()
    setup_logging(config.log_dir)

    resolver = PathResolver(config.volume_root, strict_symlinks=config.strict_symlinks)
    trash = TrashStore(resolver, excluded_names=config.excluded_files)

    app = Flask(__name__)
    app.config["EXPLORER"] = config
    app.extensions["explorer.resolver"] = resolver
    app.extensions["explorer.trash"] = trash

    _install_access_log(app)

    app.register_blueprint(create_files_blueprint(resolver, trash))
    app.register_blueprint(
        create_trash_blueprint(
            trash,
            ttl_days=config.trash_ttl_days,
            purge_interval=config.trash_purge_interval_seconds,
        )
    )

    @app.errorhandler(Exception)
    def _handle_unexpected(exc: Exception) -> Any:
        if isinstance(exc, HTTPException):
            return exc
        _LOG.exception("unhandled error | path=%s", request.path)
        return jsonify({"ok": False, "error": "internal_error", "message": str(exc) or exc.__class__.__name__}), 500

    @app.get("/api/health")
    def api_health() -> Any:
        return jsonify({"ok": True})

    core_log("info", "app.start", logger=_LOG, volume_root=config.volume_root, ttl_days=config.trash_ttl_days)
    return app
