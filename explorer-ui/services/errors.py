"""Typed errors raised by the file-operation core.

Every error carries a stable ``code`` (used as the ``error`` field of JSON
responses) and the HTTP status the route layer should answer with. The core
never builds HTTP responses itself.
"""

from __future__ import annotations


class FileOpsError(Exception):
    code = "fileops_error"
    http_status = 500

    def __init__(self, message: str = "", *, code: str | None = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        if code:
            self.code = code


class InvalidPathError(FileOpsError):
    """Relative path escapes the volume root lexically."""

    code = "invalid_path"
    http_status = 400


class PathOutsideRootError(FileOpsError):
    """Joined absolute path failed the containment check."""

    code = "path_not_allowed"
    http_status = 400


class ValidationError(FileOpsError):
    code = "bad_request"
    http_status = 400


class SourceNotFoundError(FileOpsError):
    code = "not_found"
    http_status = 404


class AlreadyExistsError(FileOpsError):
    code = "already_exists"
    http_status = 409


class CrossDeviceFallbackError(FileOpsError):
    """Copy+delete fallback of a cross-device move failed part way.

    The destination copy (complete or partial) is left in place and the
    source is kept whenever its removal did not finish.
    """

    code = "cross_device_failed"
    http_status = 500
