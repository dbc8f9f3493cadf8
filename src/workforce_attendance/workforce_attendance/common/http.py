from __future__ import annotations

import logging
from functools import wraps

from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException

from ..core.enums import Role
from ..core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    DomainError,
    NotFoundError,
    ResyncRequired,
    StaleCommand,
    TransientError,
    ValidationError,
)
from ..workers.model import Identity

logger = logging.getLogger(__name__)

WORKER_HEADER = "X-Worker-Id"
ROLE_HEADER = "X-Worker-Role"
TEAM_HEADER = "X-Team-Id"

_STATUS_BY_ERROR = [
    (ValidationError, 400),
    (AuthenticationError, 401),
    (AuthorizationError, 403),
    (NotFoundError, 404),
    (ConflictError, 409),
    (StaleCommand, 409),
    (ResyncRequired, 410),
    (TransientError, 503),
]


def status_for(error: DomainError) -> int:
    for cls, status in _STATUS_BY_ERROR:
        if isinstance(error, cls):
            return status
    return 400


def current_identity() -> Identity:
    """Identity verified by the gateway, read from forwarded headers."""
    worker_id = (request.headers.get(WORKER_HEADER) or "").strip()
    if not worker_id:
        raise AuthenticationError("Missing verified identity")
    try:
        role = Role((request.headers.get(ROLE_HEADER) or Role.WORKER.value).strip().lower())
    except ValueError:
        raise AuthenticationError("Unknown role")
    team_id = (request.headers.get(TEAM_HEADER) or "").strip() or None
    return Identity(worker_id=worker_id, role=role, team_id=team_id)


def login_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        g.identity = current_identity()
        return view(*args, **kwargs)

    return wrapper


def manager_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        g.identity = current_identity()
        if not g.identity.is_manager:
            raise AuthorizationError("Manager role required")
        return view(*args, **kwargs)

    return wrapper


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def ok(data=None, status: int = 200):
    return jsonify({"success": True, "data": data}), status


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(DomainError)
    def handle_domain_error(e: DomainError):
        status = status_for(e)
        if status >= 500:
            logger.warning("%s %s failed: %s", request.method, request.path, e)
        return jsonify({"success": False, "error": e.to_dict()}), status

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        error = {"code": (e.name or "HTTP_ERROR").upper().replace(" ", "_"), "category": "http", "message": e.description}
        return jsonify({"success": False, "error": error}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected(e: Exception):
        logger.exception("unhandled error on %s %s", request.method, request.path)
        error = {"code": "INTERNAL_ERROR", "category": "internal", "message": "Internal server error"}
        return jsonify({"success": False, "error": error}), 500
