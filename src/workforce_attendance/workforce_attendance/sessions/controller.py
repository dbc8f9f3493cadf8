from __future__ import annotations

from flask import Flask, g, request

from ..common.http import json_body, login_required, manager_required, ok
from ..common.validators import first_present, parse_limit, parse_position, require_non_empty
from ..container import Container
from ..core.constants import DEFAULT_HISTORY_LIMIT
from ..core.exceptions import AuthorizationError


def register(app: Flask, container: Container) -> None:
    @app.route("/attendance/punch-in", methods=["POST"], endpoint="punch_in")
    @login_required
    def punch_in():
        data = json_body()
        session = container.session_service.punch_in(
            g.identity.worker_id,
            require_non_empty(first_present(data, "workplace_id", "workplaceId"), "workplace_id"),
            parse_position(data),
            notes=data.get("notes"),
            device_info=first_present(data, "device_info", "deviceInfo"),
            verification_token=first_present(data, "verification_token", "verificationToken"),
        )
        return ok(session.to_summary(), 201)

    @app.route("/attendance/punch-out", methods=["POST"], endpoint="punch_out")
    @login_required
    def punch_out():
        data = json_body()
        session = container.session_service.punch_out(
            require_non_empty(first_present(data, "session_id", "sessionId"), "session_id"),
            parse_position(data),
            actor=g.identity,
        )
        return ok(session.to_summary())

    @app.route("/attendance/sessions/<session_id>/force-close", methods=["POST"], endpoint="force_close")
    @manager_required
    def force_close(session_id: str):
        data = json_body()
        session = container.session_service.force_close(
            session_id,
            g.identity.worker_id,
            actor=g.identity,
            reason=data.get("reason"),
        )
        return ok(session.to_summary())

    @app.route("/attendance/sessions/<session_id>", methods=["GET"], endpoint="get_session")
    @login_required
    def get_session(session_id: str):
        session = container.session_service.get_session(session_id, actor=g.identity)
        data = session.to_summary()
        data["breaks"] = [b.to_dict() for b in container.break_manager.list_breaks(session_id)]
        data["approvals"] = [r.to_dict() for r in container.approval_engine.list_for_session(session_id)]
        return ok(data)

    @app.route("/attendance/history", methods=["GET"], endpoint="attendance_history")
    @login_required
    def attendance_history():
        worker_id = (request.args.get("worker_id") or g.identity.worker_id).strip()
        if not g.identity.can_act_for(worker_id):
            raise AuthorizationError("You can only view your own history")
        limit = parse_limit(request.args.get("limit"), default=DEFAULT_HISTORY_LIMIT)
        return ok(container.session_service.history(worker_id, limit=limit))
