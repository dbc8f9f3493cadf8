from __future__ import annotations

from flask import Flask, g, request

from ..common.http import json_body, login_required, manager_required, ok
from ..common.validators import first_present, parse_approval_kind, parse_approved, require_non_empty
from ..container import Container
from ..core.enums import Role
from ..core.exceptions import AuthorizationError


def register(app: Flask, container: Container) -> None:
    @app.route("/approvals", methods=["POST"], endpoint="create_approval")
    @login_required
    def create_approval():
        data = json_body()
        req = container.approval_engine.create_request(
            require_non_empty(first_present(data, "session_id", "sessionId"), "session_id"),
            parse_approval_kind(data.get("kind")),
            g.identity.worker_id,
            actor=g.identity,
            reason=data.get("reason"),
        )
        return ok({"request_id": req.request_id, "request": req.to_dict()}, 201)

    @app.route("/approvals/<request_id>/decision", methods=["POST"], endpoint="decide_approval")
    @manager_required
    def decide_approval(request_id: str):
        data = json_body()
        decided = container.approval_engine.decide(
            request_id,
            g.identity.worker_id,
            parse_approved(data.get("approved")),
            actor=g.identity,
            comment=data.get("comment"),
        )
        return ok(decided.to_dict())

    @app.route("/approvals/pending", methods=["GET"], endpoint="pending_approvals")
    @manager_required
    def pending_approvals():
        team_id = (request.args.get("team_id") or g.identity.team_id or "").strip()
        if g.identity.role != Role.ADMIN and (not team_id or team_id != g.identity.team_id):
            raise AuthorizationError("You can only view your own team")
        worker_ids = None
        if team_id:
            worker_ids = [w.worker_id for w in container.workers_repo.list_team(team_id)]
        requests = container.approval_engine.list_pending(worker_ids=worker_ids)
        return ok([r.to_dict() for r in requests])

    @app.route("/approvals/<request_id>", methods=["GET"], endpoint="get_approval")
    @login_required
    def get_approval(request_id: str):
        return ok(container.approval_engine.get(request_id, actor=g.identity).to_dict())
