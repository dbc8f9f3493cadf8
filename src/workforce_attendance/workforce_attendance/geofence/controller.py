from __future__ import annotations

from flask import Flask, request

from ..common.http import login_required, ok
from ..common.validators import parse_position, require_non_empty
from ..container import Container
from ..core.exceptions import NotFoundError


def register(app: Flask, container: Container) -> None:
    @app.route("/workplaces", methods=["GET"], endpoint="list_workplaces")
    @login_required
    def list_workplaces():
        zones = container.zones_repo.list_all()
        return ok([z.to_dict() for z in zones])

    @app.route("/workplaces/<workplace_id>", methods=["GET"], endpoint="get_workplace")
    @login_required
    def get_workplace(workplace_id: str):
        zones = container.zones_repo.get_for_workplace(workplace_id)
        if not zones:
            raise NotFoundError(f"Workplace {workplace_id} not found")
        return ok(
            {
                "workplace_id": workplace_id,
                "name": container.zones_repo.get_workplace_name(workplace_id),
                "zones": [z.to_dict() for z in zones],
            }
        )

    @app.route("/attendance/verify-location", methods=["GET"], endpoint="verify_location")
    @login_required
    def verify_location():
        workplace_id = require_non_empty(request.args.get("workplace_id"), "workplace_id")
        position = parse_position(request.args)
        result = container.session_service.verify_location(workplace_id, position)
        data = result.to_dict()
        data["position"] = position.to_dict()
        return ok(data)
