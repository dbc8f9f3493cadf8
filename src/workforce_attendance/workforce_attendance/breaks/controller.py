from __future__ import annotations

from flask import Flask, g

from ..common.http import json_body, login_required, ok
from ..common.validators import first_present, parse_break_type, require_non_empty
from ..container import Container


def register(app: Flask, container: Container) -> None:
    @app.route("/attendance/break-start", methods=["POST"], endpoint="break_start")
    @login_required
    def break_start():
        data = json_body()
        session, brk = container.break_manager.start_break(
            require_non_empty(first_present(data, "session_id", "sessionId"), "session_id"),
            parse_break_type(data.get("type")),
            actor=g.identity,
        )
        return ok({**session.to_summary(), "open_break": brk.to_dict()})

    @app.route("/attendance/break-end", methods=["POST"], endpoint="break_end")
    @login_required
    def break_end():
        data = json_body()
        session, brk = container.break_manager.end_break(
            require_non_empty(first_present(data, "session_id", "sessionId"), "session_id"),
            actor=g.identity,
        )
        return ok({**session.to_summary(), "closed_break": brk.to_dict()})
