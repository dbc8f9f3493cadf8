from __future__ import annotations

import json
import logging
from typing import Optional

from flask import Flask, Response, g, request, stream_with_context

from ..common.http import json_body, login_required, ok
from ..common.validators import first_present, optional_text, require_non_empty
from ..container import Container
from ..core.enums import Role
from ..core.exceptions import AuthorizationError, ChannelClosed, ResyncRequired, ValidationError
from ..workers.model import Identity
from .subscription import SubscriptionFilter

logger = logging.getLogger(__name__)


def parse_cursor(raw: Optional[str]) -> tuple[Optional[str], Optional[dict[str, int]]]:
    """``"e1;w1:5,w2:7"`` -> ``("e1", {"w1": 5, "w2": 7})``.

    The part before ``;`` is the log epoch; a value without one has no epoch.
    Worker ids may not contain commas.
    """
    text = (raw or "").strip()
    if not text:
        return None, None
    epoch, sep, body = text.partition(";")
    if not sep:
        epoch, body = "", text
    cursor: dict[str, int] = {}
    for part in body.split(","):
        if not part.strip():
            continue
        worker_id, sep, seq = part.strip().rpartition(":")
        if not sep or not worker_id:
            raise ValidationError(f"Malformed cursor entry {part!r}", code="INVALID_CURSOR")
        try:
            cursor[worker_id] = int(seq)
        except ValueError:
            raise ValidationError(f"Malformed cursor entry {part!r}", code="INVALID_CURSOR")
    return epoch.strip() or None, cursor


def format_cursor(cursor: dict[str, int], epoch: Optional[str] = None) -> str:
    body = ",".join(f"{w}:{s}" for w, s in sorted(cursor.items()))
    return f"{epoch};{body}" if epoch else body


def sse(event: str, data: dict, event_id: Optional[str] = None) -> str:
    lines = []
    if event_id:
        lines.append(f"id: {event_id}")
    lines.append(f"event: {event}")
    lines.append(f"data: {json.dumps(data)}")
    return "\n".join(lines) + "\n\n"


def _check_team_access(identity: Identity, team_id: str) -> None:
    if identity.role == Role.ADMIN:
        return
    if not identity.is_manager or identity.team_id != team_id:
        raise AuthorizationError("You can only follow your own team")


def register(app: Flask, container: Container) -> None:
    keepalive = container.settings.keepalive_seconds
    client_settings = {
        "reconnect_base_delay_s": container.settings.reconnect_base_delay_s,
        "reconnect_max_delay_s": container.settings.reconnect_max_delay_s,
        "reconnect_jitter": container.settings.reconnect_jitter,
        "gap_timeout_s": container.settings.gap_timeout_s,
    }

    @app.route("/commands", methods=["POST"], endpoint="dispatch_command")
    @login_required
    def dispatch_command():
        data = json_body()
        name = require_non_empty(first_present(data, "command", "type"), "command")
        payload = data.get("payload") or {}
        if not isinstance(payload, dict):
            raise ValidationError("payload must be a JSON object")
        result = container.command_dispatcher.dispatch(
            g.identity,
            name,
            payload,
            command_id=optional_text(first_present(data, "command_id", "commandId"), max_len=64),
        )
        return ok(result.to_dict(), 200 if result.accepted else 409)

    @app.route("/status/<worker_id>", methods=["GET"], endpoint="current_status")
    @login_required
    def current_status(worker_id: str):
        if not g.identity.can_act_for(worker_id):
            raise AuthorizationError("You can only view your own status")
        return ok(container.snapshot_service.current_status(worker_id).to_dict())

    @app.route("/teams/<team_id>/status", methods=["GET"], endpoint="team_status")
    @login_required
    def team_status(team_id: str):
        _check_team_access(g.identity, team_id)
        return ok(container.snapshot_service.team_status(team_id).to_dict())

    @app.route("/events/stream", methods=["GET"], endpoint="event_stream")
    @login_required
    def event_stream():
        identity = g.identity
        worker_id = (request.args.get("worker_id") or "").strip() or None
        team_id = (request.args.get("team_id") or "").strip() or None
        if not worker_id and not team_id:
            worker_id = identity.worker_id
        if worker_id and not identity.can_act_for(worker_id):
            raise AuthorizationError("You can only follow your own events")
        if team_id:
            _check_team_access(identity, team_id)

        epoch, cursor = parse_cursor(request.args.get("cursor") or request.headers.get("Last-Event-ID"))
        try:
            sub = container.sync_channel.subscribe(SubscriptionFilter(worker_id, team_id), cursor=cursor, epoch=epoch)
        except ResyncRequired as e:
            logger.info("stream resync worker_id=%s team_id=%s: %s", worker_id, team_id, e)
            body = sse("resync", {"reason": e.to_dict()})
            return Response(body, mimetype="text/event-stream", headers={"Cache-Control": "no-cache"})

        def generate():
            position = dict(sub.cursor)
            try:
                yield sse(
                    "connected",
                    {"cursor": position, "epoch": sub.epoch, "client": client_settings},
                    format_cursor(position, sub.epoch),
                )
                while True:
                    try:
                        event = sub.get(timeout=keepalive)
                    except ChannelClosed:
                        yield sse("closed", {"reason": sub.close_reason})
                        return
                    if event is None:
                        yield ": keep-alive\n\n"
                        continue
                    position[event.worker_id] = max(position.get(event.worker_id, 0), event.sequence)
                    yield sse(event.type.value, event.to_message(), format_cursor(position, sub.epoch))
            finally:
                container.sync_channel.unsubscribe(sub)

        return Response(
            stream_with_context(generate()),
            mimetype="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @app.route("/health", methods=["GET"], endpoint="health")
    def health():
        database = "disabled"
        if container.conn is not None:
            database = "ok" if container.conn.ping() else "unavailable"
        status = 503 if database == "unavailable" else 200
        data = {
            "database": database,
            "event_store": container.settings.event_store,
            "subscribers": container.sync_channel.subscriber_count(),
        }
        return ok(data, status)
