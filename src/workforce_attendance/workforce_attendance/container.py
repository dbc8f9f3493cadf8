from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from .approvals.mysql_approval_repository import MySQLApprovalRepository
from .approvals.repository import ApprovalRepository
from .approvals.service import ApprovalWorkflowEngine
from .breaks.mysql_break_repository import MySQLBreakRepository
from .breaks.repository import BreakRepository
from .breaks.service import BreakManager
from .common.datetime_utils import now_utc
from .common.locks import KeyedLocks
from .core.settings import TrackerSettings
from .database.connection import DBConfig, DatabaseConnection
from .events.memory_event_log import InMemoryEventLog
from .events.mysql_event_log import MySQLEventLog
from .events.repository import EventLog
from .geofence.mysql_zone_repository import MySQLZoneRepository
from .geofence.repository import ZoneRepository
from .geofence.validator import GeofenceValidator
from .sessions.mysql_session_repository import MySQLSessionRepository
from .sessions.repository import SessionRepository
from .sessions.service import AttendanceSessionService
from .sync.channel import RealtimeSyncChannel
from .sync.commands import CommandDispatcher
from .sync.snapshots import SnapshotService
from .workers.mysql_worker_repository import MySQLWorkerRepository
from .workers.repository import WorkerRepository


@dataclass(frozen=True)
class Repositories:
    zones: ZoneRepository
    workers: WorkerRepository
    sessions: SessionRepository
    breaks: BreakRepository
    approvals: ApprovalRepository


@dataclass(frozen=True)
class Container:
    settings: TrackerSettings
    conn: Optional[DatabaseConnection]

    zones_repo: ZoneRepository
    workers_repo: WorkerRepository
    sessions_repo: SessionRepository
    breaks_repo: BreakRepository
    approvals_repo: ApprovalRepository
    event_log: EventLog

    sync_channel: RealtimeSyncChannel
    session_service: AttendanceSessionService
    break_manager: BreakManager
    approval_engine: ApprovalWorkflowEngine
    snapshot_service: SnapshotService
    command_dispatcher: CommandDispatcher

    def shutdown(self) -> None:
        self.sync_channel.shutdown()


def assemble(
    repos: Repositories,
    *,
    settings: TrackerSettings,
    event_log: Optional[EventLog] = None,
    conn: Optional[DatabaseConnection] = None,
    clock: Callable[[], datetime] = now_utc,
) -> Container:
    """Wire services over any set of repositories (MySQL in production, fakes in tests)."""
    log = event_log or InMemoryEventLog(retention=settings.event_retention_per_worker)

    def team_lookup(worker_id: str) -> Optional[str]:
        worker = repos.workers.get_by_id(worker_id)
        return worker.team_id if worker else None

    def team_members(team_id: str) -> list[str]:
        return [w.worker_id for w in repos.workers.list_team(team_id)]

    channel = RealtimeSyncChannel(
        log,
        team_lookup=team_lookup,
        team_members=team_members,
        queue_size=settings.subscriber_queue_size,
    )
    # One lock table shared by every service so per-session serialization spans them all.
    locks = KeyedLocks()
    validator = GeofenceValidator(
        max_accuracy_tolerance_m=settings.max_accuracy_tolerance_m,
        fixed_tolerance_m=settings.fixed_tolerance_m,
    )

    approval_engine = ApprovalWorkflowEngine(repos.approvals, repos.sessions, channel, locks=locks, clock=clock)
    break_manager = BreakManager(repos.sessions, repos.breaks, channel, locks=locks, clock=clock)
    session_service = AttendanceSessionService(
        repos.sessions,
        repos.breaks,
        repos.zones,
        approval_engine,
        channel,
        validator=validator,
        locks=locks,
        clock=clock,
    )
    snapshot_service = SnapshotService(
        repos.sessions, repos.breaks, repos.approvals, repos.workers, log, clock=clock
    )
    command_dispatcher = CommandDispatcher(session_service, break_manager, approval_engine)

    return Container(
        settings=settings,
        conn=conn,
        zones_repo=repos.zones,
        workers_repo=repos.workers,
        sessions_repo=repos.sessions,
        breaks_repo=repos.breaks,
        approvals_repo=repos.approvals,
        event_log=log,
        sync_channel=channel,
        session_service=session_service,
        break_manager=break_manager,
        approval_engine=approval_engine,
        snapshot_service=snapshot_service,
        command_dispatcher=command_dispatcher,
    )


def build_container(*, db_config: dict, settings: TrackerSettings) -> Container:
    conn = DatabaseConnection(DBConfig.from_dict(db_config))
    repos = Repositories(
        zones=MySQLZoneRepository(conn),
        workers=MySQLWorkerRepository(conn),
        sessions=MySQLSessionRepository(conn),
        breaks=MySQLBreakRepository(conn),
        approvals=MySQLApprovalRepository(conn),
    )
    event_log: EventLog
    if settings.event_store == "mysql":
        event_log = MySQLEventLog(conn, retention=settings.event_retention_per_worker)
    else:
        event_log = InMemoryEventLog(retention=settings.event_retention_per_worker)
    return assemble(repos, settings=settings, event_log=event_log, conn=conn)
