"""SQLAlchemy 2.0 async store implementations.

Each operation runs in its own short transaction obtained from the session
factory. ORM records never leave this module: rows are translated to the
domain dataclasses on the way out and back on the way in.

SQLite drops tzinfo on DateTime columns, so every datetime read back is
normalized to aware UTC and every datetime written is converted to UTC first.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from logtrap.core.database import session_scope
from logtrap.core.enums import (
    OPEN_ALERT_STATUSES,
    AlertSeverity,
    AlertStatus,
    ChannelType,
    ConditionType,
    LogLevel,
    TrapType,
)
from logtrap.core.exceptions import NotFoundError
from logtrap.core.models import (
    AlertChannelRecord,
    AlertRecord,
    LogEntryRecord,
    LogTrapRecord,
    trap_channels,
)
from logtrap.core.utils.timeutils import ensure_utc
from logtrap.monitoring.models import Alert, AlertChannel
from logtrap.traps.models import LogEntry, Trap

_OPEN_STATUS_VALUES = [s.value for s in OPEN_ALERT_STATUSES]


def _opt_utc(dt: datetime | None) -> datetime | None:
    return ensure_utc(dt) if dt is not None else None


def _levels_at_or_above(min_level: LogLevel) -> list[str]:
    return [lvl.value for lvl in LogLevel if lvl.at_or_above(min_level)]


# ---------------------------------------------------------------------------
# Record <-> domain translation
# ---------------------------------------------------------------------------
def _entry_from_record(rec: LogEntryRecord) -> LogEntry:
    return LogEntry(
        id=rec.id,
        team_id=rec.team_id,
        timestamp=ensure_utc(rec.timestamp),
        level=LogLevel(rec.level),
        message=rec.message,
        source=rec.source,
        logger_name=rec.logger_name,
        fields=rec.fields or {},
    )


def _trap_from_record(rec: LogTrapRecord) -> Trap:
    return Trap(
        id=rec.id,
        team_id=rec.team_id,
        name=rec.name,
        description=rec.description,
        trap_type=TrapType(rec.trap_type),
        condition_type=ConditionType(rec.condition_type),
        pattern=rec.pattern,
        field_name=rec.field_name,
        source_filter=rec.source_filter,
        min_level=LogLevel(rec.min_level) if rec.min_level else None,
        threshold=rec.threshold,
        window_seconds=rec.window_seconds,
        severity=AlertSeverity(rec.severity),
        is_active=rec.is_active,
        cooldown_seconds=rec.cooldown_seconds,
        version=rec.version,
        trigger_count=rec.trigger_count,
        last_triggered_at=_opt_utc(rec.last_triggered_at),
        created_by=rec.created_by,
        channel_ids=[c.id for c in rec.channels],
        created_at=ensure_utc(rec.created_at),
        updated_at=ensure_utc(rec.updated_at),
    )


def _apply_trap(rec: LogTrapRecord, trap: Trap) -> None:
    """Copy definition columns; trigger bookkeeping is owned by ``record_trigger``."""
    rec.team_id = trap.team_id
    rec.name = trap.name
    rec.description = trap.description
    rec.trap_type = trap.trap_type.value
    rec.condition_type = trap.condition_type.value
    rec.pattern = trap.pattern
    rec.field_name = trap.field_name
    rec.source_filter = trap.source_filter
    rec.min_level = trap.min_level.value if trap.min_level else None
    rec.threshold = trap.threshold
    rec.window_seconds = trap.window_seconds
    rec.severity = trap.severity.value
    rec.is_active = trap.is_active
    rec.cooldown_seconds = trap.cooldown_seconds
    rec.version = trap.version
    rec.created_by = trap.created_by
    rec.updated_at = ensure_utc(trap.updated_at)


def _alert_from_record(rec: AlertRecord) -> Alert:
    return Alert(
        id=rec.id,
        trap_id=rec.trap_id,
        team_id=rec.team_id,
        severity=AlertSeverity(rec.severity),
        status=AlertStatus(rec.status),
        trigger_message=rec.trigger_message or "",
        first_fired_at=ensure_utc(rec.first_fired_at),
        last_fired_at=ensure_utc(rec.last_fired_at),
        fire_count=rec.fire_count,
        acknowledged_by=rec.acknowledged_by,
        acknowledged_at=_opt_utc(rec.acknowledged_at),
        resolved_by=rec.resolved_by,
        resolved_at=_opt_utc(rec.resolved_at),
    )


def _apply_alert(rec: AlertRecord, alert: Alert) -> None:
    rec.trap_id = alert.trap_id
    rec.team_id = alert.team_id
    rec.severity = alert.severity.value
    rec.status = alert.status.value
    rec.trigger_message = alert.trigger_message
    rec.first_fired_at = ensure_utc(alert.first_fired_at)
    rec.last_fired_at = ensure_utc(alert.last_fired_at)
    rec.fire_count = alert.fire_count
    rec.acknowledged_by = alert.acknowledged_by
    rec.acknowledged_at = _opt_utc(alert.acknowledged_at)
    rec.resolved_by = alert.resolved_by
    rec.resolved_at = _opt_utc(alert.resolved_at)


def _channel_from_record(rec: AlertChannelRecord) -> AlertChannel:
    return AlertChannel(
        id=rec.id,
        team_id=rec.team_id,
        name=rec.name,
        channel_type=ChannelType(rec.channel_type),
        configuration=dict(rec.configuration or {}),
        is_active=rec.is_active,
        created_by=rec.created_by,
        created_at=ensure_utc(rec.created_at),
        updated_at=ensure_utc(rec.updated_at),
    )


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------
class _SqlStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory


class SqlLogEntryStore(_SqlStore):
    """Reads the ``log_entries`` table (writes only for embedded use and tests)."""

    async def add(self, entry: LogEntry) -> LogEntry:
        async with session_scope(self._session_factory) as session:
            session.add(
                LogEntryRecord(
                    id=entry.id,
                    team_id=entry.team_id,
                    timestamp=ensure_utc(entry.timestamp),
                    level=entry.level.value,
                    source=entry.source,
                    message=entry.message,
                    logger_name=entry.logger_name,
                    fields=entry.fields,
                )
            )
        return entry

    @staticmethod
    def _window_filters(
        team_id: str,
        start: datetime,
        end: datetime,
        source: str | None,
        min_level: LogLevel | None,
    ) -> list:
        filters = [
            LogEntryRecord.team_id == team_id,
            LogEntryRecord.timestamp > ensure_utc(start),
            LogEntryRecord.timestamp <= ensure_utc(end),
        ]
        if source is not None:
            filters.append(LogEntryRecord.source == source)
        if min_level is not None:
            filters.append(LogEntryRecord.level.in_(_levels_at_or_above(min_level)))
        return filters

    async def count_entries(
        self,
        team_id: str,
        start: datetime,
        end: datetime,
        *,
        source: str | None = None,
        min_level: LogLevel | None = None,
    ) -> int:
        stmt = select(func.count()).select_from(LogEntryRecord).where(
            *self._window_filters(team_id, start, end, source, min_level)
        )
        async with self._session_factory() as session:
            return int((await session.execute(stmt)).scalar_one())

    async def list_entries(
        self,
        team_id: str,
        start: datetime,
        end: datetime,
        *,
        source: str | None = None,
        min_level: LogLevel | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[LogEntry]:
        stmt = (
            select(LogEntryRecord)
            .where(*self._window_filters(team_id, start, end, source, min_level))
            .order_by(LogEntryRecord.timestamp, LogEntryRecord.id)
        )
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [_entry_from_record(r) for r in rows]


class SqlTrapStore(_SqlStore):
    async def _load_channels(
        self, session: AsyncSession, channel_ids: list[str]
    ) -> list[AlertChannelRecord]:
        if not channel_ids:
            return []
        stmt = select(AlertChannelRecord).where(AlertChannelRecord.id.in_(channel_ids))
        return list((await session.execute(stmt)).scalars().all())

    async def get(self, trap_id: str) -> Trap | None:
        async with self._session_factory() as session:
            rec = await session.get(LogTrapRecord, trap_id)
            return _trap_from_record(rec) if rec else None

    async def add(self, trap: Trap) -> Trap:
        async with session_scope(self._session_factory) as session:
            rec = LogTrapRecord(id=trap.id, created_at=ensure_utc(trap.created_at))
            _apply_trap(rec, trap)
            rec.trigger_count = trap.trigger_count
            rec.last_triggered_at = _opt_utc(trap.last_triggered_at)
            rec.channels = await self._load_channels(session, trap.channel_ids)
            session.add(rec)
        return trap

    async def update(self, trap: Trap) -> Trap:
        async with session_scope(self._session_factory) as session:
            rec = await session.get(LogTrapRecord, trap.id)
            if rec is None:
                raise NotFoundError(f"Log trap not found: {trap.id}")
            _apply_trap(rec, trap)
            rec.channels = await self._load_channels(session, trap.channel_ids)
        return trap

    async def _list(self, *filters) -> list[Trap]:
        stmt = select(LogTrapRecord).where(*filters).order_by(LogTrapRecord.created_at)
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_trap_from_record(r) for r in rows]

    async def list_active_traps(self, team_id: str) -> list[Trap]:
        return await self._list(
            LogTrapRecord.team_id == team_id, LogTrapRecord.is_active.is_(True)
        )

    async def list_active_traps_by_type(self, trap_type: TrapType) -> list[Trap]:
        return await self._list(
            LogTrapRecord.trap_type == trap_type.value,
            LogTrapRecord.is_active.is_(True),
        )

    async def list_traps_by_team(self, team_id: str) -> list[Trap]:
        return await self._list(LogTrapRecord.team_id == team_id)

    async def count_by_team(self, team_id: str) -> int:
        stmt = select(func.count()).select_from(LogTrapRecord).where(
            LogTrapRecord.team_id == team_id
        )
        async with self._session_factory() as session:
            return int((await session.execute(stmt)).scalar_one())

    async def traps_referencing_channel(
        self, channel_id: str, active_only: bool = True
    ) -> list[Trap]:
        filters = [
            LogTrapRecord.id.in_(
                select(trap_channels.c.trap_id).where(
                    trap_channels.c.channel_id == channel_id
                )
            )
        ]
        if active_only:
            filters.append(LogTrapRecord.is_active.is_(True))
        return await self._list(*filters)

    async def record_trigger(self, trap_id: str, at: datetime) -> None:
        stmt = (
            update(LogTrapRecord)
            .where(LogTrapRecord.id == trap_id)
            .values(
                trigger_count=LogTrapRecord.trigger_count + 1,
                last_triggered_at=ensure_utc(at),
            )
        )
        async with session_scope(self._session_factory) as session:
            await session.execute(stmt)


class SqlAlertStore(_SqlStore):
    """Alert rows; the partial unique index rejects a second open alert per trap."""

    async def get(self, alert_id: str) -> Alert | None:
        async with self._session_factory() as session:
            rec = await session.get(AlertRecord, alert_id)
            return _alert_from_record(rec) if rec else None

    async def add(self, alert: Alert) -> Alert:
        async with session_scope(self._session_factory) as session:
            rec = AlertRecord(id=alert.id)
            _apply_alert(rec, alert)
            session.add(rec)
        return alert

    async def update(self, alert: Alert) -> Alert:
        async with session_scope(self._session_factory) as session:
            rec = await session.get(AlertRecord, alert.id)
            if rec is None:
                raise NotFoundError(f"Alert not found: {alert.id}")
            _apply_alert(rec, alert)
        return alert

    async def find_open_for_trap(self, trap_id: str) -> Alert | None:
        stmt = select(AlertRecord).where(
            AlertRecord.trap_id == trap_id,
            AlertRecord.status.in_(_OPEN_STATUS_VALUES),
        )
        async with self._session_factory() as session:
            rec = (await session.execute(stmt)).scalars().first()
            return _alert_from_record(rec) if rec else None

    async def list_for_trap(self, trap_id: str) -> list[Alert]:
        stmt = (
            select(AlertRecord)
            .where(AlertRecord.trap_id == trap_id)
            .order_by(AlertRecord.first_fired_at)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_alert_from_record(r) for r in rows]

    async def list_by_team(
        self,
        team_id: str,
        *,
        status: AlertStatus | None = None,
        severity: AlertSeverity | None = None,
        limit: int = 50,
    ) -> list[Alert]:
        stmt = select(AlertRecord).where(AlertRecord.team_id == team_id)
        if status is not None:
            stmt = stmt.where(AlertRecord.status == status.value)
        if severity is not None:
            stmt = stmt.where(AlertRecord.severity == severity.value)
        stmt = stmt.order_by(AlertRecord.last_fired_at.desc()).limit(limit)
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_alert_from_record(r) for r in rows]

    async def count_open_by_severity(self, team_id: str) -> dict[AlertSeverity, int]:
        stmt = (
            select(AlertRecord.severity, func.count())
            .where(
                AlertRecord.team_id == team_id,
                AlertRecord.status.in_(_OPEN_STATUS_VALUES),
            )
            .group_by(AlertRecord.severity)
        )
        counts = {severity: 0 for severity in AlertSeverity}
        async with self._session_factory() as session:
            for severity, count in (await session.execute(stmt)).all():
                counts[AlertSeverity(severity)] = int(count)
        return counts


class SqlChannelStore(_SqlStore):
    async def get(self, channel_id: str) -> AlertChannel | None:
        async with self._session_factory() as session:
            rec = await session.get(AlertChannelRecord, channel_id)
            return _channel_from_record(rec) if rec else None

    async def add(self, channel: AlertChannel) -> AlertChannel:
        async with session_scope(self._session_factory) as session:
            session.add(
                AlertChannelRecord(
                    id=channel.id,
                    team_id=channel.team_id,
                    name=channel.name,
                    channel_type=channel.channel_type.value,
                    configuration=channel.configuration,
                    is_active=channel.is_active,
                    created_by=channel.created_by,
                    created_at=ensure_utc(channel.created_at),
                    updated_at=ensure_utc(channel.updated_at),
                )
            )
        return channel

    async def update(self, channel: AlertChannel) -> AlertChannel:
        async with session_scope(self._session_factory) as session:
            rec = await session.get(AlertChannelRecord, channel.id)
            if rec is None:
                raise NotFoundError(f"Alert channel not found: {channel.id}")
            rec.name = channel.name
            rec.configuration = channel.configuration
            rec.is_active = channel.is_active
            rec.updated_at = ensure_utc(channel.updated_at)
        return channel

    async def delete(self, channel_id: str) -> None:
        async with session_scope(self._session_factory) as session:
            rec = await session.get(AlertChannelRecord, channel_id)
            if rec is None:
                raise NotFoundError(f"Alert channel not found: {channel_id}")
            # Bindings of inactive traps are pruned with the channel
            await session.execute(
                trap_channels.delete().where(trap_channels.c.channel_id == channel_id)
            )
            await session.delete(rec)

    async def list_by_team(self, team_id: str) -> list[AlertChannel]:
        stmt = (
            select(AlertChannelRecord)
            .where(AlertChannelRecord.team_id == team_id)
            .order_by(AlertChannelRecord.created_at)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_channel_from_record(r) for r in rows]

    async def count_by_team(self, team_id: str) -> int:
        stmt = select(func.count()).select_from(AlertChannelRecord).where(
            AlertChannelRecord.team_id == team_id
        )
        async with self._session_factory() as session:
            return int((await session.execute(stmt)).scalar_one())

    async def list_channels_for_trap(self, trap_id: str) -> list[AlertChannel]:
        stmt = (
            select(AlertChannelRecord)
            .join(trap_channels, trap_channels.c.channel_id == AlertChannelRecord.id)
            .where(trap_channels.c.trap_id == trap_id)
            .order_by(AlertChannelRecord.created_at)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_channel_from_record(r) for r in rows]
