"""Store interfaces the engine depends on.

The trap engine never talks to a database directly: it reads traps, log
entries and channels and reads/writes alerts through these Protocols.
``stores.memory`` and ``stores.sql`` provide the two implementations.

All windows are half-open ``(start, end]``: an entry stamped exactly at
``start`` is outside the window, one stamped exactly at ``end`` is inside.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from logtrap.core.enums import AlertSeverity, AlertStatus, LogLevel, TrapType
from logtrap.monitoring.models import Alert, AlertChannel
from logtrap.traps.models import LogEntry, Trap


class LogEntryStore(Protocol):
    """Read access to a team's ingested log entries."""

    async def add(self, entry: LogEntry) -> LogEntry: ...

    async def count_entries(
        self,
        team_id: str,
        start: datetime,
        end: datetime,
        *,
        source: str | None = None,
        min_level: LogLevel | None = None,
    ) -> int: ...

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
    ) -> list[LogEntry]: ...


class TrapStore(Protocol):
    """Durable collection of trap definitions."""

    async def get(self, trap_id: str) -> Trap | None: ...

    async def add(self, trap: Trap) -> Trap: ...

    async def update(self, trap: Trap) -> Trap: ...

    async def list_active_traps(self, team_id: str) -> list[Trap]: ...

    async def list_active_traps_by_type(self, trap_type: TrapType) -> list[Trap]: ...

    async def list_traps_by_team(self, team_id: str) -> list[Trap]: ...

    async def count_by_team(self, team_id: str) -> int: ...

    async def traps_referencing_channel(
        self, channel_id: str, active_only: bool = True
    ) -> list[Trap]: ...

    async def record_trigger(self, trap_id: str, at: datetime) -> None: ...


class AlertStore(Protocol):
    """CRUD on alert rows keyed by id and by trap id + status."""

    async def get(self, alert_id: str) -> Alert | None: ...

    async def add(self, alert: Alert) -> Alert: ...

    async def update(self, alert: Alert) -> Alert: ...

    async def find_open_for_trap(self, trap_id: str) -> Alert | None: ...

    async def list_for_trap(self, trap_id: str) -> list[Alert]: ...

    async def list_by_team(
        self,
        team_id: str,
        *,
        status: AlertStatus | None = None,
        severity: AlertSeverity | None = None,
        limit: int = 50,
    ) -> list[Alert]: ...

    async def count_open_by_severity(self, team_id: str) -> dict[AlertSeverity, int]: ...


class ChannelStore(Protocol):
    """Channel configuration store."""

    async def get(self, channel_id: str) -> AlertChannel | None: ...

    async def add(self, channel: AlertChannel) -> AlertChannel: ...

    async def update(self, channel: AlertChannel) -> AlertChannel: ...

    async def delete(self, channel_id: str) -> None: ...

    async def list_by_team(self, team_id: str) -> list[AlertChannel]: ...

    async def count_by_team(self, team_id: str) -> int: ...

    async def list_channels_for_trap(self, trap_id: str) -> list[AlertChannel]: ...
