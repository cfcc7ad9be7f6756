"""In-memory store implementations.

Dict-backed stores satisfying the Protocols in ``stores.base``. Used for
embedded deployments and throughout the test suite. Values are copied on the
way in and out so callers never share mutable state with the store.
"""

from __future__ import annotations

import copy
from collections import defaultdict
from datetime import datetime

from logtrap.core.enums import (
    AlertSeverity,
    AlertStatus,
    LogLevel,
    TrapType,
)
from logtrap.core.exceptions import NotFoundError
from logtrap.monitoring.models import Alert, AlertChannel
from logtrap.traps.models import LogEntry, Trap


def _in_window(ts: datetime, start: datetime, end: datetime) -> bool:
    return start < ts <= end


class InMemoryLogEntryStore:
    """Per-team lists of entries; teams never see each other's entries."""

    def __init__(self) -> None:
        self._entries: dict[str, list[LogEntry]] = defaultdict(list)

    async def add(self, entry: LogEntry) -> LogEntry:
        self._entries[entry.team_id].append(entry)
        return entry

    def _select(
        self,
        team_id: str,
        start: datetime,
        end: datetime,
        source: str | None,
        min_level: LogLevel | None,
    ) -> list[LogEntry]:
        selected = []
        for entry in self._entries.get(team_id, []):
            if not _in_window(entry.timestamp, start, end):
                continue
            if source is not None and entry.source != source:
                continue
            if min_level is not None and not entry.level.at_or_above(min_level):
                continue
            selected.append(entry)
        return selected

    async def count_entries(
        self,
        team_id: str,
        start: datetime,
        end: datetime,
        *,
        source: str | None = None,
        min_level: LogLevel | None = None,
    ) -> int:
        return len(self._select(team_id, start, end, source, min_level))

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
        entries = sorted(
            self._select(team_id, start, end, source, min_level),
            key=lambda e: (e.timestamp, e.id),
        )[offset:]
        return entries[:limit] if limit is not None else entries


class InMemoryTrapStore:
    def __init__(self) -> None:
        self._traps: dict[str, Trap] = {}

    async def get(self, trap_id: str) -> Trap | None:
        trap = self._traps.get(trap_id)
        return copy.deepcopy(trap) if trap else None

    async def add(self, trap: Trap) -> Trap:
        self._traps[trap.id] = copy.deepcopy(trap)
        return trap

    async def update(self, trap: Trap) -> Trap:
        if trap.id not in self._traps:
            raise NotFoundError(f"Log trap not found: {trap.id}")
        stored = copy.deepcopy(trap)
        stored.trigger_count = self._traps[trap.id].trigger_count
        stored.last_triggered_at = self._traps[trap.id].last_triggered_at
        self._traps[trap.id] = stored
        return trap

    async def list_active_traps(self, team_id: str) -> list[Trap]:
        return [
            copy.deepcopy(t)
            for t in self._traps.values()
            if t.team_id == team_id and t.is_active
        ]

    async def list_active_traps_by_type(self, trap_type: TrapType) -> list[Trap]:
        return [
            copy.deepcopy(t)
            for t in self._traps.values()
            if t.trap_type == trap_type and t.is_active
        ]

    async def list_traps_by_team(self, team_id: str) -> list[Trap]:
        return [copy.deepcopy(t) for t in self._traps.values() if t.team_id == team_id]

    async def count_by_team(self, team_id: str) -> int:
        return sum(1 for t in self._traps.values() if t.team_id == team_id)

    async def traps_referencing_channel(
        self, channel_id: str, active_only: bool = True
    ) -> list[Trap]:
        return [
            copy.deepcopy(t)
            for t in self._traps.values()
            if channel_id in t.channel_ids and (t.is_active or not active_only)
        ]

    async def record_trigger(self, trap_id: str, at: datetime) -> None:
        trap = self._traps.get(trap_id)
        if trap is None:
            return
        trap.trigger_count += 1
        trap.last_triggered_at = at

    def unbind_channel(self, channel_id: str) -> None:
        for trap in self._traps.values():
            if channel_id in trap.channel_ids:
                trap.channel_ids.remove(channel_id)


class InMemoryAlertStore:
    def __init__(self) -> None:
        self._alerts: dict[str, Alert] = {}

    async def get(self, alert_id: str) -> Alert | None:
        alert = self._alerts.get(alert_id)
        return copy.copy(alert) if alert else None

    async def add(self, alert: Alert) -> Alert:
        if alert.is_open and await self.find_open_for_trap(alert.trap_id):
            raise ValueError(f"Trap {alert.trap_id} already has an open alert")
        self._alerts[alert.id] = copy.copy(alert)
        return alert

    async def update(self, alert: Alert) -> Alert:
        if alert.id not in self._alerts:
            raise NotFoundError(f"Alert not found: {alert.id}")
        self._alerts[alert.id] = copy.copy(alert)
        return alert

    async def find_open_for_trap(self, trap_id: str) -> Alert | None:
        for alert in self._alerts.values():
            if alert.trap_id == trap_id and alert.is_open:
                return copy.copy(alert)
        return None

    async def list_for_trap(self, trap_id: str) -> list[Alert]:
        alerts = [copy.copy(a) for a in self._alerts.values() if a.trap_id == trap_id]
        alerts.sort(key=lambda a: a.first_fired_at)
        return alerts

    async def list_by_team(
        self,
        team_id: str,
        *,
        status: AlertStatus | None = None,
        severity: AlertSeverity | None = None,
        limit: int = 50,
    ) -> list[Alert]:
        alerts = [
            copy.copy(a)
            for a in self._alerts.values()
            if a.team_id == team_id
            and (status is None or a.status == status)
            and (severity is None or a.severity == severity)
        ]
        alerts.sort(key=lambda a: a.last_fired_at, reverse=True)
        return alerts[:limit]

    async def count_open_by_severity(self, team_id: str) -> dict[AlertSeverity, int]:
        counts = {severity: 0 for severity in AlertSeverity}
        for alert in self._alerts.values():
            if alert.team_id == team_id and alert.is_open:
                counts[alert.severity] += 1
        return counts


class InMemoryChannelStore:
    """Channel store; trap bindings are read from the trap store."""

    def __init__(self, trap_store: InMemoryTrapStore) -> None:
        self._channels: dict[str, AlertChannel] = {}
        self._trap_store = trap_store

    async def get(self, channel_id: str) -> AlertChannel | None:
        channel = self._channels.get(channel_id)
        return copy.deepcopy(channel) if channel else None

    async def add(self, channel: AlertChannel) -> AlertChannel:
        self._channels[channel.id] = copy.deepcopy(channel)
        return channel

    async def update(self, channel: AlertChannel) -> AlertChannel:
        if channel.id not in self._channels:
            raise NotFoundError(f"Alert channel not found: {channel.id}")
        self._channels[channel.id] = copy.deepcopy(channel)
        return channel

    async def delete(self, channel_id: str) -> None:
        if self._channels.pop(channel_id, None) is None:
            raise NotFoundError(f"Alert channel not found: {channel_id}")
        self._trap_store.unbind_channel(channel_id)

    async def list_by_team(self, team_id: str) -> list[AlertChannel]:
        return [
            copy.deepcopy(c) for c in self._channels.values() if c.team_id == team_id
        ]

    async def count_by_team(self, team_id: str) -> int:
        return sum(1 for c in self._channels.values() if c.team_id == team_id)

    async def list_channels_for_trap(self, trap_id: str) -> list[AlertChannel]:
        trap = await self._trap_store.get(trap_id)
        if trap is None:
            return []
        return [
            copy.deepcopy(self._channels[cid])
            for cid in trap.channel_ids
            if cid in self._channels
        ]
