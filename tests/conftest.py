"""Root pytest configuration and shared fixtures.

Provides common test fixtures used across all test modules:
- clock: ManualClock frozen at T0, advanced explicitly by tests
- in-memory stores (log entries, traps, alerts, channels)
- recording channel adapters and a dispatcher built on them
- lifecycle manager and evaluation engine wired to the above
- make_entry / make_trap / make_channel / ingest factories
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from logtrap.core.enums import (
    AlertSeverity,
    ChannelType,
    ConditionType,
    LogLevel,
    TrapType,
)
from logtrap.core.exceptions import DeliveryError
from logtrap.monitoring.alert_manager import AlertLifecycleManager
from logtrap.monitoring.channels import ChannelAdapter
from logtrap.monitoring.dispatcher import NotificationDispatcher
from logtrap.monitoring.models import Alert, AlertChannel
from logtrap.stores.memory import (
    InMemoryAlertStore,
    InMemoryChannelStore,
    InMemoryLogEntryStore,
    InMemoryTrapStore,
)
from logtrap.traps.engine import TrapEvaluationEngine
from logtrap.traps.evaluators import PatternCache, build_evaluators
from logtrap.traps.models import LogEntry, Trap, new_id

T0 = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class ManualClock:
    """Deterministic clock: returns ``now`` until advanced."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 0, **kwargs: float) -> datetime:
        self.now += timedelta(seconds=seconds, **kwargs)
        return self.now


class RecordingAdapter(ChannelAdapter):
    """Channel adapter that records deliveries and can fail or hang on demand."""

    def __init__(
        self, channel_type: ChannelType, fail: bool = False, hang: bool = False
    ) -> None:
        self.channel_type = channel_type
        self.fail = fail
        self.hang = hang
        self.sent: list[tuple[str, str]] = []

    async def send(self, alert: Alert, trap: Trap, channel: AlertChannel) -> None:
        if self.hang:
            await asyncio.sleep(3600)
        if self.fail:
            raise DeliveryError(f"{channel.name} unreachable")
        self.sent.append((alert.id, channel.id))


# ---------------------------------------------------------------------------
# Clock and stores
# ---------------------------------------------------------------------------
@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def log_store() -> InMemoryLogEntryStore:
    return InMemoryLogEntryStore()


@pytest.fixture
def trap_store() -> InMemoryTrapStore:
    return InMemoryTrapStore()


@pytest.fixture
def alert_store() -> InMemoryAlertStore:
    return InMemoryAlertStore()


@pytest.fixture
def channel_store(trap_store: InMemoryTrapStore) -> InMemoryChannelStore:
    return InMemoryChannelStore(trap_store)


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------
@pytest.fixture
def adapters() -> dict[ChannelType, RecordingAdapter]:
    return {ct: RecordingAdapter(ct) for ct in ChannelType}


@pytest.fixture
def dispatcher(adapters) -> NotificationDispatcher:
    return NotificationDispatcher(adapters, timeout_seconds=0.2)


@pytest.fixture
def lifecycle(trap_store, alert_store, channel_store, dispatcher, clock) -> AlertLifecycleManager:
    return AlertLifecycleManager(
        trap_store, alert_store, channel_store, dispatcher, clock=clock
    )


@pytest.fixture
def engine(trap_store, log_store, lifecycle, clock) -> TrapEvaluationEngine:
    return TrapEvaluationEngine(
        trap_store,
        log_store,
        lifecycle,
        evaluators=build_evaluators(PatternCache(100)),
        clock=clock,
    )


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------
@pytest.fixture
def make_entry(clock):
    """Return a callable building a LogEntry stamped at the clock's current time."""

    def _make(
        message: str = "request served",
        team_id: str = "team-a",
        level: LogLevel = LogLevel.INFO,
        source: str | None = "api",
        fields: dict[str, Any] | None = None,
        timestamp: datetime | None = None,
        logger_name: str | None = None,
    ) -> LogEntry:
        return LogEntry(
            id=new_id(),
            team_id=team_id,
            timestamp=timestamp or clock(),
            level=level,
            message=message,
            source=source,
            logger_name=logger_name,
            fields=fields if fields is not None else {},
        )

    return _make


@pytest.fixture
def make_trap(trap_store, clock):
    """Return an async callable that stores and returns a Trap.

    Defaults to a PATTERN/REGEX trap on ``ERROR`` for team-a.
    """

    async def _make(**overrides: Any) -> Trap:
        values: dict[str, Any] = {
            "team_id": "team-a",
            "name": "errors",
            "trap_type": TrapType.PATTERN,
            "condition_type": ConditionType.REGEX,
            "pattern": "ERROR",
            "severity": AlertSeverity.WARNING,
            "cooldown_seconds": 300,
            "created_at": clock(),
            "updated_at": clock(),
        }
        values.update(overrides)
        trap = Trap(**values)
        await trap_store.add(trap)
        return trap

    return _make


@pytest.fixture
def make_channel(channel_store):
    """Return an async callable that stores and returns an AlertChannel."""

    async def _make(
        channel_type: ChannelType = ChannelType.WEBHOOK,
        team_id: str = "team-a",
        name: str | None = None,
        configuration: dict[str, Any] | None = None,
        is_active: bool = True,
    ) -> AlertChannel:
        channel = AlertChannel(
            team_id=team_id,
            name=name or f"{channel_type.value.lower()}-channel",
            channel_type=channel_type,
            configuration=configuration or {},
            is_active=is_active,
        )
        await channel_store.add(channel)
        return channel

    return _make


@pytest.fixture
def ingest(log_store, engine):
    """Return an async callable: persist an entry, then evaluate it."""

    async def _ingest(entry: LogEntry) -> set[str]:
        await log_store.add(entry)
        return await engine.on_log_entry_ingested(entry)

    return _ingest
