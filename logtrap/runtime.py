"""Wiring of the log trap engine from Settings.

``build_memory_runtime`` assembles everything on in-memory stores;
``build_sql_runtime`` does the same on the SQLAlchemy stores, creating the
tables if needed. Both return a ``LogTrapRuntime`` usable as an async
context manager::

    async with await build_sql_runtime() as runtime:
        await runtime.ingest(entry)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine

from logtrap.core.config import settings
from logtrap.core.database import build_engine, build_session_factory, init_models
from logtrap.core.utils.logging_config import configure_logging, get_logger
from logtrap.core.utils.timeutils import Clock, utcnow
from logtrap.ingestion.bridge import IngestionBridge
from logtrap.monitoring.alert_manager import AlertLifecycleManager
from logtrap.monitoring.channel_service import ChannelService
from logtrap.monitoring.channels import build_adapters
from logtrap.monitoring.dispatcher import NotificationDispatcher
from logtrap.scheduler.absence import AbsenceScheduler
from logtrap.stores.base import AlertStore, ChannelStore, LogEntryStore, TrapStore
from logtrap.stores.memory import (
    InMemoryAlertStore,
    InMemoryChannelStore,
    InMemoryLogEntryStore,
    InMemoryTrapStore,
)
from logtrap.stores.sql import (
    SqlAlertStore,
    SqlChannelStore,
    SqlLogEntryStore,
    SqlTrapStore,
)
from logtrap.traps.engine import TrapEvaluationEngine
from logtrap.traps.evaluators import PatternCache, build_evaluators
from logtrap.traps.models import LogEntry
from logtrap.traps.trap_service import TrapService

log = get_logger("runtime")


@dataclass
class LogTrapRuntime:
    """All engine components sharing one set of stores and one clock."""

    log_store: LogEntryStore
    trap_store: TrapStore
    alert_store: AlertStore
    channel_store: ChannelStore
    dispatcher: NotificationDispatcher
    lifecycle: AlertLifecycleManager
    engine: TrapEvaluationEngine
    bridge: IngestionBridge
    scheduler: AbsenceScheduler
    trap_service: TrapService
    channel_service: ChannelService
    http_client: httpx.AsyncClient
    db_engine: AsyncEngine | None = None
    owns_http_client: bool = True

    async def ingest(self, entry: LogEntry) -> None:
        """Persist *entry*, then hand it to trap evaluation without waiting."""
        await self.log_store.add(entry)
        self.bridge.notify(entry)

    async def start(self) -> None:
        self.scheduler.start()

    async def aclose(self) -> None:
        await self.scheduler.stop()
        await self.bridge.drain()
        if self.owns_http_client:
            await self.http_client.aclose()
        if self.db_engine is not None:
            await self.db_engine.dispose()
        log.info("runtime_closed")

    async def __aenter__(self) -> "LogTrapRuntime":
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()


def _assemble(
    log_store: LogEntryStore,
    trap_store: TrapStore,
    alert_store: AlertStore,
    channel_store: ChannelStore,
    clock: Clock,
    http_client: httpx.AsyncClient | None,
    db_engine: AsyncEngine | None = None,
) -> LogTrapRuntime:
    configure_logging()
    client = http_client or httpx.AsyncClient(
        timeout=httpx.Timeout(settings.delivery_timeout_seconds),
        limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
    )
    dispatcher = NotificationDispatcher(build_adapters(client))
    lifecycle = AlertLifecycleManager(
        trap_store, alert_store, channel_store, dispatcher, clock=clock
    )
    engine = TrapEvaluationEngine(
        trap_store,
        log_store,
        lifecycle,
        evaluators=build_evaluators(PatternCache(settings.max_pattern_cache_size)),
        clock=clock,
    )
    runtime = LogTrapRuntime(
        log_store=log_store,
        trap_store=trap_store,
        alert_store=alert_store,
        channel_store=channel_store,
        dispatcher=dispatcher,
        lifecycle=lifecycle,
        engine=engine,
        bridge=IngestionBridge(engine),
        scheduler=AbsenceScheduler(engine, trap_store),
        trap_service=TrapService(trap_store, channel_store, log_store, clock=clock),
        channel_service=ChannelService(channel_store, trap_store, clock=clock),
        http_client=client,
        db_engine=db_engine,
        owns_http_client=http_client is None,
    )
    log.info("runtime_built", store=type(trap_store).__name__)
    return runtime


def build_memory_runtime(
    clock: Clock = utcnow, http_client: httpx.AsyncClient | None = None
) -> LogTrapRuntime:
    trap_store = InMemoryTrapStore()
    return _assemble(
        InMemoryLogEntryStore(),
        trap_store,
        InMemoryAlertStore(),
        InMemoryChannelStore(trap_store),
        clock,
        http_client,
    )


async def build_sql_runtime(
    database_url: str | None = None,
    clock: Clock = utcnow,
    http_client: httpx.AsyncClient | None = None,
) -> LogTrapRuntime:
    """Runtime on the SQLAlchemy stores at *database_url* (defaults to settings)."""
    db_engine = build_engine(database_url)
    await init_models(db_engine)
    factory = build_session_factory(db_engine)
    return _assemble(
        SqlLogEntryStore(factory),
        SqlTrapStore(factory),
        SqlAlertStore(factory),
        SqlChannelStore(factory),
        clock,
        http_client,
        db_engine=db_engine,
    )
