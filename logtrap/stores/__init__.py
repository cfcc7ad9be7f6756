"""Store Protocols and their in-memory and SQLAlchemy implementations."""

from logtrap.stores.base import AlertStore, ChannelStore, LogEntryStore, TrapStore
from logtrap.stores.memory import (
    InMemoryAlertStore,
    InMemoryChannelStore,
    InMemoryLogEntryStore,
    InMemoryTrapStore,
)
from logtrap.stores.sql import SqlAlertStore, SqlChannelStore, SqlLogEntryStore, SqlTrapStore

__all__ = [
    "AlertStore",
    "ChannelStore",
    "LogEntryStore",
    "TrapStore",
    "InMemoryAlertStore",
    "InMemoryChannelStore",
    "InMemoryLogEntryStore",
    "InMemoryTrapStore",
    "SqlAlertStore",
    "SqlChannelStore",
    "SqlLogEntryStore",
    "SqlTrapStore",
]
