"""Log entry table as seen by the trap engine.

Rows are written by the ingestion subsystem; the engine only reads them to
count qualifying entries inside FREQUENCY and ABSENCE windows.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, JsonType


class LogEntryRecord(Base):
    """Immutable ingested log entry."""

    __tablename__ = "log_entries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    team_id: Mapped[str] = mapped_column(String(36), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    level: Mapped[str] = mapped_column(String(10), nullable=False)
    source: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    logger_name: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    fields: Mapped[Optional[dict]] = mapped_column(JsonType, nullable=True)

    __table_args__ = (
        Index("ix_log_entries_team_id_timestamp", "team_id", "timestamp"),
        Index("ix_log_entries_team_id_source_timestamp", "team_id", "source", "timestamp"),
    )

    def __repr__(self) -> str:
        return (
            f"<LogEntryRecord("
            f"id={self.id!r}, "
            f"team_id={self.team_id!r}, "
            f"level={self.level!r})>"
        )
