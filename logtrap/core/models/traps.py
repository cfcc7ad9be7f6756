"""Trap definition tables.

  - LogTrapRecord: one monitoring rule per row, soft-disabled via is_active
  - trap_channels: many-to-many association between traps and alert channels
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin

trap_channels = Table(
    "trap_channels",
    Base.metadata,
    Column("trap_id", String(36), ForeignKey("log_traps.id"), primary_key=True),
    Column(
        "channel_id", String(36), ForeignKey("alert_channels.id"), primary_key=True
    ),
)


class LogTrapRecord(TimestampMixin, Base):
    """Persisted trap definition.

    Holds exactly one condition: the pattern/keyword for PATTERN traps,
    threshold + window for FREQUENCY traps, window for ABSENCE traps, plus
    the optional field_name/source/level filters.
    """

    __tablename__ = "log_traps"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    team_id: Mapped[str] = mapped_column(String(36), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    trap_type: Mapped[str] = mapped_column(String(20), nullable=False)
    condition_type: Mapped[str] = mapped_column(String(30), nullable=False)
    pattern: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    field_name: Mapped[str] = mapped_column(
        String(100), nullable=False, default="message"
    )
    source_filter: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    min_level: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    threshold: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    window_seconds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    cooldown_seconds: Mapped[int] = mapped_column(Integer, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    trigger_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    last_triggered_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    channels = relationship(
        "AlertChannelRecord", secondary=trap_channels, lazy="selectin"
    )

    __table_args__ = (
        Index("ix_log_traps_team_id", "team_id"),
        Index("ix_log_traps_team_id_is_active", "team_id", "is_active"),
        Index("ix_log_traps_trap_type_is_active", "trap_type", "is_active"),
    )

    def __repr__(self) -> str:
        return (
            f"<LogTrapRecord("
            f"id={self.id!r}, "
            f"name={self.name!r}, "
            f"trap_type={self.trap_type!r}, "
            f"is_active={self.is_active})>"
        )
