"""Alert table: one row per alert instance fired by a trap.

A partial unique index on trap_id over the open statuses enforces the
at-most-one-open-alert rule at the database level as well.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base

_OPEN_STATUS_CLAUSE = text("status IN ('FIRED', 'ACKNOWLEDGED')")


class AlertRecord(Base):
    """Lifecycle record of a trap firing.

    first_fired_at/last_fired_at/fire_count track de-duplicated matches;
    acknowledged_*/resolved_* are stamped by external actors.
    """

    __tablename__ = "alerts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    trap_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("log_traps.id"), nullable=False
    )
    team_id: Mapped[str] = mapped_column(String(36), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="FIRED")
    trigger_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    first_fired_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    last_fired_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    fire_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=1)
    acknowledged_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    resolved_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        Index("ix_alerts_team_id", "team_id"),
        Index("ix_alerts_status", "status"),
        Index("ix_alerts_severity", "severity"),
        Index("ix_alerts_trap_id_status", "trap_id", "status"),
        Index(
            "uq_alerts_open_trap_id",
            "trap_id",
            unique=True,
            sqlite_where=_OPEN_STATUS_CLAUSE,
            postgresql_where=_OPEN_STATUS_CLAUSE,
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<AlertRecord("
            f"id={self.id!r}, "
            f"trap_id={self.trap_id!r}, "
            f"status={self.status!r}, "
            f"fire_count={self.fire_count})>"
        )
