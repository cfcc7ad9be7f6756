"""Alert channel table: one configured notification destination per row."""

from typing import Optional

from sqlalchemy import Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, JsonType, TimestampMixin


class AlertChannelRecord(TimestampMixin, Base):
    """Notification channel owned by a team.

    configuration shape per channel_type:
      EMAIL:   {"recipients": ["a@b.com"], "subject_prefix": "[Logger]"}
      WEBHOOK: {"url": "https://...", "headers": {"X-Token": "..."}}
      TEAMS:   {"webhook_url": "https://..."}
      SLACK:   {"webhook_url": "https://hooks.slack.com/..."}
    """

    __tablename__ = "alert_channels"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    team_id: Mapped[str] = mapped_column(String(36), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    channel_type: Mapped[str] = mapped_column(String(20), nullable=False)
    configuration: Mapped[dict] = mapped_column(JsonType, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    __table_args__ = (
        Index("ix_alert_channels_team_id", "team_id"),
        Index("ix_alert_channels_channel_type", "channel_type"),
    )

    def __repr__(self) -> str:
        return (
            f"<AlertChannelRecord("
            f"id={self.id!r}, "
            f"channel_type={self.channel_type!r}, "
            f"is_active={self.is_active})>"
        )
