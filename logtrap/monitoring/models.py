"""Domain models for alerts and notification channels."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from logtrap.core.enums import (
    OPEN_ALERT_STATUSES,
    AlertSeverity,
    AlertStatus,
    ChannelType,
)
from logtrap.core.utils.timeutils import utcnow
from logtrap.traps.models import new_id


@dataclass
class Alert:
    """One alert instance of a trap.

    At most one alert per trap is open (FIRED or ACKNOWLEDGED) at any time;
    matches inside the trap's cooldown bump ``fire_count`` on that instance.
    """

    trap_id: str
    team_id: str
    severity: AlertSeverity
    trigger_message: str
    first_fired_at: datetime
    last_fired_at: datetime
    status: AlertStatus = AlertStatus.FIRED
    fire_count: int = 1
    id: str = field(default_factory=new_id)
    acknowledged_by: str | None = None
    acknowledged_at: datetime | None = None
    resolved_by: str | None = None
    resolved_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_ALERT_STATUSES


@dataclass
class AlertChannel:
    """A configured notification destination owned by a team."""

    team_id: str
    name: str
    channel_type: ChannelType
    configuration: dict[str, Any]
    is_active: bool = True
    id: str = field(default_factory=new_id)
    created_by: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of one channel delivery attempt."""

    channel_id: str
    channel_type: ChannelType
    delivered: bool
    error: str | None = None
