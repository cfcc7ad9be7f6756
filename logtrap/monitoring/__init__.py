"""Monitoring package -- alert lifecycle and notification delivery.

Provides:
- AlertLifecycleManager: fire/acknowledge/resolve with per-trap de-duplication
- NotificationDispatcher: concurrent, isolated fan-out to channel adapters
- Channel adapters for EMAIL, WEBHOOK, TEAMS and SLACK
- ChannelService: channel CRUD with the deletion guard
"""

from logtrap.monitoring.alert_manager import AlertLifecycleManager, format_trigger_message
from logtrap.monitoring.channel_service import ChannelService
from logtrap.monitoring.channels import ChannelAdapter, build_adapters
from logtrap.monitoring.dispatcher import NotificationDispatcher
from logtrap.monitoring.models import Alert, AlertChannel, DeliveryResult

__all__ = [
    "Alert",
    "AlertChannel",
    "AlertLifecycleManager",
    "ChannelAdapter",
    "ChannelService",
    "DeliveryResult",
    "NotificationDispatcher",
    "build_adapters",
    "format_trigger_message",
]
