"""Definition-time validation for traps and alert channels.

Every rule here runs when a trap or channel is created or updated, never
during evaluation: a definition that passes ``validate_trap`` can always be
evaluated without a ValidationError.
"""

from __future__ import annotations

import ipaddress
import re
from typing import Any
from urllib.parse import urlsplit

from logtrap.core.enums import COMPATIBLE_CONDITIONS, ChannelType, ConditionType, TrapType
from logtrap.core.exceptions import ValidationError
from logtrap.traps.models import ENTRY_ATTRIBUTE_FIELDS, Trap

SLACK_WEBHOOK_PREFIX = "https://hooks.slack.com/"

_BLOCKED_HOSTS = frozenset({"localhost", "localhost.localdomain", "metadata.google.internal"})

# Dotted-quad prefixes of private ranges, for hosts that are not IP literals
_BLOCKED_PREFIXES = ("10.", "127.", "169.254.", "192.168.", "0.")


def validate_trap(trap: Trap) -> None:
    """Raise ValidationError if *trap* cannot be evaluated.

    Checks:
        - name and team are present
        - condition type is compatible with the trap type
        - PATTERN traps carry a pattern; REGEX patterns compile
        - FREQUENCY traps carry a positive threshold and window
        - ABSENCE traps carry a positive window
        - optional filter patterns on FREQUENCY/ABSENCE traps compile
        - the field selector is known
        - cooldown is not negative
    """
    if not trap.name or not trap.name.strip():
        raise ValidationError("Trap name is required")
    if not trap.team_id:
        raise ValidationError("Trap team_id is required")

    allowed = COMPATIBLE_CONDITIONS[trap.trap_type]
    if trap.condition_type not in allowed:
        raise ValidationError(
            f"Condition type {trap.condition_type.value} is not valid for "
            f"{trap.trap_type.value} traps (allowed: "
            f"{', '.join(sorted(c.value for c in allowed))})"
        )

    if trap.trap_type == TrapType.PATTERN:
        if not trap.pattern:
            raise ValidationError(
                f"{trap.condition_type.value} condition requires a pattern"
            )
        if trap.condition_type == ConditionType.REGEX:
            compile_pattern(trap.pattern)
    elif trap.pattern:
        compile_pattern(trap.pattern)

    if trap.trap_type == TrapType.FREQUENCY:
        if trap.threshold is None or trap.threshold < 1:
            raise ValidationError("FREQUENCY_THRESHOLD condition requires threshold >= 1")
        _require_window(trap)
    elif trap.trap_type == TrapType.ABSENCE:
        _require_window(trap)

    validate_field_name(trap.field_name)

    if trap.cooldown_seconds < 0:
        raise ValidationError("cooldown_seconds must not be negative")


def _require_window(trap: Trap) -> None:
    if trap.window_seconds is None or trap.window_seconds < 1:
        raise ValidationError(
            f"{trap.condition_type.value} condition requires window_seconds >= 1"
        )


def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Compile *pattern*, converting ``re.error`` into ValidationError."""
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise ValidationError(f"Invalid regex pattern {pattern!r}: {exc}") from exc


def validate_field_name(field_name: str) -> None:
    if field_name in ENTRY_ATTRIBUTE_FIELDS:
        return
    if field_name in ("fields", "custom_fields", "customFields"):
        return
    if field_name.startswith("fields.") and len(field_name) > len("fields."):
        return
    raise ValidationError(f"Unknown field selector: {field_name!r}")


# ---------------------------------------------------------------------------
# Channels
# ---------------------------------------------------------------------------
def validate_webhook_url(url: Any) -> None:
    """Require HTTPS and reject loopback, link-local and private targets."""
    if not isinstance(url, str) or not url.strip():
        raise ValidationError("Webhook URL is required")
    if not url.startswith("https://"):
        raise ValidationError("Webhook URL must use HTTPS")

    try:
        host = urlsplit(url).hostname
    except ValueError as exc:
        raise ValidationError(f"Invalid webhook URL: {exc}") from exc
    if not host:
        raise ValidationError("Invalid webhook URL: no host")

    host = host.lower()
    if host in _BLOCKED_HOSTS or host.startswith(_BLOCKED_PREFIXES):
        raise ValidationError("Webhook URL must not target internal addresses")

    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return
    if (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_reserved
        or address.is_unspecified
    ):
        raise ValidationError("Webhook URL must not target internal addresses")


def validate_channel_config(channel_type: ChannelType, configuration: Any) -> None:
    """Raise ValidationError if *configuration* is unusable for *channel_type*."""
    if not isinstance(configuration, dict):
        raise ValidationError("Channel configuration must be a JSON object")

    if channel_type == ChannelType.EMAIL:
        recipients = configuration.get("recipients")
        if not isinstance(recipients, list) or not recipients:
            raise ValidationError(
                "Email channel requires 'recipients' array with at least 1 email"
            )
        for recipient in recipients:
            if not isinstance(recipient, str) or "@" not in recipient:
                raise ValidationError(f"Invalid email recipient: {recipient!r}")

    elif channel_type == ChannelType.WEBHOOK:
        if not configuration.get("url"):
            raise ValidationError("Webhook channel requires 'url'")
        validate_webhook_url(configuration["url"])
        headers = configuration.get("headers", {})
        if not isinstance(headers, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in headers.items()
        ):
            raise ValidationError("Webhook 'headers' must map strings to strings")

    elif channel_type == ChannelType.TEAMS:
        if not configuration.get("webhook_url"):
            raise ValidationError("Teams channel requires 'webhook_url'")
        validate_webhook_url(configuration["webhook_url"])

    elif channel_type == ChannelType.SLACK:
        slack_url = configuration.get("webhook_url")
        if not slack_url:
            raise ValidationError("Slack channel requires 'webhook_url'")
        if not isinstance(slack_url, str) or not slack_url.startswith(SLACK_WEBHOOK_PREFIX):
            raise ValidationError(
                f"Slack webhook URL must start with {SLACK_WEBHOOK_PREFIX}"
            )
