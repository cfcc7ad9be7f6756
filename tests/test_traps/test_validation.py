"""Tests for definition-time validation of traps and channels.

Verifies:
- trap type / condition type compatibility
- invalid regex fails at definition time
- required threshold and window per trap type
- field selector and cooldown checks
- channel configuration rules per channel type, including SSRF protection
"""

from __future__ import annotations

import pytest

from logtrap.core.enums import ChannelType, ConditionType, LogLevel, TrapType
from logtrap.core.exceptions import ValidationError
from logtrap.traps.models import Trap
from logtrap.traps.validation import (
    validate_channel_config,
    validate_trap,
    validate_webhook_url,
)


def _trap(**overrides) -> Trap:
    values = {
        "team_id": "team-a",
        "name": "t",
        "trap_type": TrapType.PATTERN,
        "condition_type": ConditionType.REGEX,
        "pattern": "ERROR",
    }
    values.update(overrides)
    return Trap(**values)


class TestValidateTrap:
    def test_valid_pattern_trap(self):
        validate_trap(_trap())

    @pytest.mark.parametrize(
        "trap_type,condition_type",
        [
            (TrapType.PATTERN, ConditionType.FREQUENCY_THRESHOLD),
            (TrapType.FREQUENCY, ConditionType.REGEX),
            (TrapType.ABSENCE, ConditionType.KEYWORD),
            (TrapType.FREQUENCY, ConditionType.ABSENCE),
        ],
    )
    def test_incompatible_condition_rejected(self, trap_type, condition_type):
        trap = _trap(
            trap_type=trap_type,
            condition_type=condition_type,
            threshold=1,
            window_seconds=60,
        )
        with pytest.raises(ValidationError, match="not valid"):
            validate_trap(trap)

    def test_invalid_regex_rejected(self):
        with pytest.raises(ValidationError, match="Invalid regex"):
            validate_trap(_trap(pattern="(unclosed"))

    def test_invalid_keyword_is_not_a_regex(self):
        validate_trap(_trap(condition_type=ConditionType.KEYWORD, pattern="(literal"))

    def test_pattern_required(self):
        with pytest.raises(ValidationError, match="requires a pattern"):
            validate_trap(_trap(pattern=None))

    def test_frequency_requires_threshold_and_window(self):
        base = {
            "trap_type": TrapType.FREQUENCY,
            "condition_type": ConditionType.FREQUENCY_THRESHOLD,
            "pattern": None,
        }
        with pytest.raises(ValidationError, match="threshold"):
            validate_trap(_trap(**base, window_seconds=60))
        with pytest.raises(ValidationError, match="window_seconds"):
            validate_trap(_trap(**base, threshold=5))
        with pytest.raises(ValidationError, match="threshold"):
            validate_trap(_trap(**base, threshold=0, window_seconds=60))
        validate_trap(_trap(**base, threshold=5, window_seconds=60))

    def test_absence_requires_window(self):
        base = {
            "trap_type": TrapType.ABSENCE,
            "condition_type": ConditionType.ABSENCE,
            "pattern": None,
        }
        with pytest.raises(ValidationError, match="window_seconds"):
            validate_trap(_trap(**base))
        validate_trap(_trap(**base, window_seconds=300, min_level=LogLevel.INFO))

    def test_filter_pattern_on_frequency_must_compile(self):
        trap = _trap(
            trap_type=TrapType.FREQUENCY,
            condition_type=ConditionType.FREQUENCY_THRESHOLD,
            threshold=2,
            window_seconds=60,
            pattern="[bad",
        )
        with pytest.raises(ValidationError, match="Invalid regex"):
            validate_trap(trap)

    def test_unknown_field_selector(self):
        with pytest.raises(ValidationError, match="field selector"):
            validate_trap(_trap(field_name="thread"))
        validate_trap(_trap(field_name="fields.status"))
        validate_trap(_trap(field_name="loggerName"))

    def test_negative_cooldown(self):
        with pytest.raises(ValidationError, match="cooldown"):
            validate_trap(_trap(cooldown_seconds=-1))

    def test_blank_name(self):
        with pytest.raises(ValidationError, match="name"):
            validate_trap(_trap(name="  "))


class TestWebhookUrl:
    @pytest.mark.parametrize(
        "url",
        [
            "http://example.com/hook",
            "https://localhost/hook",
            "https://127.0.0.1/hook",
            "https://10.1.2.3/hook",
            "https://192.168.0.10/hook",
            "https://169.254.169.254/latest/meta-data",
            "https://[::1]/hook",
            "https://172.16.0.5/hook",
            "",
        ],
    )
    def test_rejected(self, url):
        with pytest.raises(ValidationError):
            validate_webhook_url(url)

    def test_public_https_accepted(self):
        validate_webhook_url("https://hooks.example.com/codeops")


class TestChannelConfig:
    def test_email_requires_recipients(self):
        with pytest.raises(ValidationError, match="recipients"):
            validate_channel_config(ChannelType.EMAIL, {"recipients": []})
        with pytest.raises(ValidationError, match="recipient"):
            validate_channel_config(ChannelType.EMAIL, {"recipients": ["nobody"]})
        validate_channel_config(ChannelType.EMAIL, {"recipients": ["ops@example.com"]})

    def test_webhook_requires_url(self):
        with pytest.raises(ValidationError, match="url"):
            validate_channel_config(ChannelType.WEBHOOK, {})
        validate_channel_config(
            ChannelType.WEBHOOK,
            {"url": "https://hooks.example.com/x", "headers": {"X-Token": "abc"}},
        )

    def test_webhook_headers_must_be_strings(self):
        with pytest.raises(ValidationError, match="headers"):
            validate_channel_config(
                ChannelType.WEBHOOK,
                {"url": "https://hooks.example.com/x", "headers": {"X-Retry": 3}},
            )

    def test_teams_requires_public_https(self):
        with pytest.raises(ValidationError, match="webhook_url"):
            validate_channel_config(ChannelType.TEAMS, {"url": "https://x.example.com"})
        with pytest.raises(ValidationError, match="internal"):
            validate_channel_config(ChannelType.TEAMS, {"webhook_url": "https://localhost/x"})
        validate_channel_config(
            ChannelType.TEAMS, {"webhook_url": "https://outlook.office.com/webhook/abc"}
        )

    def test_slack_requires_slack_host(self):
        with pytest.raises(ValidationError, match="hooks.slack.com"):
            validate_channel_config(
                ChannelType.SLACK, {"webhook_url": "https://example.com/services/x"}
            )
        validate_channel_config(
            ChannelType.SLACK, {"webhook_url": "https://hooks.slack.com/services/T00/B00/x"}
        )

    def test_configuration_must_be_object(self):
        with pytest.raises(ValidationError, match="JSON object"):
            validate_channel_config(ChannelType.WEBHOOK, "https://example.com")
