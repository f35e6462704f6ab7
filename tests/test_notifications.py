"""
Slashwatch Notification Tests
"""

import json

import httpx
import pytest

from slashwatch.config import NotificationsConfig
from slashwatch.notifications import (
    ROUND_EXECUTED,
    SLASHING_DETECTED,
    SLASHING_ENABLED,
    LoggingNotifier,
    MultiNotifier,
    WebhookNotifier,
    build_notifier,
    format_eth,
    round_executed_alert,
    slashing_detected_alert,
    slashing_toggled_alert,
)
from slashwatch.types import DetectedSlashing, RoundStatus, SlashAction

from conftest import payload, validator


def slashing(status, seconds_until_executable=None, vetoed=False):
    return DetectedSlashing(
        round=42,
        status=status,
        vote_count=70,
        is_executed=status == RoundStatus.EXECUTED,
        is_vetoed=vetoed,
        committees=((validator(1), validator(2)),),
        slash_actions=(SlashAction(validator(1), 10 ** 18), SlashAction(validator(2), 5 * 10 ** 17)),
        payload_address=payload(42),
        seconds_until_executable=seconds_until_executable,
    )


class TestAlertText:

    def test_early_warning(self):
        alert = slashing_detected_alert("testnet", slashing(RoundStatus.QUORUM_REACHED, 3 * 86400 + 1))

        assert alert.kind == SLASHING_DETECTED
        assert alert.title == "Early warning: slashing quorum reached"
        assert "Round 42: 2 validators will be slashed" in alert.body
        assert "Executable in ~4 days" in alert.body
        assert "Total: 1.5000 ETH" in alert.body
        assert not alert.urgent
        assert alert.tag == "slashing-detected-42"
        assert alert.data["payload_address"] == payload(42)

    def test_veto_window_is_urgent(self):
        alert = slashing_detected_alert("testnet", slashing(RoundStatus.IN_VETO_WINDOW))
        assert alert.title == "Slashing now executable"
        assert alert.urgent

    def test_executable_is_urgent(self):
        alert = slashing_detected_alert("testnet", slashing(RoundStatus.EXECUTABLE, vetoed=True))
        assert alert.title == "Slashing ready to execute"
        assert alert.urgent
        assert "Payload already vetoed" in alert.body

    def test_toggle(self):
        disabled = slashing_toggled_alert("testnet", False)
        enabled = slashing_toggled_alert("testnet", True)

        assert disabled.urgent
        assert enabled.kind == SLASHING_ENABLED
        assert enabled.tag == SLASHING_ENABLED

    def test_executed(self):
        alert = round_executed_alert("testnet", slashing(RoundStatus.EXECUTED))
        assert alert.kind == ROUND_EXECUTED
        assert "2 validators slashed" in alert.body

    def test_format_eth(self):
        assert format_eth(10 ** 18) == "1.0000"
        assert format_eth(123456789 * 10 ** 10) == "1.2346"


class TestNotifiers:

    @pytest.mark.asyncio
    async def test_webhook_posts_json(self):
        received = []

        def handler(request):
            received.append(json.loads(request.content))
            return httpx.Response(204)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        notifier = WebhookNotifier("https://hooks.invalid/x", client=client)

        await notifier.notify(slashing_toggled_alert("testnet", False))

        assert received[0]["kind"] == "slashing-disabled"
        assert received[0]["network"] == "testnet"
        assert received[0]["urgent"] is True
        await client.aclose()

    @pytest.mark.asyncio
    async def test_webhook_failure_is_logged_not_raised(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(500)))
        notifier = WebhookNotifier("https://hooks.invalid/x", client=client)

        await notifier.notify(slashing_toggled_alert("testnet", True))

        await notifier.aclose()
        assert not client.is_closed
        await client.aclose()

    @pytest.mark.asyncio
    async def test_logging_notifier(self, caplog):
        await LoggingNotifier().notify(slashing_detected_alert("testnet", slashing(RoundStatus.EXECUTABLE)))
        assert "Slashing ready to execute" in caplog.text

    def test_build_notifier(self):
        assert isinstance(build_notifier(NotificationsConfig()), LoggingNotifier)
        multi = build_notifier(NotificationsConfig(webhook_url="https://hooks.invalid/x"))
        assert isinstance(multi, MultiNotifier)
        assert isinstance(multi.notifiers[1], WebhookNotifier)
