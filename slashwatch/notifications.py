"""
Slashwatch Notifications

Alerts raised by the monitor and the sinks that deliver them. Alerts are
always written to the log; a webhook sink can be added on top.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

import httpx

from .constants import RPC_TIMEOUT, SECONDS_PER_DAY, WEI_PER_ETHER
from .logger import get_logger
from .types import DetectedSlashing, RoundStatus

logger = get_logger(__name__)


# Alert kinds
SLASHING_DETECTED = "slashing-detected"
SLASHING_DISABLED = "slashing-disabled"
SLASHING_ENABLED = "slashing-enabled"
ROUND_EXECUTED = "round-executed"


@dataclass(frozen=True)
class Alert:
    """
    A notification for operators.

    Attributes:
        kind: One of the alert kind constants
        network: Network the alert belongs to
        title: Short headline
        body: Human-readable details
        urgent: Whether immediate action may be required
        round: Round the alert refers to, if any
        data: Machine-readable payload for webhook consumers
    """
    kind: str
    network: str
    title: str
    body: str
    urgent: bool = False
    round: Optional[int] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def tag(self) -> str:
        """Stable identifier; repeated alerts with the same tag are duplicates."""
        if self.round is None:
            return self.kind
        return f"{self.kind}-{self.round}"

    def to_dict(self) -> dict:
        return {
            'kind': self.kind,
            'network': self.network,
            'title': self.title,
            'body': self.body,
            'urgent': self.urgent,
            'round': self.round,
            'tag': self.tag,
            'data': self.data,
        }


def format_eth(amount_wei: int) -> str:
    return f"{Decimal(amount_wei) / Decimal(WEI_PER_ETHER):.4f}"


# ---------------------------------------------------------------------------
# Alert builders
# ---------------------------------------------------------------------------

def slashing_detected_alert(network: str, slashing: DetectedSlashing) -> Alert:
    count = slashing.affected_validator_count or 0
    body = f"Round {slashing.round}: {count} validator{'' if count == 1 else 's'} will be slashed"
    title = "Slashing round detected"
    urgent = False

    if slashing.status == RoundStatus.QUORUM_REACHED:
        title = "Early warning: slashing quorum reached"
        days = "?"
        if slashing.seconds_until_executable:
            days = str(math.ceil(slashing.seconds_until_executable / SECONDS_PER_DAY))
        body += f"\nExecutable in ~{days} days"
        body += "\nA veto can be submitted now"
    elif slashing.status == RoundStatus.IN_VETO_WINDOW:
        title = "Slashing now executable"
        body += "\nURGENT: slashing can be executed at any time"
        body += "\nReview and veto immediately if needed"
        urgent = True
    elif slashing.status == RoundStatus.EXECUTABLE:
        title = "Slashing ready to execute"
        body += "\nAction required: this slashing can now be executed"
        urgent = True

    if slashing.total_slash_amount:
        body += f"\nTotal: {format_eth(slashing.total_slash_amount)} ETH"
    if slashing.is_vetoed:
        body += "\nPayload already vetoed"

    return Alert(
        kind=SLASHING_DETECTED,
        network=network,
        title=title,
        body=body,
        urgent=urgent,
        round=slashing.round,
        data=slashing.to_dict(),
    )


def slashing_toggled_alert(network: str, enabled: bool) -> Alert:
    if enabled:
        return Alert(
            kind=SLASHING_ENABLED,
            network=network,
            title="Slashing enabled",
            body="Slashing has been re-enabled. Monitoring will resume.",
        )
    return Alert(
        kind=SLASHING_DISABLED,
        network=network,
        title="Slashing disabled",
        body="Slashing has been disabled by the vetoer. No slashings will be executed.",
        urgent=True,
    )


def round_executed_alert(network: str, slashing: DetectedSlashing) -> Alert:
    count = slashing.affected_validator_count or 0
    return Alert(
        kind=ROUND_EXECUTED,
        network=network,
        title="Slashing executed",
        body=f"Round {slashing.round} has been executed with {count} validators slashed",
        round=slashing.round,
        data=slashing.to_dict(),
    )


# ---------------------------------------------------------------------------
# Sinks
# ---------------------------------------------------------------------------

class Notifier(ABC):
    """Delivers alerts. Implementations must not raise on delivery failure."""

    @abstractmethod
    async def notify(self, alert: Alert) -> None:
        ...

    async def aclose(self) -> None:
        pass


class LoggingNotifier(Notifier):
    """Writes alerts to the log: urgent ones as warnings."""

    async def notify(self, alert: Alert) -> None:
        message = f"[{alert.network}] {alert.title}: " + alert.body.replace("\n", " | ")
        if alert.urgent:
            logger.warning(message)
        else:
            logger.info(message)


class WebhookNotifier(Notifier):
    """POSTs each alert as JSON to a webhook URL."""

    def __init__(self, url: str, timeout: float = RPC_TIMEOUT, client: Optional[httpx.AsyncClient] = None):
        self.url = url
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def notify(self, alert: Alert) -> None:
        try:
            response = await self.client.post(self.url, json=alert.to_dict())
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Webhook delivery of {alert.tag} to {self.url} failed: {e!r}")

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


class MultiNotifier(Notifier):
    """Fans an alert out to several sinks."""

    def __init__(self, notifiers: Sequence[Notifier]):
        self.notifiers: List[Notifier] = list(notifiers)

    async def notify(self, alert: Alert) -> None:
        for notifier in self.notifiers:
            await notifier.notify(alert)

    async def aclose(self) -> None:
        for notifier in self.notifiers:
            await notifier.aclose()


def build_notifier(config) -> Notifier:
    """Create the notifier for a NotificationsConfig."""
    notifiers: List[Notifier] = [LoggingNotifier()]
    if config.webhook_url:
        notifiers.append(WebhookNotifier(config.webhook_url, timeout=config.webhook_timeout))
    if len(notifiers) == 1:
        return notifiers[0]
    return MultiNotifier(notifiers)
