"""Discord webhook notifier for trade events.

Post one embed per open or close: blue for opens, green for winning closes
and red for losing ones. Delivery failures are logged and dropped so that a
flaky webhook can never affect trading.
"""

import logging
from datetime import UTC, datetime
from typing import Any

import httpx

from updown_trader.apps.paper_engine.models import EventType, TradeEvent

logger = logging.getLogger(__name__)

COLOR_OPEN = 0x3498DB
COLOR_WIN = 0x2ECC71
COLOR_LOSS = 0xE74C3C

_DEFAULT_USERNAME = "PolyBot Trader"
_FOOTER_TEXT = "PolyBot Automated Trading"
_DEFAULT_TIMEOUT = 10.0


def _money(value: Any) -> str:
    return f"${value:.2f}"


def _signed_money(value: Any) -> str:
    sign = "+" if value >= 0 else "-"
    return f"{sign}${abs(value):.2f}"


def build_embed(event: TradeEvent) -> dict[str, Any]:
    """Build the Discord embed describing ``event``.

    Args:
        event: Open or close to describe.

    Returns:
        A Discord embed object (title, colour, timestamp, fields, footer).

    """
    side = event.side.value
    if event.type is EventType.OPEN:
        title, color = f"📢 TRADE OPENED: {side}", COLOR_OPEN
    elif event.is_win:
        title, color = f"✅ TRADE WON: {side}", COLOR_WIN
    else:
        title, color = f"❌ TRADE LOST: {side}", COLOR_LOSS

    fields: list[dict[str, Any]] = [
        {"name": "Market", "value": event.market_id or "Unknown", "inline": False},
        {"name": "Side", "value": side, "inline": True},
        {"name": "Price", "value": f"${event.price:.3f}", "inline": True},
        {"name": "Shares", "value": f"{event.shares:.2f}", "inline": True},
    ]
    if event.type is EventType.OPEN:
        fields.append({"name": "Cost", "value": _money(event.amount), "inline": True})
    else:
        pnl = "N/A" if event.pnl is None else _signed_money(event.pnl)
        fields.append({"name": "PnL", "value": pnl, "inline": True})
        fields.append({"name": "Reason", "value": event.reason or "N/A", "inline": True})
    fields.append({"name": "Fee", "value": _money(event.fee), "inline": True})
    fields.append(
        {"name": "💰 Account Balance", "value": _money(event.balance_after), "inline": False}
    )

    return {
        "title": title,
        "color": color,
        "timestamp": datetime.fromtimestamp(event.timestamp, tz=UTC).isoformat(),
        "fields": fields,
        "footer": {"text": _FOOTER_TEXT},
    }


class DiscordNotifier:
    """Trade-event sink that posts embeds to a Discord webhook.

    With an empty webhook URL the notifier is disabled and ``publish`` is a
    no-op, so it can always be wired in.

    Args:
        webhook_url: Discord webhook URL, or an empty string to disable.
        timeout: Request timeout in seconds.
        username: Display name of the webhook bot.

    """

    def __init__(
        self,
        webhook_url: str,
        *,
        timeout: float = _DEFAULT_TIMEOUT,
        username: str = _DEFAULT_USERNAME,
    ) -> None:
        """Initialize the notifier and its HTTP client."""
        self._webhook_url = webhook_url.strip()
        self._username = username
        self._http_client = httpx.AsyncClient(timeout=timeout)

    @property
    def enabled(self) -> bool:
        """Return whether a webhook URL is configured."""
        return bool(self._webhook_url)

    async def publish(self, event: TradeEvent) -> None:
        """Post ``event`` to the webhook, logging and dropping any HTTP failure."""
        if not self.enabled:
            return
        payload = {"username": self._username, "embeds": [build_embed(event)]}
        try:
            response = await self._http_client.post(self._webhook_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning(
                "Discord notification failed for %s %s: %s",
                event.type.value,
                event.market_id[:20],
                exc,
            )
            return
        logger.debug("Discord notification sent for %s %s", event.type.value, event.side.value)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._http_client.aclose()

    async def __aenter__(self) -> "DiscordNotifier":
        """Enter async context manager."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context manager."""
        await self.close()
