"""Tests for the Discord webhook notifier."""

from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from updown_trader.apps.notifications.discord import (
    COLOR_LOSS,
    COLOR_OPEN,
    COLOR_WIN,
    DiscordNotifier,
    build_embed,
)
from updown_trader.apps.paper_engine.models import EventType, TradeEvent
from updown_trader.core.models import ZERO, Side

_WEBHOOK = "https://discord.test/api/webhooks/1/abc"
_MARKET = "btc-updown-15m-1704067200"
_T0 = 1704067200
_HTTP_OK = 204
_HTTP_SERVER_ERROR = 500


def _open_event() -> TradeEvent:
    return TradeEvent(
        type=EventType.OPEN,
        side=Side.UP,
        price=Decimal("0.5"),
        shares=Decimal(20),
        amount=Decimal(10),
        fee=Decimal("0.2"),
        pnl=None,
        reason="ENTRY",
        balance_after=Decimal("89.8"),
        market_id=_MARKET,
        timestamp=_T0,
    )


def _close_event(pnl: str) -> TradeEvent:
    return TradeEvent(
        type=EventType.CLOSE,
        side=Side.DOWN,
        price=Decimal("0.3"),
        shares=Decimal(20),
        amount=Decimal("5.88"),
        fee=Decimal("0.12"),
        pnl=Decimal(pnl),
        reason="STOP_LOSS",
        balance_after=Decimal("95.68"),
        market_id=_MARKET,
        timestamp=_T0 + 60,
    )


def _fields(embed: dict[str, Any]) -> dict[str, str]:
    return {f["name"]: f["value"] for f in embed["fields"]}


class TestBuildEmbed:
    """Tests for build_embed."""

    def test_open_embed(self) -> None:
        """Opens are blue and show the cost."""
        embed = build_embed(_open_event())
        assert embed["title"] == "📢 TRADE OPENED: UP"
        assert embed["color"] == COLOR_OPEN
        assert embed["timestamp"] == "2024-01-01T00:00:00+00:00"
        fields = _fields(embed)
        assert fields["Market"] == _MARKET
        assert fields["Price"] == "$0.500"
        assert fields["Cost"] == "$10.00"
        assert fields["Fee"] == "$0.20"
        assert fields["💰 Account Balance"] == "$89.80"
        assert "PnL" not in fields

    def test_losing_close_embed(self) -> None:
        """Losing closes are red with a signed PnL and the reason."""
        embed = build_embed(_close_event("-4.32"))
        assert embed["title"] == "❌ TRADE LOST: DOWN"
        assert embed["color"] == COLOR_LOSS
        fields = _fields(embed)
        assert fields["PnL"] == "-$4.32"
        assert fields["Reason"] == "STOP_LOSS"

    def test_winning_close_embed(self) -> None:
        """Winning closes are green."""
        embed = build_embed(_close_event("9.8"))
        assert embed["title"] == "✅ TRADE WON: DOWN"
        assert embed["color"] == COLOR_WIN
        assert _fields(embed)["PnL"] == "+$9.80"

    def test_break_even_close_is_a_loss(self) -> None:
        """A zero PnL close is reported as lost."""
        embed = build_embed(_close_event(str(ZERO)))
        assert embed["color"] == COLOR_LOSS


class TestDiscordNotifier:
    """Tests for DiscordNotifier."""

    @pytest.mark.asyncio
    async def test_disabled_without_url(self) -> None:
        """An empty webhook URL disables posting."""
        async with DiscordNotifier("  ") as notifier:
            assert not notifier.enabled
            with patch.object(notifier._http_client, "post", new=AsyncMock()) as mock_post:
                await notifier.publish(_open_event())
            mock_post.assert_not_called()

    @pytest.mark.asyncio
    async def test_posts_embed(self) -> None:
        """Publishing posts the username and a single embed."""
        response = httpx.Response(_HTTP_OK, request=httpx.Request("POST", _WEBHOOK))
        async with DiscordNotifier(_WEBHOOK, username="Paper Bot") as notifier:
            with patch.object(
                notifier._http_client, "post", new=AsyncMock(return_value=response)
            ) as mock_post:
                await notifier.publish(_open_event())

        mock_post.assert_awaited_once()
        assert mock_post.call_args.args == (_WEBHOOK,)
        payload = mock_post.call_args.kwargs["json"]
        assert payload["username"] == "Paper Bot"
        assert payload["embeds"][0]["title"] == "📢 TRADE OPENED: UP"

    @pytest.mark.asyncio
    async def test_http_error_status_is_swallowed(self) -> None:
        """A non-2xx response is logged, not raised."""
        response = httpx.Response(_HTTP_SERVER_ERROR, request=httpx.Request("POST", _WEBHOOK))
        async with DiscordNotifier(_WEBHOOK) as notifier:
            with patch.object(notifier._http_client, "post", new=AsyncMock(return_value=response)):
                await notifier.publish(_close_event("-1"))

    @pytest.mark.asyncio
    async def test_transport_error_is_swallowed(self) -> None:
        """A connection failure is logged, not raised."""
        async with DiscordNotifier(_WEBHOOK) as notifier:
            with patch.object(
                notifier._http_client,
                "post",
                new=AsyncMock(side_effect=httpx.ConnectError("refused")),
            ):
                await notifier.publish(_open_event())

    @pytest.mark.asyncio
    async def test_close_releases_client(self) -> None:
        """Closing the notifier closes its HTTP client."""
        notifier = DiscordNotifier(_WEBHOOK)
        with patch.object(notifier._http_client, "aclose", new=AsyncMock()) as mock_close:
            await notifier.close()
        mock_close.assert_awaited_once()
