"""Tests for timestamp helpers."""

from datetime import date

import pytest

from updown_trader.core.timestamps import format_timestamp, parse_timestamp, utc_date

_MARKET_OPEN = 1704067200
_NOON = _MARKET_OPEN + 12 * 3600
_ONE_SECOND_BEFORE_MIDNIGHT = _MARKET_OPEN - 1


class TestParseTimestamp:
    """Tests for parse_timestamp on recorded tick times."""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("2024-01-01", _MARKET_OPEN),
            ("2024-01-01T12:00:00", _NOON),
            ("2024-01-01T00:00:05.250Z", _MARKET_OPEN + 5),
            ("1704067200", _MARKET_OPEN),
        ],
    )
    def test_accepted_formats(self, text: str, expected: int) -> None:
        """Dates, datetimes with optional Z and fraction, and epoch seconds."""
        assert parse_timestamp(text) == expected

    def test_garbage_is_rejected(self) -> None:
        """A value that is neither ISO 8601 nor an integer raises."""
        with pytest.raises(ValueError, match="Cannot parse timestamp"):
            parse_timestamp("yesterday")


class TestUtcDate:
    """Tests for utc_date."""

    def test_midnight_boundary(self) -> None:
        """Consecutive seconds across UTC midnight fall on different dates."""
        assert utc_date(_ONE_SECOND_BEFORE_MIDNIGHT) == date(2023, 12, 31)
        assert utc_date(_MARKET_OPEN) == date(2024, 1, 1)


class TestFormatTimestamp:
    """Tests for format_timestamp."""

    def test_formats_utc(self) -> None:
        """Render a timestamp as a UTC date and time."""
        assert format_timestamp(_MARKET_OPEN + 61) == "2024-01-01 00:01:01"

    def test_none_renders_dash(self) -> None:
        """Render an unset timestamp as a dash."""
        assert format_timestamp(None) == "-"
