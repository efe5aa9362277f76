"""Tests for Go duration string handling."""

from datetime import timedelta

import pytest

from service_ca_controller.durations import format_duration, parse_duration, same_duration


class TestParseDuration:
    """Parsing cert-manager duration strings."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("2160h", timedelta(hours=2160)),
            ("2160h0m0s", timedelta(hours=2160)),
            ("1h30m", timedelta(minutes=90)),
            ("90s", timedelta(seconds=90)),
            ("1.5h", timedelta(minutes=90)),
            ("500ms", timedelta(milliseconds=500)),
            ("0", timedelta(0)),
            ("+1h", timedelta(hours=1)),
            ("-1h30m", -timedelta(minutes=90)),
        ],
    )
    def test_valid(self, text, expected):
        assert parse_duration(text) == expected

    @pytest.mark.parametrize("text", ["", "+", "-", "h", "10", "10d", "1h 30m", "abc", "+-1h"])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            parse_duration(text)


class TestFormatDuration:
    """Rendering in the normalised form the API server stores."""

    def test_hours(self):
        assert format_duration(timedelta(hours=2160)) == "2160h0m0s"
        assert format_duration(timedelta(hours=360)) == "360h0m0s"

    def test_minutes_and_seconds(self):
        assert format_duration(timedelta(minutes=5, seconds=3)) == "5m3s"
        assert format_duration(timedelta(seconds=42)) == "42s"

    def test_zero(self):
        assert format_duration(timedelta(0)) == "0s"


class TestSameDuration:
    """Value comparison of stored and computed durations."""

    def test_equal_values_in_different_spelling(self):
        assert same_duration("2160h", "2160h0m0s")
        assert same_duration("90m", "1h30m0s")

    def test_different_values(self):
        assert not same_duration("2160h", "2161h")

    def test_missing_value(self):
        assert not same_duration(None, "2160h0m0s")
        assert same_duration(None, None)

    def test_unparsable_falls_back_to_text(self):
        assert same_duration("junk", "junk")
        assert not same_duration("junk", "2160h")
