"""Tests for priceaction.strategy.trendlines — fitting, channels and de-duplication."""

import pytest

from priceaction.strategy.models import Candle, SwingPoint
from priceaction.strategy.trendlines import TrendlineSettings, fit_trendlines, is_same_line

_HOUR = 3600


def _make_candle(time, o, h, l, c, vol=1000.0):
    return Candle(time=time, open=o, high=h, low=l, close=c, volume=vol)


def _rising_candles(n=40):
    """Closes 100 + 0.1·i with a 1.0 range per bar."""
    candles = []
    for i in range(n):
        c = 100 + 0.1 * i
        candles.append(_make_candle(i * _HOUR, c, c + 0.5, c - 0.5, c))
    return candles


def _low(index, price):
    return SwingPoint(index=index, time=index * _HOUR, price=price, swing_type="low")


def _high(index, price):
    return SwingPoint(index=index, time=index * _HOUR, price=price, swing_type="high")


# Three collinear lows on 99.5 + 0.1·i plus one that breaks the line
_SWINGS = [_low(5, 100.0), _low(15, 101.0), _low(25, 102.0), _low(35, 95.0)]


class TestFitTrendlines:
    def test_fits_single_up_line(self):
        lines = fit_trendlines(_rising_candles(), _SWINGS)
        assert len(lines) == 1
        line = lines[0]
        assert line.line_type == "UP"
        assert line.slope > 0
        assert [t.index for t in line.touches] == [5, 15, 25]
        # 20 bars of one hour: no day/week bonus
        assert line.strength == 2
        assert line.price_at(30 * _HOUR) == pytest.approx(102.5)

    def test_channel_runs_through_highest_deviation(self):
        line = fit_trendlines(_rising_candles(), _SWINGS)[0]
        channel = line.channel_line
        assert channel is not None
        assert channel.slope == pytest.approx(line.slope)
        # every high sits 1.0 above the line
        assert channel.price_at(10 * _HOUR) - line.price_at(10 * _HOUR) == pytest.approx(1.0)

    def test_two_touches_are_not_enough(self):
        assert fit_trendlines(_rising_candles(), _SWINGS[:2] + [_SWINGS[3]]) == []

    def test_max_length_discards_long_lines(self):
        settings = TrendlineSettings(max_length=15)
        assert fit_trendlines(_rising_candles(), _SWINGS, settings=settings) == []

    def test_down_line_from_highs(self):
        candles = [
            _make_candle(i * _HOUR, 110 - 0.1 * i, 110.5 - 0.1 * i, 109.5 - 0.1 * i, 110 - 0.1 * i)
            for i in range(40)
        ]
        swings = [_high(5, 110.0), _high(15, 109.0), _high(25, 108.0)]
        lines = fit_trendlines(candles, swings, timeframe="1h")
        assert len(lines) == 1
        assert lines[0].line_type == "DOWN"
        assert lines[0].slope < 0
        assert lines[0].timeframe == "1h"

    def test_strength_bonus_for_long_spans(self):
        """Daily bars spanning more than a week earn both bonuses."""
        day = 86_400
        candles = [
            _make_candle(i * day, 100 + 0.1 * i, 100.5 + 0.1 * i, 99.5 + 0.1 * i, 100 + 0.1 * i)
            for i in range(40)
        ]
        swings = [
            SwingPoint(i, i * day, 99.5 + 0.1 * i + 0.5, "low") for i in (5, 15, 25)
        ]
        line = fit_trendlines(candles, swings)[0]
        assert line.strength == 4


class TestDedupe:
    def test_identical_lines_are_same(self):
        line = fit_trendlines(_rising_candles(), _SWINGS)[0]
        assert is_same_line(line, line, TrendlineSettings())

    def test_every_line_has_three_touches(self):
        swings = [_low(i, 99.5 + 0.1 * i) for i in range(2, 38, 4)]
        lines = fit_trendlines(_rising_candles(), swings)
        assert lines
        settings = TrendlineSettings()
        for line in lines:
            assert len(line.touches) >= 3
            assert line.end_index - line.start_index <= settings.max_length
        assert len([ln for ln in lines if ln.line_type == "UP"]) <= settings.max_lines_per_direction
