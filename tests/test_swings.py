"""Tests for priceaction.strategy.swings — pivot-leg swing detection."""

import pytest

from priceaction.strategy.models import Candle
from priceaction.strategy.swings import confirm_swings_at, find_swing_points, latest_swing


def _make_candle(time, o, h, l, c, vol=1000.0):
    return Candle(time=time, open=o, high=h, low=l, close=c, volume=vol)


def _series(prices):
    return [_make_candle(i * 60, p, p + 0.5, p - 0.5, p) for i, p in enumerate(prices)]


# Peak at index 3, trough at index 8
_PRICES = [10, 11, 12, 13, 12, 11, 10, 9, 8, 9, 10, 11, 12]


class TestFindSwingPoints:
    def test_detects_high_and_low(self):
        swings = find_swing_points(_series(_PRICES), pivot_legs=2)
        assert [(s.index, s.swing_type) for s in swings] == [(3, "high"), (8, "low")]
        assert swings[0].price == pytest.approx(13.5)
        assert swings[1].price == pytest.approx(7.5)

    def test_equal_highs_are_not_swings(self):
        """The high must strictly exceed every neighbour."""
        swings = find_swing_points(_series([1, 2, 3, 3, 2, 1]), pivot_legs=2)
        assert swings == []

    def test_edges_are_never_swings(self):
        swings = find_swing_points(_series([20, 10, 11, 12, 13]), pivot_legs=2)
        assert swings == []

    def test_rejects_zero_legs(self):
        with pytest.raises(ValueError, match="pivot_legs"):
            find_swing_points(_series(_PRICES), pivot_legs=0)


class TestConfirmation:
    def test_confirmed_with_lag(self):
        """A swing at p is only reported at p + pivot_legs."""
        candles = _series(_PRICES)
        assert confirm_swings_at(candles, 4, pivot_legs=2) == []
        found = confirm_swings_at(candles, 5, pivot_legs=2)
        assert [(s.index, s.swing_type) for s in found] == [(3, "high")]

    def test_replay_matches_batch(self):
        candles = _series(_PRICES)
        replayed = []
        for i in range(len(candles)):
            replayed.extend(confirm_swings_at(candles[: i + 1], i, pivot_legs=2))
        assert replayed == find_swing_points(candles, pivot_legs=2)

    def test_latest_swing(self):
        swings = find_swing_points(_series(_PRICES), pivot_legs=2)
        assert latest_swing(swings, "high").index == 3
        assert latest_swing(swings, "low").index == 8
        assert latest_swing([], "low") is None
