"""Tests for priceaction.strategy.analyzer — the no-lookahead replay."""

import math

import pytest

from conftest import make_candle
from priceaction.strategy.analyzer import AnalyzerSettings, MultiTimeframeAnalyzer
from priceaction.strategy.trendlines import TrendlineSettings


def _wave_series(n=150):
    """Two overlaid sine waves on a slow drift with varying volume."""
    candles = []
    for i in range(n):
        c = 100 + 0.05 * i + 4 * math.sin(i / 4) + 1.5 * math.sin(i / 1.7)
        o = c - 0.6 * math.cos(i / 2)
        candles.append(make_candle(
            i * 3600, o, max(o, c) + 0.4, min(o, c) - 0.4, c, vol=1000 + 300 * (i % 7),
        ))
    return candles


class TestNoLookahead:
    def test_truncation_reproduces_every_snapshot(self):
        """State at bar i is identical whether or not later bars exist."""
        candles = _wave_series()
        analyzer = MultiTimeframeAnalyzer()
        full = list(analyzer.steps(candles))
        for i in range(0, len(candles), 9):
            truncated = list(analyzer.steps(candles[: i + 1]))
            assert truncated[-1] == full[i]

    def test_swings_confirmed_with_lag(self):
        candles = _wave_series()
        settings = AnalyzerSettings(pivot_legs=5)
        for snapshot in MultiTimeframeAnalyzer(settings).steps(candles):
            assert all(s.index <= snapshot.index - 5 for s in snapshot.swings)

    def test_trendlines_only_use_known_swings(self):
        candles = _wave_series()
        for snapshot in MultiTimeframeAnalyzer().steps(candles):
            known = set(snapshot.swings)
            for line in snapshot.trendlines:
                assert set(line.touches) <= known


class TestAnalyze:
    def test_at_most_one_pattern_per_bar(self):
        result = MultiTimeframeAnalyzer().analyze(_wave_series(), "1h")
        indexes = [p.index for p in result.patterns]
        assert len(indexes) == len(set(indexes))
        assert result.timeframe == "1h"
        assert result.summary.timeframe == "1h"

    def test_trendline_validity(self):
        settings = AnalyzerSettings(trendline=TrendlineSettings(max_length=60))
        result = MultiTimeframeAnalyzer(settings).analyze(_wave_series())
        for line in result.trendlines:
            assert len(line.touches) >= 3
            assert line.end_index - line.start_index <= 60
            assert (line.slope > 0) == (line.line_type == "UP")

    def test_empty_series(self):
        result = MultiTimeframeAnalyzer().analyze([])
        assert result.patterns == ()
        assert result.summary is None

    @pytest.mark.asyncio
    async def test_analyze_timeframes_concurrently(self):
        candles = _wave_series()
        analyzer = MultiTimeframeAnalyzer()
        results = await analyzer.analyze_timeframes({"1h": candles, "4h": candles[::4]})
        assert set(results) == {"1h", "4h"}
        assert results["1h"] == analyzer.analyze(candles, "1h")
        assert results["4h"].timeframe == "4h"
