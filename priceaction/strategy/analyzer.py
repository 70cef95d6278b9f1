"""Multi-timeframe analyzer — the no-lookahead bar-by-bar loop.

At each bar *i* the analyzer:
    1. confirms swings whose right-hand legs complete at *i*,
    2. refits trendlines from recent swings when a new one is confirmed,
    3. derives the short- and long-term trend from EMAs up to *i*,
    4. runs the pattern registry on *i* with that context.

``steps()`` exposes every intermediate snapshot so callers can check that
nothing after bar *i* influenced it.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Iterator, Optional

from priceaction.strategy.indicators import calculate_atr, calculate_ema
from priceaction.strategy.models import Candle, DetectedPattern, SwingPoint, TrendLine
from priceaction.strategy.patterns import PatternContext, detect_at
from priceaction.strategy.swings import confirm_swings_at
from priceaction.strategy.trend import (
    TimeframeSummary,
    TrendState,
    long_term_trend,
    short_term_trend,
    summarize_timeframe,
)
from priceaction.strategy.trendlines import TrendlineSettings, fit_trendlines

logger = logging.getLogger("priceaction.analyzer")


@dataclass(frozen=True)
class AnalyzerSettings:
    pivot_legs: int = 5
    trendline_lookback: int = 300
    ema_period: int = 20
    long_ema_period: int = 200
    trendline: TrendlineSettings = field(default_factory=TrendlineSettings)


@dataclass(frozen=True)
class AnalysisSnapshot:
    """State known at the close of bar ``index``."""

    index: int
    swings: tuple[SwingPoint, ...]
    trendlines: tuple[TrendLine, ...]
    trend: TrendState
    pattern: Optional[DetectedPattern]


@dataclass(frozen=True)
class AnalysisResult:
    """Final output of one timeframe's replay."""

    timeframe: Optional[str]
    patterns: tuple[DetectedPattern, ...]
    swings: tuple[SwingPoint, ...]
    trendlines: tuple[TrendLine, ...]
    summary: Optional[TimeframeSummary]


class MultiTimeframeAnalyzer:
    """Replays candles left to right and collects confirmed structure.

    Args:
        settings: Pivot, lookback and trendline tolerances.
    """

    def __init__(self, settings: Optional[AnalyzerSettings] = None) -> None:
        self._settings = settings or AnalyzerSettings()

    @property
    def settings(self) -> AnalyzerSettings:
        return self._settings

    # ── Public API ───────────────────────────────────────────────────────

    def steps(
        self, candles: list[Candle], timeframe: Optional[str] = None,
    ) -> Iterator[AnalysisSnapshot]:
        """Yield one snapshot per bar.

        EMA and ATR recursions only look backwards, so computing them once
        over the full series gives the same values at bar *i* as computing
        them over ``candles[: i + 1]``.
        """
        s = self._settings
        ema20 = calculate_ema(candles, s.ema_period)
        ema_long = calculate_ema(candles, s.long_ema_period)
        atr = calculate_atr(candles, s.trendline.atr_period)

        swings: list[SwingPoint] = []
        trendlines: tuple[TrendLine, ...] = ()

        for i in range(len(candles)):
            new = confirm_swings_at(candles, i, s.pivot_legs)
            if new:
                swings.extend(new)
                recent = [sw for sw in swings if sw.index >= i - s.trendline_lookback]
                trendlines = tuple(fit_trendlines(
                    candles[: i + 1],
                    recent,
                    settings=s.trendline,
                    atr=atr[: i + 1],
                    timeframe=timeframe,
                ))

            trend = TrendState(
                short_term=short_term_trend(ema20, i),
                long_term=long_term_trend(ema_long, i),
            )
            context = PatternContext(
                ema20=ema20,
                atr=atr,
                swings=tuple(swings),
                trendlines=trendlines,
                short_term_trend=trend.short_term,
                long_term_trend=trend.long_term,
            )
            yield AnalysisSnapshot(
                index=i,
                swings=tuple(swings),
                trendlines=trendlines,
                trend=trend,
                pattern=detect_at(candles, i, context),
            )

    def analyze(
        self, candles: list[Candle], timeframe: Optional[str] = None,
    ) -> AnalysisResult:
        """Run the full replay and keep the patterns plus the final structure."""
        patterns: list[DetectedPattern] = []
        last: Optional[AnalysisSnapshot] = None
        for snapshot in self.steps(candles, timeframe):
            if snapshot.pattern is not None:
                patterns.append(snapshot.pattern)
            last = snapshot

        logger.debug(
            "Analyzed %d candle(s)%s: %d pattern(s)",
            len(candles), f" [{timeframe}]" if timeframe else "", len(patterns),
        )
        return AnalysisResult(
            timeframe=timeframe,
            patterns=tuple(patterns),
            swings=last.swings if last else (),
            trendlines=last.trendlines if last else (),
            summary=summarize_timeframe(timeframe or "", candles) if candles else None,
        )

    async def analyze_timeframes(
        self, series: dict[str, list[Candle]],
    ) -> dict[str, AnalysisResult]:
        """Analyze independent timeframes concurrently in worker threads.

        Results are merged only once every timeframe has finished.
        """
        names = list(series)
        results = await asyncio.gather(
            *(asyncio.to_thread(self.analyze, series[name], name) for name in names)
        )
        return dict(zip(names, results))
