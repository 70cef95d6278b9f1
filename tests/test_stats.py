"""Tests for priceaction.backtest.stats — KPI arithmetic."""

import math

import pytest

from priceaction.backtest.stats import calculate_kpis, max_drawdown_from_pnls


class TestCalculateKpis:
    def test_mixed_trades(self):
        """Three +100 winners and two −50 losers."""
        kpis = calculate_kpis([100.0, -50.0, 100.0, -50.0, 100.0], 1_000.0)
        assert kpis.total_trades == 5
        assert kpis.winning_trades == 3
        assert kpis.losing_trades == 2
        assert kpis.win_rate == pytest.approx(0.6)
        # 300 / 100
        assert kpis.profit_factor == pytest.approx(3.0)
        assert kpis.net_profit == pytest.approx(200.0)
        assert kpis.net_profit_pct == pytest.approx(20.0)
        assert kpis.avg_trade_pnl == pytest.approx(40.0)
        assert kpis.avg_win == pytest.approx(100.0)
        assert kpis.avg_loss == pytest.approx(50.0)
        # 0.6 * 100 − 0.4 * 50
        assert kpis.expectancy == pytest.approx(40.0)

    def test_no_trades(self):
        kpis = calculate_kpis([], 1_000.0)
        assert kpis.total_trades == 0
        assert kpis.win_rate == 0.0
        assert kpis.profit_factor is None
        assert kpis.avg_win is None
        assert kpis.avg_loss is None
        assert kpis.expectancy == 0.0
        assert kpis.sharpe_ratio == 0.0

    def test_only_winners_has_no_profit_factor(self):
        kpis = calculate_kpis([10.0, 20.0], 1_000.0)
        assert kpis.profit_factor is None
        assert kpis.avg_loss is None
        assert kpis.expectancy == pytest.approx(15.0)

    def test_breakeven_counts_as_loss(self):
        kpis = calculate_kpis([0.0, 10.0], 1_000.0)
        assert kpis.losing_trades == 1
        assert kpis.win_rate == pytest.approx(0.5)

    def test_drawdown_passed_through(self):
        kpis = calculate_kpis([-5.0], 1_000.0, max_drawdown=12.5, max_drawdown_pct=1.25)
        assert kpis.max_drawdown == 12.5
        assert kpis.max_drawdown_pct == 1.25


class TestSharpe:
    def test_annualised_from_sample_std(self):
        kpis = calculate_kpis([1.0, 3.0], 1_000.0)
        # mean 2, sample std sqrt(2)
        assert kpis.sharpe_ratio == pytest.approx(round(2 / math.sqrt(2) * math.sqrt(252), 4))

    def test_zero_variance(self):
        assert calculate_kpis([5.0, 5.0, 5.0], 1_000.0).sharpe_ratio == 0.0


class TestClosedTradeDrawdown:
    def test_peak_to_trough(self):
        assert max_drawdown_from_pnls([50.0, -20.0, -40.0, 100.0, -10.0]) == pytest.approx(60.0)

    def test_losses_from_start(self):
        assert max_drawdown_from_pnls([-10.0, -5.0]) == pytest.approx(15.0)

    def test_empty(self):
        assert max_drawdown_from_pnls([]) == 0.0
