"""Tests for priceaction.cli.report — console output."""

from conftest import build_ltf
from priceaction.backtest.engine import BacktestEngine
from priceaction.backtest.models import PredictionResult
from priceaction.backtest.settings import BacktestSettings
from priceaction.cli.report import format_prediction, format_report


def _fixed_bracket_settings():
    return BacktestSettings(
        follow_htf_trend=False, use_choch=False, use_smc=False,
        use_atr_position_sizing=False, leverage=1.0,
    )


def test_backtest_report(htf_candles, ltf_candles, capsys):
    result = BacktestEngine(_fixed_bracket_settings()).run(ltf_candles, htf_candles)
    output = format_report(result)

    assert "Backtest Report" in output
    assert "Trades:          1 (0 W / 1 L)" in output
    # gross profit 0 over a positive gross loss
    assert "Profit Factor:   0.00" in output
    assert "Avg Win / Loss:  N/A / $" in output
    assert capsys.readouterr().out.strip() == output.strip()


def test_report_without_losses(htf_candles):
    ltf = build_ltf(htf_candles, tail=[(99.7, 104.0, 99.6, 103.9)] + [(103.9, 104, 103.8, 103.9)] * 3)
    result = BacktestEngine(_fixed_bracket_settings()).run(ltf, htf_candles)
    output = format_report(result)

    assert result.kpis.profit_factor is None
    assert "Trades:          1 (1 W / 0 L)" in output
    assert "Profit Factor:   N/A" in output
    assert output.split("Avg Win / Loss:")[1].splitlines()[0].endswith("/ N/A")


def test_skip_prediction():
    output = format_prediction(PredictionResult(status="SKIP_SIGNAL", reason="Not enough LTF data."))
    assert "No trade:        Not enough LTF data." in output


def test_trade_plan():
    result = PredictionResult(
        status="PLAN_TRADE",
        reason="Range HTF, support zone 99.3-99.9: bullish pinbar",
        direction="LONG",
        entry_price=99.7,
        stop_loss=97.97,
        take_profit=103.16,
        risk_reward=2.0,
        model="bullish pinbar",
    )
    output = format_prediction(result)
    assert "Direction:       LONG" in output
    assert "Risk/Reward:     1:2" in output
