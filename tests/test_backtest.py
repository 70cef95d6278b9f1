"""Tests for priceaction.backtest — engine lifecycle, invariants and helpers."""

import threading

import pytest

from conftest import LTF_INTERVAL, build_ltf, ltf_start, make_candle
from priceaction.backtest.engine import (
    BacktestCancelled,
    BacktestEngine,
    check_exit,
    close_position,
    open_position,
    run_backtest_async,
)
from priceaction.backtest.models import EntryEvent, ExitEvent, Position
from priceaction.backtest.settings import BacktestSettings
from priceaction.backtest.signals import EntrySignal, find_entry_signal
from priceaction.strategy.indicators import calculate_atr
from priceaction.strategy.sr_zones import identify_zones


# ── Helpers ──────────────────────────────────────────────────────────────


def _pinbar_settings(**overrides):
    """Pinbar-only, trend filter off, fixed 2 % / 4 % bracket at 1x."""
    params = dict(
        follow_htf_trend=False,
        use_choch=False,
        use_smc=False,
        use_atr_position_sizing=False,
        stop_loss_pct=2.0,
        take_profit_pct=4.0,
        leverage=1.0,
    )
    params.update(overrides)
    return BacktestSettings(**params)


def _long_position(entry=100.0, size=1.0, sl=98.0, tp=104.0, liq=90.0):
    return Position(
        direction="LONG",
        entry_price=entry,
        size_in_base=size,
        size_in_quote=size * entry,
        stop_loss=sl,
        take_profit=tp,
        liquidation_price=liq,
        entry_time=0,
    )


def _gap_retest_ltf(htf):
    """Quiet bars under support, a rally into it, a gap above, then a retest of the gap."""
    bars = [(98.6, 99.0, 98.4, 98.7)] * 20 + [
        (98.7, 99.8, 98.6, 99.7),  # closes above the prior highs, index 20
        (99.7, 100.3, 99.4, 100.2),  # leaves a gap over bar 19
        (100.2, 100.25, 99.2, 99.5),  # trades back into it, index 22
    ]
    bars += [(99.5, 99.6, 99.4, 99.5)] * 3
    start = ltf_start(htf)
    return [make_candle(start + k * LTF_INTERVAL, *bar) for k, bar in enumerate(bars)]


def _exits(result):
    return [e for e in result.trade_log if isinstance(e, ExitEvent)]


def _entries(result):
    return [e for e in result.trade_log if isinstance(e, EntryEvent)]


# ── Scenario ─────────────────────────────────────────────────────────────


class TestStopLossScenario:
    def test_drop_after_long_entry_hits_stop(self, htf_candles, ltf_candles):
        """LONG at the pinbar close, next bar drops 2 % → STOP_LOSS with a loss."""
        result = BacktestEngine(_pinbar_settings()).run(ltf_candles, htf_candles)

        entries, exits = _entries(result), _exits(result)
        assert len(entries) == 1
        assert len(exits) == 1
        entry, exit_ = entries[0], exits[0]
        assert entry.direction == "LONG"
        assert entry.price == pytest.approx(99.7)
        assert entry.model == "bullish pinbar"
        assert entry.stop_loss == pytest.approx(97.706)
        assert entry.take_profit == pytest.approx(103.688)
        assert "support zone" in entry.reason
        assert exit_.reason == "STOP_LOSS"
        assert exit_.price == pytest.approx(97.706)
        assert exit_.profit < 0
        assert result.kpis.losing_trades == 1
        assert result.kpis.win_rate == 0.0

    def test_zones_reported_from_full_htf(self, htf_candles, ltf_candles):
        result = BacktestEngine(_pinbar_settings()).run(ltf_candles, htf_candles)
        assert any(z.zone_type == "support" for z in result.sr_zones)

    def test_take_profit(self, htf_candles):
        ltf = build_ltf(htf_candles, tail=[(99.7, 104.0, 99.6, 103.9)] + [(103.9, 104, 103.8, 103.9)] * 3)
        result = BacktestEngine(_pinbar_settings()).run(ltf, htf_candles)
        exits = _exits(result)
        assert exits[0].reason == "TAKE_PROFIT"
        assert exits[0].price == pytest.approx(103.688)
        assert exits[0].profit > 0

    def test_end_of_data_close(self, htf_candles):
        ltf = build_ltf(htf_candles, tail=[(99.7, 100.0, 99.5, 99.9)] * 3)
        result = BacktestEngine(_pinbar_settings()).run(ltf, htf_candles)
        exits = _exits(result)
        assert exits[-1].reason == "END_OF_DATA"
        assert exits[-1].time == ltf[-1].time
        assert exits[-1].price == pytest.approx(99.9)

    def test_liquidation_checked_before_stop(self, htf_candles):
        """A bar gapping through both the 5 % stop and the 10x liquidation price."""
        ltf = build_ltf(htf_candles, tail=[(99.7, 99.8, 85.0, 86.0)] + [(86, 86.1, 85.9, 86)] * 3)
        settings = _pinbar_settings(leverage=10.0, stop_loss_pct=5.0, take_profit_pct=10.0)
        result = BacktestEngine(settings).run(ltf, htf_candles)
        exit_ = _exits(result)[0]
        assert exit_.reason == "LIQUIDATION"
        assert exit_.price == pytest.approx(99.7 * 0.9)


# ── Invariants ───────────────────────────────────────────────────────────


class TestInvariants:
    def test_deterministic(self, htf_candles, ltf_candles):
        settings = BacktestSettings(follow_htf_trend=False)
        first = BacktestEngine(settings).run(ltf_candles, htf_candles)
        second = BacktestEngine(settings).run(ltf_candles, htf_candles)
        assert first == second
        assert first.to_dict() == second.to_dict()

    def test_equity_conservation(self, htf_candles, ltf_candles):
        settings = _pinbar_settings()
        result = BacktestEngine(settings).run(ltf_candles, htf_candles)
        realized = sum(e.profit for e in _exits(result))
        assert result.final_equity == pytest.approx(settings.initial_capital + realized)
        assert result.kpis.net_profit == pytest.approx(realized)

    def test_each_exit_adds_its_profit_once(self, htf_candles, ltf_candles):
        result = BacktestEngine(_pinbar_settings()).run(ltf_candles, htf_candles)
        equity = 1000.0
        for event in _exits(result):
            equity += event.profit
            assert event.equity == pytest.approx(equity)

    def test_single_position(self, htf_candles):
        tail = [(99.7, 104.0, 99.6, 103.9), (103.9, 104, 103.8, 103.9)]
        tail += [(99.6, 99.72, 99.0, 99.7)]  # second pinbar back in the zone
        tail += [(99.7, 99.8, 97.5, 97.8), (97.8, 97.9, 97.7, 97.8)]
        ltf = build_ltf(htf_candles, tail=tail)
        result = BacktestEngine(_pinbar_settings()).run(ltf, htf_candles)
        kinds = [e.event_type for e in result.trade_log]
        assert kinds == ["ENTRY", "EXIT", "ENTRY", "EXIT"]

    def test_equity_curve_covers_each_bar(self, htf_candles, ltf_candles):
        result = BacktestEngine(_pinbar_settings()).run(ltf_candles, htf_candles)
        assert [p.time for p in result.equity_curve] == [c.time for c in ltf_candles[1:]]
        assert result.kpis.max_drawdown > 0

    def test_no_trades_without_closed_htf(self, htf_candles, ltf_candles):
        """HTF bars that close after the LTF series never feed zones."""
        shifted = [
            make_candle(c.time + 10**7, c.open, c.high, c.low, c.close) for c in htf_candles
        ]
        result = BacktestEngine(_pinbar_settings()).run(ltf_candles, shifted)
        assert result.trade_log == ()
        assert result.final_equity == 1000.0


# ── Cancellation / async ─────────────────────────────────────────────────


class TestRunControl:
    def test_cancel_event_stops_run(self, htf_candles, ltf_candles):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(BacktestCancelled):
            BacktestEngine(_pinbar_settings(), cancel_event=cancel).run(ltf_candles, htf_candles)

    def test_invalid_settings(self, htf_candles, ltf_candles):
        with pytest.raises(ValueError, match="leverage"):
            BacktestEngine(BacktestSettings(leverage=0.5)).run(ltf_candles, htf_candles)

    def test_stop_beyond_liquidation_rejected(self):
        settings = BacktestSettings(use_atr_position_sizing=False, leverage=10.0, stop_loss_pct=15.0)
        with pytest.raises(ValueError, match="liquidation distance"):
            settings.validate()
        # ATR mode derives its stop from structure, not stop_loss_pct
        BacktestSettings(leverage=10.0, stop_loss_pct=15.0).validate()

    def test_wiped_out_account_stops_trading(self, htf_candles, caplog):
        """Full-equity 10x long liquidated, then a second pinbar in the zone."""
        tail = (
            [(99.7, 99.8, 85.0, 86.0)]
            + [(86.0, 86.1, 85.9, 86.0)] * 3
            + [(99.6, 99.72, 99.0, 99.7)]
            + [(99.7, 99.8, 99.6, 99.7)] * 3
        )
        ltf = build_ltf(htf_candles, tail=tail)
        settings = _pinbar_settings(position_size_pct=100.0, leverage=10.0, stop_loss_pct=5.0, take_profit_pct=10.0)

        with caplog.at_level("WARNING", logger="priceaction.backtest"):
            result = BacktestEngine(settings).run(ltf, htf_candles)

        assert len(_entries(result)) == 1
        assert [e.reason for e in _exits(result)] == ["LIQUIDATION"]
        assert result.final_equity <= 0
        assert result.equity_curve[-1].time == ltf[21].time
        assert "wiped out" in caplog.text

    @pytest.mark.asyncio
    async def test_run_in_worker_thread(self, htf_candles, ltf_candles):
        settings = _pinbar_settings()
        result = await run_backtest_async(ltf_candles, htf_candles, settings)
        assert result == BacktestEngine(settings).run(ltf_candles, htf_candles)


# ── Position helpers ─────────────────────────────────────────────────────


class TestPositionHelpers:
    def test_stop_before_target_in_same_bar(self):
        bar = make_candle(0, 100, 105, 97, 101)
        assert check_exit(_long_position(), bar) == (98.0, "STOP_LOSS")

    def test_short_exits(self):
        short = Position("SHORT", 100.0, 1.0, 100.0, 102.0, 96.0, 110.0, 0)
        assert check_exit(short, make_candle(0, 100, 101, 95, 96)) == (96.0, "TAKE_PROFIT")
        assert check_exit(short, make_candle(0, 100, 111, 99, 100)) == (110.0, "LIQUIDATION")
        assert check_exit(short, make_candle(0, 100, 101, 99, 100)) is None

    def test_close_position_charges_both_legs(self):
        settings = BacktestSettings(commission_rate=0.1)
        equity, event = close_position(_long_position(size=10.0), 104.0, 60, "TAKE_PROFIT", 1000.0, settings)
        # gross 40, commission (1000 + 1040) × 0.1 %
        assert event.profit == pytest.approx(40.0 - 2.04)
        assert equity == pytest.approx(1000.0 + 37.96)
        assert event.profit_pct == pytest.approx(3.796)

    def test_zero_risk_entry_is_skipped(self, htf_candles):
        zone = [z for z in identify_zones(htf_candles) if z.zone_type == "support"][0]
        candle = make_candle(0, 99.6, 99.72, 99.0, 99.7)
        signal = EntrySignal(
            index=1,
            direction="LONG",
            zone=zone,
            models=("bullish pinbar",),
            stop_loss=99.7,
            anchor_price=99.0,
            reason="test",
        )
        assert open_position(signal, candle, 1000.0, BacktestSettings()) is None

    def test_risk_based_size_capped_by_leverage(self, htf_candles):
        zone = [z for z in identify_zones(htf_candles) if z.zone_type == "support"][0]
        candle = make_candle(0, 99.6, 99.72, 99.0, 99.7)
        signal = EntrySignal(1, "LONG", zone, ("bullish pinbar",), 98.7, 99.0, "test")
        position, event = open_position(
            signal, candle, 1000.0, BacktestSettings(risk_per_trade_pct=1.0, leverage=10.0),
        )
        # risk 10 / 1.0 per unit
        assert position.size_in_base == pytest.approx(10.0)
        assert position.take_profit == pytest.approx(99.7 + 2.0)
        assert position.liquidation_price == pytest.approx(99.7 * 0.9)
        assert event.zone_score.total == pytest.approx(zone.score)


class TestEntrySignal:
    def test_pinbar_in_support(self, htf_candles, ltf_candles):
        zones = identify_zones(htf_candles)
        atr = calculate_atr(ltf_candles, 14)
        signal = find_entry_signal(ltf_candles, 20, zones, "Uptrend", atr[20], BacktestSettings())
        assert signal is not None
        assert signal.direction == "LONG"
        assert "bullish pinbar" in signal.models
        assert signal.stop_loss == pytest.approx(99.0 - atr[20] * 2.0)

    def test_trend_filter_blocks_longs(self, htf_candles, ltf_candles):
        zones = identify_zones(htf_candles)
        atr = calculate_atr(ltf_candles, 14)
        assert find_entry_signal(ltf_candles, 20, zones, "Downtrend", atr[20], BacktestSettings()) is None

    def test_range_disabled(self, htf_candles, ltf_candles):
        zones = identify_zones(htf_candles)
        atr = calculate_atr(ltf_candles, 14)
        settings = BacktestSettings(allow_range_trading=False)
        assert find_entry_signal(ltf_candles, 20, zones, "Range", atr[20], settings) is None

    def test_outside_zone(self, htf_candles, ltf_candles):
        zones = identify_zones(htf_candles)
        atr = calculate_atr(ltf_candles, 14)
        assert find_entry_signal(ltf_candles, 15, zones, "Range", atr[15], BacktestSettings()) is None

    def test_choch_stop_from_close(self, htf_candles):
        ltf = _gap_retest_ltf(htf_candles)
        zones = identify_zones(htf_candles)
        signal = find_entry_signal(ltf, 20, zones, "Range", 0.5, BacktestSettings())
        assert signal.models == ("bullish CHoCH",)
        assert signal.stop_loss == pytest.approx(99.7 - 1.0)
        assert signal.anchor_price == pytest.approx(98.6)

    def test_gap_retest_stop_from_low(self, htf_candles):
        ltf = _gap_retest_ltf(htf_candles)
        zones = identify_zones(htf_candles)
        signal = find_entry_signal(ltf, 22, zones, "Range", 0.5, BacktestSettings())
        assert signal.models == ("bullish FVG retest",)
        assert signal.stop_loss == pytest.approx(99.2 - 1.0)

    def test_structure_models_drive_engine_entries(self, htf_candles):
        ltf = _gap_retest_ltf(htf_candles)
        result = BacktestEngine(_pinbar_settings(use_choch=True, use_smc=True)).run(ltf, htf_candles)
        entry = _entries(result)[0]
        assert entry.time == ltf[20].time
        assert entry.model == "bullish CHoCH"
        assert entry.price == pytest.approx(99.7)

    def test_gap_retest_entry_without_choch(self, htf_candles):
        ltf = _gap_retest_ltf(htf_candles)
        result = BacktestEngine(_pinbar_settings(use_smc=True)).run(ltf, htf_candles)
        entries = _entries(result)
        assert len(entries) == 1
        assert entries[0].time == ltf[22].time
        assert entries[0].model == "bullish FVG retest"
        assert "FVG retest" in entries[0].reason
