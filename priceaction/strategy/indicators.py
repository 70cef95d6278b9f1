"""Technical indicators — SMA, EMA, RSI, ATR, ADX, Bollinger Bands, MACD.

Pure functions, no I/O.  Every series has the same length as its input and
holds ``None`` until enough history exists; insufficient data is never an
error.
"""

import math
from typing import Literal, Optional

from priceaction.strategy.models import Candle, MacdValue


def _check_period(period: int) -> None:
    if period <= 0:
        raise ValueError(f"period must be positive, got {period}")


def last_valid(values: list[Optional[float]]) -> Optional[float]:
    """Return the most recent non-``None`` entry of *values*."""
    for value in reversed(values):
        if value is not None and not math.isnan(value):
            return value
    return None


def calculate_sma(values: list[float], period: int) -> list[Optional[float]]:
    """Simple moving average over a plain value list."""
    _check_period(period)
    sma: list[Optional[float]] = [None] * len(values)
    if len(values) < period:
        return sma

    running = sum(values[:period])
    sma[period - 1] = running / period
    for i in range(period, len(values)):
        running += values[i] - values[i - period]
        sma[i] = running / period
    return sma


def calculate_ema(candles: list[Candle], period: int) -> list[Optional[float]]:
    """Calculate an Exponential Moving Average of closes.

    Uses the standard EMA formula:
        ``EMA_today = close × k + EMA_yesterday × (1 - k)``
    where ``k = 2 / (period + 1)``.

    The first EMA value sits at index ``period - 1`` and is seeded with the
    SMA of the first *period* closes.
    """
    _check_period(period)
    return _ema_on_values([c.close for c in candles], period)


def _ema_on_values(
    values: list[Optional[float]], period: int,
) -> list[Optional[float]]:
    """EMA over a series that may start with ``None`` entries.

    Seeds from the SMA of the first *period* valid values.
    """
    result: list[Optional[float]] = [None] * len(values)
    first = next((i for i, v in enumerate(values) if v is not None), None)
    if first is None or len(values) - first < period:
        return result

    seed_window = values[first : first + period]
    if any(v is None for v in seed_window):
        return result

    k = 2.0 / (period + 1)
    ema = sum(seed_window) / period  # type: ignore[arg-type]
    result[first + period - 1] = ema
    for i in range(first + period, len(values)):
        value = values[i]
        if value is None:
            continue
        ema = value * k + ema * (1 - k)
        result[i] = ema
    return result


# ── RSI ──────────────────────────────────────────────────────────────────


def calculate_rsi(candles: list[Candle], period: int = 14) -> list[Optional[float]]:
    """Calculate Wilder's Relative Strength Index.

    Algorithm (Wilder-smoothed):
        1. delta = close[i] - close[i-1]
        2. Seed average gain/loss = SMA of first *period* deltas.
        3. Subsequent: avg = (prev_avg × (period-1) + current) / period
        4. RSI = 100 - 100 / (1 + avg_gain / avg_loss)

    A zero average loss yields 100.  The first value is at index *period*.
    """
    _check_period(period)
    rsi: list[Optional[float]] = [None] * len(candles)
    if len(candles) < period + 1:
        return rsi

    closes = [c.close for c in candles]
    deltas = [closes[i] - closes[i - 1] for i in range(1, len(closes))]
    gains = [max(d, 0.0) for d in deltas]
    losses = [abs(min(d, 0.0)) for d in deltas]

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period

    def _rsi_from_avgs(ag: float, al: float) -> float:
        if al == 0:
            return 100.0
        return 100.0 - 100.0 / (1.0 + ag / al)

    rsi[period] = _rsi_from_avgs(avg_gain, avg_loss)

    for i in range(period, len(deltas)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        # deltas are offset by one candle
        rsi[i + 1] = _rsi_from_avgs(avg_gain, avg_loss)

    return rsi


def rsi_status(
    candles: list[Candle],
    period: int = 14,
    upper: float = 70.0,
    lower: float = 30.0,
) -> Literal["Overbought", "Oversold", "Neutral"]:
    """Classify the latest RSI reading."""
    value = last_valid(calculate_rsi(candles, period))
    if value is None:
        return "Neutral"
    if value >= upper:
        return "Overbought"
    if value <= lower:
        return "Oversold"
    return "Neutral"


# ── ATR ──────────────────────────────────────────────────────────────────


def _true_ranges(candles: list[Candle]) -> list[float]:
    """TR per bar.  The first bar has no previous close, so TR = high − low."""
    if not candles:
        return []
    trs = [candles[0].high - candles[0].low]
    for i in range(1, len(candles)):
        high = candles[i].high
        low = candles[i].low
        prev_close = candles[i - 1].close
        trs.append(max(high - low, abs(high - prev_close), abs(low - prev_close)))
    return trs


def calculate_atr(candles: list[Candle], period: int = 14) -> list[Optional[float]]:
    """Calculate the Wilder-smoothed Average True Range.

    Seeded with the SMA of the first *period* true ranges at index
    ``period - 1``, then ``ATR = (prev × (period-1) + TR) / period``.
    """
    _check_period(period)
    atr: list[Optional[float]] = [None] * len(candles)
    if len(candles) < period:
        return atr

    trs = _true_ranges(candles)
    prev = sum(trs[:period]) / period
    atr[period - 1] = prev
    for i in range(period, len(candles)):
        prev = (prev * (period - 1) + trs[i]) / period
        atr[i] = prev
    return atr


# ── ADX ──────────────────────────────────────────────────────────────────


def calculate_adx(candles: list[Candle], period: int = 14) -> list[Optional[float]]:
    """Calculate the Average Directional Index (ADX).

    Algorithm:
        1. +DM / -DM directional movement per bar.
        2. Wilder-smooth +DM, -DM, and TR over *period*.
        3. DX = 100 × |+DI − −DI| / (+DI + −DI)
        4. ADX = Wilder-smoothed DX over *period*.

    The first ADX value is at index ``2 × period - 1``.
    """
    _check_period(period)
    n = len(candles)
    adx: list[Optional[float]] = [None] * n
    if n < 2 * period:
        return adx

    plus_dm: list[float] = [0.0]
    minus_dm: list[float] = [0.0]
    tr: list[float] = [0.0]
    for i in range(1, n):
        up_move = candles[i].high - candles[i - 1].high
        down_move = candles[i - 1].low - candles[i].low
        plus_dm.append(up_move if (up_move > down_move and up_move > 0) else 0.0)
        minus_dm.append(down_move if (down_move > up_move and down_move > 0) else 0.0)
        prev_close = candles[i - 1].close
        tr.append(max(
            candles[i].high - candles[i].low,
            abs(candles[i].high - prev_close),
            abs(candles[i].low - prev_close),
        ))

    def _dx(s_pdm: float, s_mdm: float, s_tr: float) -> float:
        if s_tr == 0:
            return 0.0
        plus_di = 100.0 * s_pdm / s_tr
        minus_di = 100.0 * s_mdm / s_tr
        di_sum = plus_di + minus_di
        if di_sum == 0:
            return 0.0
        return 100.0 * abs(plus_di - minus_di) / di_sum

    # Seed sums cover bars 1..period; dx_values[k] belongs to bar period + k
    s_pdm = sum(plus_dm[1 : period + 1])
    s_mdm = sum(minus_dm[1 : period + 1])
    s_tr = sum(tr[1 : period + 1])
    dx_values = [_dx(s_pdm, s_mdm, s_tr)]
    for i in range(period + 1, n):
        s_pdm = s_pdm - s_pdm / period + plus_dm[i]
        s_mdm = s_mdm - s_mdm / period + minus_dm[i]
        s_tr = s_tr - s_tr / period + tr[i]
        dx_values.append(_dx(s_pdm, s_mdm, s_tr))

    if len(dx_values) < period:
        return adx

    prev = sum(dx_values[:period]) / period
    adx[2 * period - 1] = prev
    for k in range(period, len(dx_values)):
        prev = (prev * (period - 1) + dx_values[k]) / period
        adx[period + k] = prev
    return adx


# ── Bollinger Bands ──────────────────────────────────────────────────────


def calculate_bollinger(
    candles: list[Candle],
    period: int = 20,
    std_dev: float = 2.0,
) -> tuple[list[Optional[float]], list[Optional[float]], list[Optional[float]]]:
    """Calculate Bollinger Bands.

    Middle = SMA(close, *period*), Upper/Lower = middle ± *std_dev* × σ
    (population standard deviation).

    Returns ``(upper, middle, lower)``.
    """
    _check_period(period)
    n = len(candles)
    upper: list[Optional[float]] = [None] * n
    middle: list[Optional[float]] = [None] * n
    lower: list[Optional[float]] = [None] * n

    closes = [c.close for c in candles]
    for i in range(period - 1, n):
        window = closes[i - period + 1 : i + 1]
        sma = sum(window) / period
        sigma = math.sqrt(sum((x - sma) ** 2 for x in window) / period)
        middle[i] = sma
        upper[i] = sma + std_dev * sigma
        lower[i] = sma - std_dev * sigma

    return upper, middle, lower


# ── MACD ─────────────────────────────────────────────────────────────────


def calculate_macd(
    candles: list[Candle],
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
) -> list[Optional[MacdValue]]:
    """MACD line, signal line and histogram.

    The signal line is an EMA of the MACD line seeded from its first
    *signal_period* valid values, so the first complete reading sits at
    ``slow_period + signal_period - 2``.
    """
    _check_period(signal_period)
    n = len(candles)
    result: list[Optional[MacdValue]] = [None] * n
    if n < slow_period:
        return result

    fast = calculate_ema(candles, fast_period)
    slow = calculate_ema(candles, slow_period)
    line: list[Optional[float]] = [
        f - s if (f is not None and s is not None) else None
        for f, s in zip(fast, slow)
    ]
    signal = _ema_on_values(line, signal_period)

    for i in range(n):
        m, s = line[i], signal[i]
        if m is not None and s is not None:
            result[i] = MacdValue(macd=m, signal=s, histogram=m - s)
    return result
