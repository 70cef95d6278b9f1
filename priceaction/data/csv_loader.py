"""Candle loading from CSV files and live-update merging."""

import logging

import pandas as pd

from priceaction.strategy.models import Candle

logger = logging.getLogger("priceaction.data")

_COLUMNS = ["time", "open", "high", "low", "close"]

# Epoch values above this are treated as milliseconds (year 2286 in seconds)
_MS_THRESHOLD = 10_000_000_000


def _to_unix_seconds(times: pd.Series) -> pd.Series:
    """Normalize ISO strings, epoch seconds or epoch milliseconds."""
    if pd.api.types.is_numeric_dtype(times):
        values = times.astype("int64")
        return values.where(values < _MS_THRESHOLD, values // 1000)
    parsed = pd.to_datetime(times, utc=True)
    return (parsed - pd.Timestamp("1970-01-01", tz="UTC")) // pd.Timedelta(seconds=1)


def frame_to_candles(df: pd.DataFrame) -> list[Candle]:
    """Convert an OHLCV frame into time-ordered, de-duplicated candles.

    An optional ``is_closed`` (or ``isClosed``) column marks bars still
    forming; the flag travels with its row through sorting.

    Raises:
        ValueError: If a required column is missing.
    """
    df = df.rename(columns=str.lower).rename(columns={"isclosed": "is_closed"})
    missing = [c for c in _COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Missing candle column(s): {', '.join(missing)}")

    df = df.copy()
    if "volume" not in df.columns:
        df["volume"] = 0.0
    # absent or null flags mean the bar has closed
    df["is_closed"] = ~df["is_closed"].eq(False) if "is_closed" in df.columns else True
    df["time"] = _to_unix_seconds(df["time"])
    df = df.sort_values("time").drop_duplicates(subset="time", keep="last")

    return [
        Candle(
            time=int(row.time),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
            is_closed=bool(row.is_closed),
        )
        for row in df.itertuples(index=False)
    ]


def load_candles_csv(path: str) -> list[Candle]:
    """Read a CSV with time/open/high/low/close[/volume] columns."""
    df = pd.read_csv(path)
    candles = frame_to_candles(df)
    logger.info("Loaded %d candles from %s", len(candles), path)
    return candles


def merge_live_candle(candles: list[Candle], update: Candle) -> list[Candle]:
    """Apply a live feed update to a candle series.

    The last candle is replaced when it has the same time and is still
    open; a newer update is appended.  Returns a new list.

    Raises:
        ValueError: If the update is older than the last candle or would
            overwrite a closed one.
    """
    if not candles:
        return [update]
    last = candles[-1]
    if update.time == last.time:
        if last.is_closed:
            raise ValueError(f"Candle at {last.time} is already closed")
        return candles[:-1] + [update]
    if update.time > last.time:
        return candles + [update]
    raise ValueError(
        f"Stale candle update at {update.time}, last candle is {last.time}"
    )
