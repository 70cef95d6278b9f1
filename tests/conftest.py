"""Shared synthetic candle fixtures.

The HTF series oscillates between ~100 and ~110 on 4-hour bars, leaving
four swing lows (99.5, 99.9, 99.3, 99.7) that cluster into one support
zone.  The LTF series starts after the last HTF bar has closed.
"""

import pytest

from priceaction.strategy.models import Candle

HTF_START = 1_700_006_400
HTF_INTERVAL = 14_400
LTF_INTERVAL = 3_600

# (from, to, steps) legs of the HTF close path
_HTF_LEGS = [
    (105.0, 100.0, 5),
    (100.0, 110.0, 10),
    (110.0, 100.4, 10),
    (100.4, 110.0, 10),
    (110.0, 99.8, 10),
    (99.8, 110.0, 10),
    (110.0, 100.2, 10),
    (100.2, 107.0, 7),
]


def make_candle(time, o, h, l, c, vol=1000.0):
    return Candle(time=time, open=o, high=h, low=l, close=c, volume=vol)


def build_htf():
    closes = [105.0]
    for start, end, steps in _HTF_LEGS:
        for k in range(1, steps + 1):
            closes.append(start + (end - start) * k / steps)
    return [
        make_candle(HTF_START + i * HTF_INTERVAL, c + 0.05, c + 0.5, c - 0.5, c)
        for i, c in enumerate(closes)
    ]


def ltf_start(htf):
    return htf[-1].time + HTF_INTERVAL


def build_ltf(htf, tail=None):
    """20 quiet bars at 101, a bullish pinbar into support, then *tail*.

    *tail* is a list of ``(o, h, l, c)`` tuples; by default a drop through
    2 % below the pinbar close followed by five quiet bars at 97.8.
    """
    start = ltf_start(htf)
    bars = [(101.1, 101.2, 100.8, 101.0)] * 20
    bars.append((99.6, 99.72, 99.0, 99.7))  # pinbar, index 20
    if tail is None:
        tail = [(99.7, 99.8, 97.5, 97.8)] + [(97.8, 97.9, 97.7, 97.8)] * 5
    bars.extend(tail)
    return [
        make_candle(start + i * LTF_INTERVAL, o, h, l, c)
        for i, (o, h, l, c) in enumerate(bars)
    ]


@pytest.fixture
def htf_candles():
    return build_htf()


@pytest.fixture
def ltf_candles(htf_candles):
    return build_ltf(htf_candles)
