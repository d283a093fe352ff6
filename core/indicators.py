"""
signalwatch Core: Indicators

Plain-list indicator math shared by the signal rules. No I/O.
"""

import math
from typing import List, Sequence


def calculate_rsi_series(closes: Sequence[float], period: int = 14) -> List[float]:
    """
    Wilder-smoothed RSI over ``closes`` (oldest first).

    The first value uses simple averages of the first ``period`` deltas; every
    later value applies Wilder smoothing. Returns one value per bar from index
    ``period`` onward, or an empty list when there is not enough data.
    """
    if period < 1 or len(closes) < period + 1:
        return []

    gains = []
    losses = []
    for i in range(1, len(closes)):
        delta = closes[i] - closes[i - 1]
        gains.append(max(delta, 0.0))
        losses.append(abs(min(delta, 0.0)))

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period

    rsis: List[float] = [_rsi_from_averages(avg_gain, avg_loss)]
    for idx in range(period, len(gains)):
        avg_gain = ((avg_gain * (period - 1)) + gains[idx]) / period
        avg_loss = ((avg_loss * (period - 1)) + losses[idx]) / period
        rsis.append(_rsi_from_averages(avg_gain, avg_loss))

    return rsis


def _rsi_from_averages(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - (100.0 / (1.0 + rs))


def format_price(value: float) -> str:
    """Render a price with precision scaled to its magnitude (sub-cent tokens keep 6 dp)."""
    if not math.isfinite(value):
        return str(value)
    if value >= 1000:
        return f"{value:.2f}"
    if value >= 1:
        return f"{value:.2f}"
    if value >= 0.1:
        return f"{value:.3f}"
    return f"{value:.6f}"
