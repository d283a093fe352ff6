"""
signalwatch Strategy: Signal Rules

Deterministic rules over a price series (oldest first, newest last).
Each rule returns at most one RuleSignal per call and abstains (None) when the
series is too short or the indicator is not finite. No I/O, no shared state.
"""

import math
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from core.indicators import calculate_rsi_series, format_price
from core.models import TradeType
from core.settings import ScannerConfig

OVERSOLD_LEVEL = 30.0


@dataclass(frozen=True)
class RuleSignal:
    """A fired rule for one symbol"""
    symbol: str
    rule_type: TradeType
    price: float  # latest price in the series
    message: str  # human-readable alert text
    value: float  # RSI for oversold, percent over prior high for breakout


def evaluate_oversold(
    symbol: str,
    prices: Sequence[float],
    period: int = 14,
    oversold_level: float = OVERSOLD_LEVEL,
) -> Optional[RuleSignal]:
    """Fire when the latest Wilder RSI is finite and below ``oversold_level``."""
    if period < 1 or len(prices) < period + 1:
        return None

    rsi_values = calculate_rsi_series(prices, period)
    if not rsi_values:
        return None
    latest_rsi = rsi_values[-1]
    if not math.isfinite(latest_rsi):
        return None

    if latest_rsi < oversold_level:
        return RuleSignal(
            symbol=symbol,
            rule_type=TradeType.RSI,
            price=prices[-1],
            message=f"📉 {symbol} RSI = {latest_rsi:.2f} — Oversold! Consider watching for a bounce.",
            value=latest_rsi,
        )
    return None


def detect_breakout(
    symbol: str,
    prices: Sequence[float],
    threshold_pct: float = 2.0,
    lookback: Optional[int] = None,
) -> Optional[RuleSignal]:
    """
    Fire when the latest price clears the prior high by ``threshold_pct`` percent.

    The prior high excludes the latest bar and spans the full history, or only
    the last ``lookback`` bars before it when given.
    """
    if len(prices) < 3:
        return None

    latest = prices[-1]
    end = len(prices) - 1
    start = max(0, end - lookback) if lookback else 0
    window = prices[start:end]
    if not window:
        return None

    recent_high = max(window)
    trigger = recent_high * (1 + threshold_pct / 100.0)
    if not (math.isfinite(latest) and math.isfinite(trigger)):
        return None

    if latest > trigger:
        pct = ((latest / recent_high) - 1) * 100 if recent_high else float("inf")
        if not math.isfinite(pct):
            return None
        return RuleSignal(
            symbol=symbol,
            rule_type=TradeType.BREAKOUT,
            price=latest,
            message=(
                f"🚀 {symbol} breakout!\n"
                f"Price {format_price(latest)} > prior high {format_price(recent_high)} "
                f"by {pct:.2f}% (threshold {threshold_pct:g}%)."
            ),
            value=pct,
        )
    return None


RuleFn = Callable[[str, Sequence[float], ScannerConfig], Optional[RuleSignal]]

# Registry order is evaluation order
RULES: Dict[TradeType, RuleFn] = {
    TradeType.RSI: lambda symbol, prices, cfg: evaluate_oversold(symbol, prices, period=cfg.rsi_period),
    TradeType.BREAKOUT: lambda symbol, prices, cfg: detect_breakout(
        symbol, prices, threshold_pct=cfg.breakout_threshold_pct, lookback=cfg.breakout_lookback
    ),
}


def evaluate_all(symbol: str, prices: Sequence[float], config: ScannerConfig) -> List[RuleSignal]:
    """Run every registered rule with the cycle's configuration."""
    signals = []
    for rule in RULES.values():
        signal = rule(symbol, prices, config)
        if signal is not None:
            signals.append(signal)
    return signals
