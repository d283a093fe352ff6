"""
signalwatch Core: Settings

Flat key/value settings kept in the record store, and the immutable scanner
configuration they overlay once per cycle.
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

MIN_SCAN_INTERVAL_MINUTES = 5
MAX_SCAN_INTERVAL_MINUTES = 720


@dataclass(frozen=True)
class ScannerConfig:
    """Tunable parameters for one scan cycle"""
    rsi_period: int = 14
    breakout_threshold_pct: float = 2.0
    breakout_lookback: Optional[int] = None  # None = full history
    inter_call_delay_ms: int = 2000
    scan_interval_minutes: int = 60
    startup_jitter_seconds: float = 10.0

    @property
    def inter_call_delay_seconds(self) -> float:
        return self.inter_call_delay_ms / 1000.0

    @property
    def scan_interval_seconds(self) -> float:
        return self.scan_interval_minutes * 60.0

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "ScannerConfig":
        """Build defaults from the ``scanner`` section of app.yaml."""
        raw = raw or {}
        lookback = raw.get("breakout_lookback")
        return cls(
            rsi_period=int(raw.get("rsi_period", 14)),
            breakout_threshold_pct=float(raw.get("breakout_threshold_pct", 2.0)),
            breakout_lookback=int(lookback) if lookback else None,
            inter_call_delay_ms=int(raw.get("inter_call_delay_ms", 2000)),
            scan_interval_minutes=int(raw.get("scan_interval_minutes", 60)),
            startup_jitter_seconds=float(raw.get("startup_jitter_seconds", 10.0)),
        )

    def apply_settings(self, settings: Dict[str, str]) -> "ScannerConfig":
        """
        Return a copy with recognised store settings applied.

        Unknown keys are ignored. Values that fail to parse or fall outside
        their bounds are logged and ignored, keeping the current value.
        """
        changes: Dict[str, Any] = {}
        for key, raw_value in (settings or {}).items():
            entry = SETTING_PARSERS.get(str(key).strip().upper())
            if entry is None:
                continue
            field_name, parser = entry
            try:
                changes[field_name] = parser(str(raw_value).strip())
            except ValueError as exc:
                logger.warning(f"Ignoring setting {key}={raw_value!r}: {exc}")
        if not changes:
            return self
        return replace(self, **changes)


def _parse_rsi_period(value: str) -> int:
    period = int(value)
    if period < 2:
        raise ValueError("RSI period must be >= 2")
    return period


def _parse_threshold(value: str) -> float:
    threshold = float(value)
    if not threshold >= 0:
        raise ValueError("breakout threshold must be >= 0")
    return threshold


def _parse_lookback(value: str) -> Optional[int]:
    if value in ("", "0") or value.lower() in ("none", "all"):
        return None
    lookback = int(value)
    if lookback < 1:
        raise ValueError("breakout lookback must be >= 1")
    return lookback


def _parse_delay(value: str) -> int:
    delay = int(value)
    if delay < 0:
        raise ValueError("delay must be >= 0 ms")
    return delay


def _parse_interval(value: str) -> int:
    minutes = int(value)
    if not MIN_SCAN_INTERVAL_MINUTES <= minutes <= MAX_SCAN_INTERVAL_MINUTES:
        raise ValueError(
            f"scan interval must be within {MIN_SCAN_INTERVAL_MINUTES}-{MAX_SCAN_INTERVAL_MINUTES} minutes"
        )
    return minutes


SETTING_PARSERS: Dict[str, Tuple[str, Callable[[str], Any]]] = {
    "RSI_PERIOD": ("rsi_period", _parse_rsi_period),
    "BREAKOUT_THRESHOLD": ("breakout_threshold_pct", _parse_threshold),
    "BREAKOUT_LOOKBACK": ("breakout_lookback", _parse_lookback),
    "INTER_CALL_DELAY_MS": ("inter_call_delay_ms", _parse_delay),
    "CG_DELAY_MS": ("inter_call_delay_ms", _parse_delay),
    "SCAN_INTERVAL_MINUTES": ("scan_interval_minutes", _parse_interval),
}


class SettingsStore:
    """Key/value settings table. Keys are stored uppercase."""

    def __init__(self, store, table: str = "settings"):
        self.store = store
        self.table = table

    def set_setting(self, key: str, value: str) -> None:
        key = key.strip().upper()
        self.store.upsert(self.table, {"key": key, "value": str(value)}, on_conflict="key")
        logger.info(f"Setting {key} updated")

    def get_setting(self, key: str) -> Optional[str]:
        rows = self.store.select(self.table, {"key": f"eq.{key.strip().upper()}"}, order=None)
        if not rows:
            return None
        return rows[0].get("value")

    def get_all_settings(self) -> Dict[str, str]:
        rows = self.store.select(self.table, order="key.asc")
        return {row["key"]: row.get("value") for row in rows if row.get("key")}


__all__ = ["ScannerConfig", "SettingsStore", "SETTING_PARSERS"]
