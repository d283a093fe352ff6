"""
signalwatch Runner: Scan Loop

Orchestrates one scan cycle and the timer that repeats it.

Flow per cycle:
1. Refresh tunable settings from the store (failure keeps the last config)
2. Resolve stock and crypto watch-lists (each falls back to defaults)
3. For each instrument, in order: fetch prices, run rules, notify and open
   a trade record per fired rule, then wait the inter-call delay
4. Log completion

A failing instrument is logged and skipped; it never aborts the cycle, and a
failing cycle never stops the loop. Instruments are scanned sequentially so
the inter-call delay keeps upstream providers under their rate limits.
"""

import logging
import random
import threading
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from core.models import Instrument, InstrumentKind
from core.settings import ScannerConfig
from infra.metrics import CycleStats
from strategy.rules import evaluate_all

logger = logging.getLogger(__name__)

SCAN_ORDER = (InstrumentKind.STOCK, InstrumentKind.CRYPTO)


class ScanLoop:
    """
    Scan orchestrator.

    Responsibilities:
    - Reload settings once per cycle into an immutable ScannerConfig
    - Resolve instruments and drive the rule engine over live prices
    - Isolate per-instrument failures
    - Run cycles on a fixed period with a one-time startup jitter
    - Serve operator "run now" requests without moving the timer
    """

    def __init__(
        self,
        settings,
        watchlist,
        trade_log,
        alerts,
        providers: Mapping[InstrumentKind, Any],
        base_config: Optional[ScannerConfig] = None,
        metrics=None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings
        self.watchlist = watchlist
        self.trade_log = trade_log
        self.alerts = alerts
        self.providers = dict(providers)
        self.metrics = metrics
        self._sleep = sleep
        self._clock = clock

        self._base_config = base_config or ScannerConfig()
        self._config = self._base_config
        # Held for the whole cycle; a second caller skips instead of overlapping
        self._cycle_lock = threading.Lock()
        self._stop_event = threading.Event()

        self.last_stats: Optional[CycleStats] = None
        self.cycles_run = 0

    @property
    def config(self) -> ScannerConfig:
        return self._config

    @property
    def in_progress(self) -> bool:
        return self._cycle_lock.locked()

    def refresh_config(self) -> ScannerConfig:
        """Overlay store settings on the base config; keep the last config on failure."""
        try:
            settings = self.settings.get_all_settings()
        except Exception as e:
            logger.warning(f"Settings refresh failed (using last known config): {e}")
            return self._config
        self._config = self._base_config.apply_settings(settings)
        return self._config

    def resolve_all(self) -> List[Instrument]:
        instruments: List[Instrument] = []
        for kind in SCAN_ORDER:
            if kind not in self.providers:
                logger.debug(f"No price provider configured for {kind.value}; skipping")
                continue
            instruments.extend(self.watchlist.resolve_instruments(kind))
        return instruments

    def run_cycle(self) -> Optional[CycleStats]:
        """Run one full cycle. Returns None if another cycle is already running."""
        if not self._cycle_lock.acquire(blocking=False):
            logger.warning("Scan cycle already in progress; skipping this request")
            return None
        try:
            return self._run_cycle_locked()
        finally:
            self._cycle_lock.release()

    def run_now(self) -> Optional[CycleStats]:
        """Operator-triggered extra cycle, run inline. The timer schedule is untouched."""
        logger.info("Immediate scan requested")
        return self.run_cycle()

    def _run_cycle_locked(self) -> CycleStats:
        started = self._clock()
        logger.info("🔁 Running scanner…")

        config = self.refresh_config()
        instruments = self.resolve_all()

        signals = 0
        opened = 0
        failures = 0
        for idx, instrument in enumerate(instruments):
            fired, logged, failed = self._scan_instrument(instrument, config)
            signals += fired
            opened += logged
            failures += int(failed)
            if idx < len(instruments) - 1 and config.inter_call_delay_ms > 0:
                self._sleep(config.inter_call_delay_seconds)

        if not instruments:
            status = "empty"
        elif failures:
            status = "degraded"
        else:
            status = "ok"

        stats = CycleStats(
            status=status,
            instruments=len(instruments),
            signals=signals,
            failures=failures,
            duration_seconds=self._clock() - started,
            trades_opened=opened,
        )
        self.last_stats = stats
        self.cycles_run += 1
        if self.metrics is not None:
            self.metrics.observe_cycle(stats)

        logger.info(
            f"✅ Scan finished: {stats.instruments} instrument(s), {stats.signals} signal(s), "
            f"{stats.failures} failure(s) in {stats.duration_seconds:.1f}s"
        )
        return stats

    def _scan_instrument(self, instrument: Instrument, config: ScannerConfig) -> Tuple[int, int, bool]:
        """Returns (signals fired, trades opened, failed)."""
        fired = 0
        opened = 0
        try:
            provider = self.providers[instrument.kind]
            prices = provider.fetch_prices(instrument)
            logger.debug(f"{instrument.label}: fetched {len(prices)} prices")

            for signal in evaluate_all(instrument.symbol, prices, config):
                fired += 1
                if self.metrics is not None:
                    self.metrics.record_signal(signal.rule_type.value)
                try:
                    self.alerts.notify(signal.message)
                except Exception as e:
                    logger.error(f"Failed to send {signal.rule_type.value} alert for {instrument.label}: {e}")
                try:
                    self.trade_log.open_trade(
                        instrument.symbol,
                        signal.rule_type,
                        signal.price,
                        signal.message,
                    )
                    opened += 1
                except Exception as e:
                    logger.error(f"Failed to log {signal.rule_type.value} trade for {instrument.label}: {e}")
        except Exception as e:
            logger.error(f"Error scanning {instrument.kind.value} {instrument.label}: {e}")
            if self.metrics is not None:
                self.metrics.record_failure(instrument.kind.value)
            return fired, opened, True
        return fired, opened, False

    def run_forever(self) -> None:
        """
        Run cycles until stop() is called.

        Cycles start on a fixed grid anchored at the first cycle; the period
        is re-read from the refreshed config after each cycle, so interval
        changes apply to the next cycle without a restart.
        """
        jitter = random.uniform(0, max(0.0, self._base_config.startup_jitter_seconds))
        if jitter > 0:
            logger.info(f"⏳ Startup jitter: waiting {jitter:.1f}s…")
            if self._stop_event.wait(jitter):
                return

        next_run = self._clock()
        while not self._stop_event.is_set():
            try:
                self.run_cycle()
            except Exception as e:
                logger.error(f"Scan cycle failed: {e}", exc_info=True)

            interval = self._config.scan_interval_seconds
            next_run += interval
            now = self._clock()
            if next_run <= now:
                logger.warning(
                    f"Scan cycle overran its {self._config.scan_interval_minutes}-minute period; starting next cycle now"
                )
                next_run = now
            else:
                logger.info(f"⏱️  Next scan in {next_run - now:.0f}s (every {self._config.scan_interval_minutes} minute(s))")
            self._stop_event.wait(max(0.0, next_run - now))

        logger.info("Scan loop stopped cleanly.")

    def stop(self) -> None:
        self._stop_event.set()

    def status(self) -> Dict[str, Any]:
        """Snapshot for the health endpoint."""
        stats = self.last_stats
        return {
            "ok": True,
            "in_progress": self.in_progress,
            "cycles_run": self.cycles_run,
            "last_cycle": None if stats is None else {
                "status": stats.status,
                "instruments": stats.instruments,
                "signals": stats.signals,
                "failures": stats.failures,
                "duration_seconds": round(stats.duration_seconds, 3),
            },
            "config": {
                "rsi_period": self._config.rsi_period,
                "breakout_threshold_pct": self._config.breakout_threshold_pct,
                "breakout_lookback": self._config.breakout_lookback,
                "inter_call_delay_ms": self._config.inter_call_delay_ms,
                "scan_interval_minutes": self._config.scan_interval_minutes,
            },
        }


__all__ = ["ScanLoop"]
