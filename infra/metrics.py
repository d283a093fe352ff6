"""Prometheus-backed metrics hooks for the scan loop."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Summary, start_http_server

logger = logging.getLogger(__name__)


@dataclass
class CycleStats:
    status: str  # "ok" | "degraded" | "empty"
    instruments: int
    signals: int
    failures: int
    duration_seconds: float
    trades_opened: int = 0


class MetricsRecorder:
    """
    Expose scan loop stats via Prometheus.

    Each recorder owns its registry so several instances (tests, --once runs)
    never collide on metric names.
    """

    def __init__(self, enabled: bool = True, port: int = 9100) -> None:
        self._enabled = bool(enabled)
        self._port = int(port)
        self._started = False
        self.registry = CollectorRegistry()

        self._last_cycle_stats: Optional[CycleStats] = None
        self._signal_counts: Dict[str, int] = {}
        self._failure_counts: Dict[str, int] = {}

        self._cycle_summary = Summary(
            "scanner_cycle_duration_seconds",
            "Duration of a full scan cycle",
            registry=self.registry,
        )
        self._cycle_counter = Counter(
            "scanner_cycle_total",
            "Total scan cycles by status",
            labelnames=("status",),
            registry=self.registry,
        )
        self._instruments_gauge = Gauge(
            "scanner_cycle_instruments",
            "Instruments scanned in the last cycle",
            registry=self.registry,
        )
        self._signals_counter = Counter(
            "scanner_signals_total",
            "Rule signals fired by rule type",
            labelnames=("rule",),
            registry=self.registry,
        )
        self._failures_counter = Counter(
            "scanner_instrument_failures_total",
            "Per-instrument failures by instrument kind",
            labelnames=("kind",),
            registry=self.registry,
        )

    @classmethod
    def from_config(cls, raw_config: Optional[Dict]) -> "MetricsRecorder":
        raw_config = raw_config or {}
        return cls(enabled=bool(raw_config.get("enabled", False)), port=int(raw_config.get("port", 9100)))

    def start(self) -> None:
        if not self._enabled or self._started:
            return
        try:
            start_http_server(self._port, registry=self.registry)
        except OSError as exc:
            self._enabled = False
            logger.error("Failed to start metrics exporter on port %s: %s", self._port, exc)
            return
        self._started = True
        logger.info("Prometheus metrics exporter listening on 0.0.0.0:%s", self._port)

    def is_enabled(self) -> bool:
        return self._enabled

    def observe_cycle(self, stats: CycleStats) -> None:
        self._cycle_summary.observe(stats.duration_seconds)
        self._cycle_counter.labels(status=stats.status).inc()
        self._instruments_gauge.set(stats.instruments)
        self._last_cycle_stats = stats

    def record_signal(self, rule: str) -> None:
        self._signal_counts[rule] = self._signal_counts.get(rule, 0) + 1
        self._signals_counter.labels(rule=rule).inc()

    def record_failure(self, kind: str) -> None:
        self._failure_counts[kind] = self._failure_counts.get(kind, 0) + 1
        self._failures_counter.labels(kind=kind).inc()

    @property
    def last_cycle(self) -> Optional[CycleStats]:
        return self._last_cycle_stats

    def signal_snapshot(self) -> Dict[str, int]:
        return dict(self._signal_counts)

    def failure_snapshot(self) -> Dict[str, int]:
        return dict(self._failure_counts)


__all__ = ["MetricsRecorder", "CycleStats"]
