"""
signalwatch Analytics: Trade Log

Lifecycle of trade records in the external store:

1. Open: the scan loop inserts an OPEN record when a rule fires
2. Close: an operator closes every OPEN record for (symbol, type)
3. Review: records are listed by status/time window and summarized

Rows are shaped ``{id, created_at, data: {...}}`` with the trade fields in the
``data`` JSON document, so status/symbol/type filters use ``data->>field``.
Repeated signals are not deduplicated: each firing opens a new record.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Union
from zoneinfo import ZoneInfo

from core.models import TradeRecord, TradeStatus, TradeSummary, TradeType

logger = logging.getLogger(__name__)


class TradeLog:
    """Trade record adapter over the record store client."""

    def __init__(self, store, table: str = "trades"):
        self.store = store
        self.table = table

    def open_trade(
        self,
        symbol: str,
        trade_type: Union[TradeType, str],
        price: Optional[float],
        reason: str,
    ) -> TradeRecord:
        """
        Insert a new OPEN record.

        Raises StoreError on failure; the scan loop treats that as non-fatal.
        """
        record = TradeRecord(
            symbol=symbol.upper(),
            type=trade_type,
            price=price,
            reason=reason,
            status=TradeStatus.OPEN,
        )
        rows = self.store.insert(self.table, {"data": record.to_data()})
        if rows:
            record = TradeRecord.from_row(rows[0])
        logger.info(f"Logged {record.type_name} trade for {record.symbol}")
        return record

    def close_trade(self, symbol: str, trade_type: Union[TradeType, str], note: str = "") -> int:
        """
        Close every OPEN record for exactly (symbol, type).

        Each row's existing data is preserved and merged with
        ``{status: CLOSED, note, closed_at}``. Returns the number closed
        (0 when nothing is open; no writes then). Store errors propagate.
        """
        symbol = symbol.upper()
        type_name = trade_type.value if isinstance(trade_type, TradeType) else str(trade_type).upper()
        rows = self.store.select(self.table, {
            "data->>symbol": f"eq.{symbol}",
            "data->>type": f"eq.{type_name}",
            "data->>status": f"eq.{TradeStatus.OPEN.value}",
        })
        if not rows:
            logger.info(f"No OPEN trades found for {symbol} ({type_name})")
            return 0

        closed_at = datetime.now(timezone.utc).isoformat()
        for row in rows:
            merged = {
                **(row.get("data") or {}),
                "status": TradeStatus.CLOSED.value,
                "note": note,
                "closed_at": closed_at,
            }
            self.store.patch(self.table, {"id": f"eq.{row['id']}"}, {"data": merged})

        logger.info(f"Closed {len(rows)} trade(s) for {symbol} ({type_name})")
        return len(rows)

    def fetch_trades(self, filters: Optional[Dict[str, str]] = None) -> List[TradeRecord]:
        """Records matching ``filters``, newest first."""
        rows = self.store.select(self.table, dict(filters or {}), order="created_at.desc")
        return [TradeRecord.from_row(row) for row in rows]

    def fetch_trades_since(self, since_iso: str, filters: Optional[Dict[str, str]] = None) -> List[TradeRecord]:
        """Records created at or after ``since_iso``, newest first."""
        merged = dict(filters or {})
        merged["created_at"] = f"gte.{since_iso}"
        return self.fetch_trades(merged)

    def open_trades(self) -> List[TradeRecord]:
        return self.fetch_trades({"data->>status": f"eq.{TradeStatus.OPEN.value}"})

    def closed_since(self, since_iso: str) -> List[TradeRecord]:
        return self.fetch_trades_since(since_iso, {"data->>status": f"eq.{TradeStatus.CLOSED.value}"})


def summarize_trades(records: Optional[Iterable[Union[TradeRecord, Dict[str, Any]]]]) -> TradeSummary:
    """Count records by type and symbol (uppercased, missing values under UNKNOWN)."""
    summary = TradeSummary()
    for item in records or []:
        if isinstance(item, TradeRecord):
            type_name, symbol = item.type_name, item.symbol
        else:
            data = item.get("data") or {}
            type_name, symbol = data.get("type"), data.get("symbol")
        type_key = (str(type_name or "").strip() or "UNKNOWN").upper()
        symbol_key = (str(symbol or "").strip() or "UNKNOWN").upper()
        summary.by_type[type_key] = summary.by_type.get(type_key, 0) + 1
        summary.by_symbol[symbol_key] = summary.by_symbol.get(symbol_key, 0) + 1
        summary.total += 1
    return summary


def compute_since(days: int, tz_name: str = "UTC", now: Optional[datetime] = None) -> datetime:
    """
    Start of the summary window as an aware UTC datetime.

    Midnight today in ``tz_name``, moved back ``days - 1`` whole days.
    """
    tz = ZoneInfo(tz_name)
    now = now or datetime.now(timezone.utc)
    local_now = now.astimezone(tz)
    local_midnight = datetime(local_now.year, local_now.month, local_now.day, tzinfo=tz)
    start = local_midnight.astimezone(timezone.utc)
    if days > 1:
        start -= timedelta(days=days - 1)
    return start


__all__ = ["TradeLog", "summarize_trades", "compute_since"]
