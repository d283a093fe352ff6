"""
signalwatch Core: Data Model

Instruments scanned each cycle and the trade records written to the store.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union


class InstrumentKind(str, Enum):
    """Watch-list partition. The value is what the store's ``type`` column holds."""
    STOCK = "stock"
    CRYPTO = "crypto"


class TradeType(str, Enum):
    RSI = "RSI"
    BREAKOUT = "BREAKOUT"


class TradeStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


@dataclass(frozen=True)
class Instrument:
    """Tradable instrument on the watch-list"""
    id: str  # provider-specific identifier (CoinGecko id or ticker)
    symbol: str  # display ticker, uppercase
    kind: InstrumentKind

    @property
    def identity(self) -> Tuple[InstrumentKind, str]:
        if self.kind == InstrumentKind.CRYPTO:
            return (self.kind, self.id)
        return (self.kind, self.symbol)

    @property
    def label(self) -> str:
        if self.kind == InstrumentKind.CRYPTO and self.id and self.id.upper() != self.symbol:
            return f"{self.symbol} ({self.id})"
        return self.symbol

    @classmethod
    def stock(cls, symbol: str) -> "Instrument":
        symbol = symbol.strip().upper()
        return cls(id=symbol, symbol=symbol, kind=InstrumentKind.STOCK)

    @classmethod
    def crypto(cls, coin_id: str, symbol: str) -> "Instrument":
        return cls(id=coin_id.strip(), symbol=symbol.strip().upper(), kind=InstrumentKind.CRYPTO)


def _normalize_type(value: Any) -> Union[TradeType, str]:
    raw = str(value or "").strip().upper()
    try:
        return TradeType(raw)
    except ValueError:
        return raw


@dataclass
class TradeRecord:
    """
    Logged occurrence of a fired rule.

    Rows in the store are shaped ``{id, created_at, data: {...}}``; every field
    except ``id`` and ``created_at`` lives in the ``data`` document.
    """
    symbol: str
    type: Union[TradeType, str]
    price: Optional[float]
    reason: str
    status: TradeStatus = TradeStatus.OPEN
    note: str = ""
    id: Optional[Any] = None
    created_at: Optional[str] = None
    closed_at: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def type_name(self) -> str:
        return self.type.value if isinstance(self.type, TradeType) else str(self.type)

    @property
    def is_open(self) -> bool:
        return self.status == TradeStatus.OPEN

    def to_data(self) -> Dict[str, Any]:
        """JSON document stored under the row's ``data`` column."""
        data = dict(self.extra)
        data.update({
            "symbol": self.symbol,
            "type": self.type_name,
            "price": self.price,
            "reason": self.reason,
            "status": self.status.value,
            "note": self.note,
            "closed_at": self.closed_at,
        })
        return data

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "TradeRecord":
        data = dict(row.get("data") or {})
        known = {"symbol", "type", "price", "reason", "status", "note", "closed_at"}
        status_raw = str(data.get("status") or TradeStatus.OPEN.value).upper()
        try:
            status = TradeStatus(status_raw)
        except ValueError:
            status = TradeStatus.OPEN
        price = data.get("price")
        return cls(
            symbol=str(data.get("symbol") or "").upper(),
            type=_normalize_type(data.get("type")),
            price=float(price) if isinstance(price, (int, float)) else None,
            reason=str(data.get("reason") or ""),
            status=status,
            note=str(data.get("note") or ""),
            id=row.get("id"),
            created_at=row.get("created_at"),
            closed_at=data.get("closed_at"),
            extra={k: v for k, v in data.items() if k not in known},
        )


@dataclass
class TradeSummary:
    total: int = 0
    by_type: Dict[str, int] = field(default_factory=dict)
    by_symbol: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"total": self.total, "byType": dict(self.by_type), "bySymbol": dict(self.by_symbol)}
