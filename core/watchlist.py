"""
signalwatch Core: Watch-list

Operator-maintained instruments, partitioned by kind, and the resolver the
scan loop calls at the start of every cycle. Resolution is never cached: each
cycle re-reads the store and falls back to built-in defaults when the store
is empty or unreachable.
"""

import logging
from typing import Any, Dict, List, Optional

from core.models import Instrument, InstrumentKind

logger = logging.getLogger(__name__)

DEFAULT_STOCKS: List[Instrument] = [Instrument.stock("SOXL")]

DEFAULT_COINS: List[Instrument] = [
    Instrument.crypto("bitcoin", "BTC"),
    Instrument.crypto("ethereum", "ETH"),
    Instrument.crypto("litecoin", "LTC"),
    Instrument.crypto("shiba-inu", "SHIB"),
]

KNOWN_COIN_SYMBOLS: Dict[str, str] = {
    "bitcoin": "BTC",
    "ethereum": "ETH",
    "litecoin": "LTC",
    "shiba-inu": "SHIB",
    "solana": "SOL",
    "cardano": "ADA",
    "chainlink": "LINK",
    "polygon": "MATIC",
    "dogecoin": "DOGE",
    "ripple": "XRP",
    "binancecoin": "BNB",
}


def guess_symbol_from_id(coin_id: str) -> str:
    """Ticker for a well-known CoinGecko id, else the id uppercased."""
    return KNOWN_COIN_SYMBOLS.get(coin_id.strip().lower(), coin_id.strip().upper())


def defaults_from_config(raw_config: Optional[Dict[str, Any]]) -> Dict[InstrumentKind, List[Instrument]]:
    """Parse ``scanner.default_stocks`` / ``scanner.default_coins`` from app.yaml."""
    raw_config = raw_config or {}
    defaults = {
        InstrumentKind.STOCK: list(DEFAULT_STOCKS),
        InstrumentKind.CRYPTO: list(DEFAULT_COINS),
    }
    stocks = raw_config.get("default_stocks")
    if stocks:
        defaults[InstrumentKind.STOCK] = [Instrument.stock(s) for s in stocks]
    coins = raw_config.get("default_coins")
    if coins:
        defaults[InstrumentKind.CRYPTO] = [
            Instrument.crypto(c["id"], c.get("symbol") or guess_symbol_from_id(c["id"]))
            for c in coins
        ]
    return defaults


class WatchlistStore:
    """
    Watch-list rows in the record store.

    Row shape: ``{type: "stock"|"crypto", cid: <coin id or null>, symbol: <TICKER>}``.
    Adds are idempotent upserts; removes report affected rows.
    """

    def __init__(self, store, table: str = "watchlist",
                 defaults: Optional[Dict[InstrumentKind, List[Instrument]]] = None):
        self.store = store
        self.table = table
        self.defaults = defaults or {
            InstrumentKind.STOCK: list(DEFAULT_STOCKS),
            InstrumentKind.CRYPTO: list(DEFAULT_COINS),
        }

    def add_crypto(self, coin_id: str, symbol: str) -> Instrument:
        instrument = Instrument.crypto(coin_id, symbol)
        self.store.upsert(
            self.table,
            {"type": InstrumentKind.CRYPTO.value, "cid": instrument.id, "symbol": instrument.symbol},
            on_conflict="type,cid",
            ignore_duplicates=True,
        )
        logger.info(f"Watch-list add crypto {instrument.label}")
        return instrument

    def add_stock(self, symbol: str) -> Instrument:
        instrument = Instrument.stock(symbol)
        self.store.upsert(
            self.table,
            {"type": InstrumentKind.STOCK.value, "cid": None, "symbol": instrument.symbol},
            on_conflict="type,symbol",
            ignore_duplicates=True,
        )
        logger.info(f"Watch-list add stock {instrument.symbol}")
        return instrument

    def remove_crypto(self, coin_id: str) -> int:
        return self.store.delete(
            self.table, {"type": f"eq.{InstrumentKind.CRYPTO.value}", "cid": f"eq.{coin_id.strip()}"}
        )

    def remove_stock(self, symbol: str) -> int:
        return self.store.delete(
            self.table, {"type": f"eq.{InstrumentKind.STOCK.value}", "symbol": f"eq.{symbol.strip().upper()}"}
        )

    def list_crypto(self) -> List[Instrument]:
        return self._list(InstrumentKind.CRYPTO)

    def list_stocks(self) -> List[Instrument]:
        return self._list(InstrumentKind.STOCK)

    def resolve_instruments(self, kind: InstrumentKind) -> List[Instrument]:
        """
        Instruments to scan this cycle for ``kind``.

        Falls back to the built-in defaults on an empty result or on any store
        error, so an outage degrades the scanner instead of idling it.
        """
        try:
            instruments = self._list(kind)
        except Exception as e:
            logger.error(f"Watch-list lookup for {kind.value} failed; using defaults: {e}")
            return list(self.defaults.get(kind, []))
        if not instruments:
            logger.info(f"Watch-list for {kind.value} is empty; using defaults")
            return list(self.defaults.get(kind, []))
        return instruments

    def _list(self, kind: InstrumentKind) -> List[Instrument]:
        rows = self.store.select(self.table, {"type": f"eq.{kind.value}"})
        instruments = []
        for row in rows:
            symbol = str(row.get("symbol") or "").strip().upper()
            if kind == InstrumentKind.CRYPTO:
                coin_id = str(row.get("cid") or "").strip()
                if not coin_id:
                    continue
                instruments.append(Instrument.crypto(coin_id, symbol or guess_symbol_from_id(coin_id)))
            elif symbol:
                instruments.append(Instrument.stock(symbol))
        return instruments


__all__ = ["WatchlistStore", "guess_symbol_from_id", "defaults_from_config", "DEFAULT_STOCKS", "DEFAULT_COINS"]
