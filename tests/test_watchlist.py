"""Tests for watch-list storage and per-cycle instrument resolution."""

import pytest

from core.exceptions import StoreError
from core.models import Instrument, InstrumentKind
from core.watchlist import (
    DEFAULT_COINS,
    DEFAULT_STOCKS,
    WatchlistStore,
    defaults_from_config,
    guess_symbol_from_id,
)


class TestWatchlistMutations:
    def test_add_crypto_is_idempotent(self, store, watchlist):
        watchlist.add_crypto("solana", "SOL")
        watchlist.add_crypto("solana", "SOL")

        assert len(store.rows("watchlist")) == 1
        assert watchlist.list_crypto() == [Instrument.crypto("solana", "SOL")]

    def test_add_stock_is_idempotent_and_uppercased(self, store, watchlist):
        watchlist.add_stock("tqqq")
        watchlist.add_stock("TQQQ")

        assert len(store.rows("watchlist")) == 1
        assert watchlist.list_stocks() == [Instrument.stock("TQQQ")]

    def test_same_symbol_in_both_kinds(self, watchlist):
        watchlist.add_stock("LINK")
        watchlist.add_crypto("chainlink", "LINK")

        assert len(watchlist.list_stocks()) == 1
        assert len(watchlist.list_crypto()) == 1

    def test_remove_reports_rows(self, watchlist):
        watchlist.add_crypto("solana", "SOL")
        watchlist.add_stock("TQQQ")

        assert watchlist.remove_crypto("solana") == 1
        assert watchlist.remove_crypto("solana") == 0
        assert watchlist.remove_stock("tqqq") == 1
        assert watchlist.remove_stock("TQQQ") == 0

    def test_list_skips_malformed_rows(self, store, watchlist):
        store.seed("watchlist", {"type": "crypto", "cid": None, "symbol": "BAD"})
        store.seed("watchlist", {"type": "stock", "cid": None, "symbol": ""})
        store.seed("watchlist", {"type": "crypto", "cid": "dogecoin", "symbol": None})

        assert watchlist.list_crypto() == [Instrument.crypto("dogecoin", "DOGE")]
        assert watchlist.list_stocks() == []


class TestResolveInstruments:
    def test_uses_store_entries(self, watchlist):
        watchlist.add_stock("NVDA")
        assert watchlist.resolve_instruments(InstrumentKind.STOCK) == [Instrument.stock("NVDA")]

    def test_falls_back_on_empty(self, watchlist):
        assert watchlist.resolve_instruments(InstrumentKind.CRYPTO) == [Instrument.crypto("bitcoin", "BTC")]
        assert watchlist.resolve_instruments(InstrumentKind.STOCK) == [Instrument.stock("SOXL")]

    def test_falls_back_on_store_error(self, store, watchlist):
        watchlist.add_crypto("solana", "SOL")
        store.fail("select", StoreError("GET watchlist", ConnectionError("down")))

        assert watchlist.resolve_instruments(InstrumentKind.CRYPTO) == [Instrument.crypto("bitcoin", "BTC")]

    def test_not_cached_between_calls(self, store, watchlist):
        assert watchlist.resolve_instruments(InstrumentKind.STOCK) == [Instrument.stock("SOXL")]
        watchlist.add_stock("AMD")
        assert watchlist.resolve_instruments(InstrumentKind.STOCK) == [Instrument.stock("AMD")]

    def test_fallback_is_a_copy(self, watchlist):
        first = watchlist.resolve_instruments(InstrumentKind.STOCK)
        first.append(Instrument.stock("XXX"))
        assert watchlist.resolve_instruments(InstrumentKind.STOCK) == [Instrument.stock("SOXL")]

    def test_builtin_defaults(self, store):
        resolver = WatchlistStore(store)
        assert resolver.resolve_instruments(InstrumentKind.STOCK) == DEFAULT_STOCKS
        assert resolver.resolve_instruments(InstrumentKind.CRYPTO) == DEFAULT_COINS


class TestDefaultsFromConfig:
    def test_overrides(self):
        defaults = defaults_from_config({
            "default_stocks": ["spy"],
            "default_coins": [{"id": "solana"}, {"id": "cardano", "symbol": "ada"}],
        })
        assert defaults[InstrumentKind.STOCK] == [Instrument.stock("SPY")]
        assert defaults[InstrumentKind.CRYPTO] == [
            Instrument.crypto("solana", "SOL"),
            Instrument.crypto("cardano", "ADA"),
        ]

    def test_missing_sections_keep_builtins(self):
        defaults = defaults_from_config(None)
        assert defaults[InstrumentKind.STOCK] == DEFAULT_STOCKS
        assert defaults[InstrumentKind.CRYPTO] == DEFAULT_COINS


class TestInstrument:
    def test_identity(self):
        assert Instrument.crypto("bitcoin", "btc").identity == (InstrumentKind.CRYPTO, "bitcoin")
        assert Instrument.stock("soxl").identity == (InstrumentKind.STOCK, "SOXL")

    def test_label(self):
        assert Instrument.crypto("shiba-inu", "SHIB").label == "SHIB (shiba-inu)"
        assert Instrument.stock("SOXL").label == "SOXL"

    @pytest.mark.parametrize("coin_id,expected", [("bitcoin", "BTC"), ("Solana", "SOL"), ("pepe", "PEPE")])
    def test_guess_symbol(self, coin_id, expected):
        assert guess_symbol_from_id(coin_id) == expected
