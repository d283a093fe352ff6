"""
Pytest configuration and fixtures for signalwatch tests.

This conftest.py provides shared fixtures for all tests.
"""
import pytest

from analytics.trade_log import TradeLog
from core.models import Instrument, InstrumentKind
from core.settings import ScannerConfig, SettingsStore
from core.watchlist import WatchlistStore
from tests.helpers.store_stubs import FakeRecordStore, RecordingAlerts, StubProvider


@pytest.fixture(autouse=True)
def clear_store_env(monkeypatch):
    """Keep real credentials from leaking into tests."""
    for name in (
        "SUPABASE_URL",
        "SUPABASE_KEY",
        "DISCORD_WEBHOOK_URL",
        "ALPHA_VANTAGE_API_KEY",
        "OWNER_IDS",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def store():
    return FakeRecordStore()


@pytest.fixture
def trade_log(store):
    return TradeLog(store)


@pytest.fixture
def settings_store(store):
    return SettingsStore(store)


@pytest.fixture
def watchlist(store):
    return WatchlistStore(store, defaults={
        InstrumentKind.STOCK: [Instrument.stock("SOXL")],
        InstrumentKind.CRYPTO: [Instrument.crypto("bitcoin", "BTC")],
    })


@pytest.fixture
def alerts():
    return RecordingAlerts()


@pytest.fixture
def fast_config():
    """No jitter, no inter-call delay."""
    return ScannerConfig(inter_call_delay_ms=0, startup_jitter_seconds=0)


@pytest.fixture
def stock_provider():
    return StubProvider()


@pytest.fixture
def crypto_provider():
    return StubProvider()
