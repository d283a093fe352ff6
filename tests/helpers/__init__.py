"""Test helpers for signalwatch test suite"""

from tests.helpers.store_stubs import (
    FakeRecordStore,
    StubProvider,
    RecordingAlerts,
    rising_series,
    falling_series,
    flat_series,
)

__all__ = [
    "FakeRecordStore",
    "StubProvider",
    "RecordingAlerts",
    "rising_series",
    "falling_series",
    "flat_series",
]
