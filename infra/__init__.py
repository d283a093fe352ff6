"""Infrastructure modules for signalwatch"""

from .alerting import AlertService  # noqa: F401
from .metrics import MetricsRecorder, CycleStats  # noqa: F401
from .command_server import CommandServer  # noqa: F401
from .record_store import RecordStoreClient  # noqa: F401

__all__ = [
	"AlertService",
	"MetricsRecorder",
	"CycleStats",
	"CommandServer",
	"RecordStoreClient",
]
