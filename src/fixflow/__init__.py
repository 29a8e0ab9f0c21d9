"""fixflow: technical-debt tracker with a locked JSON store and a marker scanner."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("fixflow")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from fixflow.lifecycle import DebtFilter, DebtLifecycleManager
from fixflow.models import DebtEntry, DebtPatch, StorageDocument
from fixflow.scanner import MarkerScanner, ScanResult
from fixflow.storage import StorageEngine

__all__ = [
    "DebtEntry",
    "DebtFilter",
    "DebtLifecycleManager",
    "DebtPatch",
    "MarkerScanner",
    "ScanResult",
    "StorageDocument",
    "StorageEngine",
    "__version__",
]
