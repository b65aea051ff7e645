"""
Scan Acquisition Adapters

Adapters for reading vehicle and part identifiers at a station.
"""

from .base import AdapterConfig, BaseScanAdapter, ScanResult
from .mock import MockScanAdapter

__all__ = [
    "AdapterConfig",
    "BaseScanAdapter",
    "ScanResult",
    "MockScanAdapter",
]
