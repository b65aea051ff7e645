"""
Station Verifier

Part/vehicle compatibility gate for assembly-line stations. The operator
scans a vehicle, then a part; the engine decides whether the part may be
installed and raises alerts when a label cannot be read.

This is an in-process library: rendering, hardware access and history
storage belong to the consumers of its events.
"""

__version__ = "1.0.0"

# Primary exports - Verification Engine
from .engine import StepError, StepResult, VerificationEngine

# Session state
from .session import Idle, ScanSession, Stage, VehicleBound, Verified

# Types and configuration
from .main import (
    AlertEvent,
    AlertSeverity,
    CompatibilityTriple,
    ConfigError,
    NotFoundReason,
    OutcomeTag,
    Part,
    ReferenceDataError,
    ScanFailureReason,
    ScanKind,
    ScanSource,
    StationConfig,
    StationVerifierError,
    Vehicle,
    VerificationOutcome,
)

# Collaborators
from .adapters import AdapterConfig, BaseScanAdapter, MockScanAdapter, ScanResult
from .catalog import PartCatalog, ReferenceData, VehicleRegistry
from .sinks import CompositeSink, EventSink, HttpEventSink, LoggingSink, MemorySink
from .verification import classify
from .metrics import MetricsCollector, StationStatus
from .logging_config import setup_logging

__all__ = [
    # Engine
    "VerificationEngine",
    "StepError",
    "StepResult",
    # Session
    "ScanSession",
    "Stage",
    "Idle",
    "VehicleBound",
    "Verified",
    # Types
    "AlertEvent",
    "AlertSeverity",
    "CompatibilityTriple",
    "NotFoundReason",
    "OutcomeTag",
    "Part",
    "ScanFailureReason",
    "ScanKind",
    "ScanSource",
    "Vehicle",
    "VerificationOutcome",
    # Config and errors
    "StationConfig",
    "StationVerifierError",
    "ConfigError",
    "ReferenceDataError",
    # Adapters
    "AdapterConfig",
    "BaseScanAdapter",
    "MockScanAdapter",
    "ScanResult",
    # Reference data
    "PartCatalog",
    "ReferenceData",
    "VehicleRegistry",
    # Sinks
    "EventSink",
    "LoggingSink",
    "MemorySink",
    "CompositeSink",
    "HttpEventSink",
    # Classification
    "classify",
    # Monitoring
    "MetricsCollector",
    "StationStatus",
    "setup_logging",
    # Meta
    "__version__",
]
