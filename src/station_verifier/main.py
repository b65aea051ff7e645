"""
Configuration and Types for the Station Verifier

Vehicles, parts, verification outcomes and alerts, plus the per-station
configuration that drives the verification engine.
"""

import os
import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class StationVerifierError(Exception):
    """Base exception for station verifier errors"""
    pass


class ConfigError(StationVerifierError):
    """Invalid station configuration"""
    pass


class ReferenceDataError(StationVerifierError):
    """Invalid vehicle registry or part catalog data"""
    pass


class ScanKind(Enum):
    """What the operator is scanning"""
    VEHICLE = "vehicle"
    PART = "part"


class ScanSource(Enum):
    """How an identifier was obtained"""
    AUTOMATED = "automated"
    MANUAL = "manual"


class ScanFailureReason(Enum):
    """Why an automated read produced no identifier"""
    UNREADABLE = "unreadable"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class NotFoundReason(Enum):
    """Why an identifier could not be resolved"""
    EMPTY_INPUT = "empty_input"
    UNKNOWN_VEHICLE = "unknown_vehicle"
    UNKNOWN_PART = "unknown_part"


class OutcomeTag(Enum):
    """Classification of a part against the bound vehicle"""
    MATCH = "match"
    MISMATCH = "mismatch"
    SCAN_FAILURE = "scan_failure"


class AlertSeverity(Enum):
    """Alert severity levels"""
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


TRIPLE_FIELDS = ("model", "variant", "color")


@dataclass(frozen=True)
class CompatibilityTriple:
    """The (model, variant, color) configuration a part is built for"""
    model: str
    variant: str
    color: str

    def diverging_fields(self, other: "CompatibilityTriple") -> Tuple[str, ...]:
        """Names of the fields that differ from ``other``, in model/variant/color order"""
        return tuple(
            name for name in TRIPLE_FIELDS
            if getattr(self, name) != getattr(other, name)
        )

    def to_dict(self) -> Dict[str, str]:
        return {"model": self.model, "variant": self.variant, "color": self.color}


@dataclass(frozen=True)
class Vehicle:
    """A vehicle as registered by VIN"""
    vin: str
    model: str
    variant: str
    color: str

    @property
    def triple(self) -> CompatibilityTriple:
        return CompatibilityTriple(self.model, self.variant, self.color)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vin": self.vin,
            "model": self.model,
            "variant": self.variant,
            "color": self.color,
        }


@dataclass(frozen=True)
class Part:
    """A catalog part and the vehicle configuration it is built for"""
    part_id: str
    name: str
    expected_model: str
    expected_variant: str
    expected_color: str

    @property
    def expected(self) -> CompatibilityTriple:
        return CompatibilityTriple(
            self.expected_model,
            self.expected_variant,
            self.expected_color,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "part_id": self.part_id,
            "name": self.name,
            "expected_model": self.expected_model,
            "expected_variant": self.expected_variant,
            "expected_color": self.expected_color,
        }


@dataclass(frozen=True)
class VerificationOutcome:
    """
    Result of checking one part against the bound vehicle.

    Superseded by the next scan, never mutated. ``part`` is absent for a
    scan failure whose identifier could not be read; ``scanned_as`` is only
    set for MATCH and MISMATCH.
    """
    tag: OutcomeTag
    vehicle: Vehicle
    station_id: str
    part: Optional[Part] = None
    part_id: Optional[str] = None
    scanned_as: Optional[CompatibilityTriple] = None
    diverging_fields: Tuple[str, ...] = ()
    source: ScanSource = ScanSource.AUTOMATED
    failure_reason: Optional[ScanFailureReason] = None
    outcome_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def is_match(self) -> bool:
        return self.tag == OutcomeTag.MATCH

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            "outcome_id": self.outcome_id,
            "tag": self.tag.value,
            "station_id": self.station_id,
            "vehicle": self.vehicle.to_dict(),
            "part": self.part.to_dict() if self.part else None,
            "part_id": self.part_id,
            "scanned_as": self.scanned_as.to_dict() if self.scanned_as else None,
            "diverging_fields": list(self.diverging_fields),
            "source": self.source.value,
            "failure_reason": self.failure_reason.value if self.failure_reason else None,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class AlertEvent:
    """Side-channel notification for the monitoring collaborator"""
    severity: AlertSeverity
    title: str
    message: str
    station_id: str
    vin: Optional[str] = None
    part_id: Optional[str] = None
    operator: Optional[str] = None
    alert_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alert_id": self.alert_id,
            "severity": self.severity.value,
            "title": self.title,
            "message": self.message,
            "station_id": self.station_id,
            "vin": self.vin,
            "part_id": self.part_id,
            "operator": self.operator,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class StationConfig:
    """
    Configuration for one station's verification engine.

    Controls alert policy, scan timing and where events are delivered.
    """
    # Identity
    station_id: str = "ST001"
    station_name: str = "Assembly Station"
    operator: Optional[str] = None

    # Alert policy
    emit_alert_on_mismatch: bool = False

    # Acquisition
    scan_timeout_ms: int = 10000        # 10 seconds
    scan_latency_ms: int = 1500         # simulated camera/decode time
    scan_failure_rate: float = 1 / 3    # simulated unreadable reads

    # Event delivery
    alert_endpoint_url: Optional[str] = None
    outcome_endpoint_url: Optional[str] = None
    http_timeout_ms: int = 5000

    # Reference data
    reference_data_path: Optional[str] = None

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    def __post_init__(self):
        if not self.station_id:
            raise ConfigError("station_id must not be empty")
        if self.scan_timeout_ms <= 0:
            raise ConfigError(f"scan_timeout_ms must be positive, got {self.scan_timeout_ms}")
        if self.scan_latency_ms < 0:
            raise ConfigError(f"scan_latency_ms must not be negative, got {self.scan_latency_ms}")
        if not 0.0 <= self.scan_failure_rate <= 1.0:
            raise ConfigError(
                f"scan_failure_rate must be between 0 and 1, got {self.scan_failure_rate}"
            )

    @classmethod
    def from_yaml(cls, path: str) -> "StationConfig":
        """Load config from YAML file"""
        import yaml

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ConfigError(f"Station config must be a mapping: {path}")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown station config keys: {unknown}")

        return cls(**data)

    @classmethod
    def from_env(cls) -> "StationConfig":
        """Load config from environment variables"""
        return cls(
            station_id=os.getenv("STATION_ID", "ST001"),
            station_name=os.getenv("STATION_NAME", "Assembly Station"),
            operator=os.getenv("STATION_OPERATOR") or None,
            emit_alert_on_mismatch=os.getenv("STATION_ALERT_ON_MISMATCH", "false").lower() == "true",
            scan_timeout_ms=int(os.getenv("STATION_SCAN_TIMEOUT_MS", "10000")),
            scan_latency_ms=int(os.getenv("STATION_SCAN_LATENCY_MS", "1500")),
            scan_failure_rate=float(os.getenv("STATION_SCAN_FAILURE_RATE", str(1 / 3))),
            alert_endpoint_url=os.getenv("STATION_ALERT_URL") or None,
            outcome_endpoint_url=os.getenv("STATION_OUTCOME_URL") or None,
            http_timeout_ms=int(os.getenv("STATION_HTTP_TIMEOUT_MS", "5000")),
            reference_data_path=os.getenv("STATION_REFERENCE_DATA") or None,
            log_level=os.getenv("STATION_LOG_LEVEL", "INFO"),
            log_file=os.getenv("STATION_LOG_FILE") or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def parse_part_id(part_id: str) -> Optional[Dict[str, str]]:
    """
    Split a conventional part identifier into its segments.

    ``<category>-<model>-<variant>-<color>-<sequence>``. Returns None when the
    identifier does not follow the convention; part ids stay opaque keys for
    lookups either way.
    """
    segments: List[str] = part_id.strip().split("-")
    if len(segments) != 5 or not all(segments):
        return None
    category, model, variant, color, sequence = segments
    return {
        "category": category,
        "model": model,
        "variant": variant,
        "color": color,
        "sequence": sequence,
    }
