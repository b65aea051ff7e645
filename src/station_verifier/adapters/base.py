"""
Base Scan Adapter Interface

All scan acquisition adapters must implement this interface.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Union

from ..catalog import ReferenceData
from ..main import (
    NotFoundReason,
    Part,
    ScanFailureReason,
    ScanKind,
    ScanSource,
    Vehicle,
)

logger = logging.getLogger(__name__)


@dataclass
class AdapterConfig:
    """Configuration for an adapter"""
    name: str
    latency_ms: int = 1500
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ScanResult:
    """
    Result of one acquisition attempt.

    Exactly one of ``identifier`` (success), ``failure_reason`` (the physical
    read failed) or ``not_found_reason`` (manual entry did not resolve) is set.
    """
    kind: ScanKind
    source: ScanSource
    identifier: Optional[str] = None
    failure_reason: Optional[ScanFailureReason] = None
    not_found_reason: Optional[NotFoundReason] = None
    record: Optional[Union[Vehicle, Part]] = None
    duration_ms: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.identifier is not None and self.failure_reason is None and self.not_found_reason is None

    @classmethod
    def read(cls, kind: ScanKind, identifier: str, **kwargs) -> "ScanResult":
        return cls(kind=kind, source=ScanSource.AUTOMATED, identifier=identifier, **kwargs)

    @classmethod
    def failed(cls, kind: ScanKind, reason: ScanFailureReason, **kwargs) -> "ScanResult":
        return cls(kind=kind, source=ScanSource.AUTOMATED, failure_reason=reason, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "kind": self.kind.value,
            "source": self.source.value,
            "success": self.success,
            "identifier": self.identifier,
            "failure_reason": self.failure_reason.value if self.failure_reason else None,
            "not_found_reason": self.not_found_reason.value if self.not_found_reason else None,
            "duration_ms": self.duration_ms,
            "metadata": self.metadata,
        }


class BaseScanAdapter(ABC):
    """
    Base class for all scan acquisition adapters.

    Each adapter wraps one way of reading identifiers off vehicles and parts
    (camera, handheld scanner, simulation) behind ``acquire``. Manual text
    entry is shared: it never fails physically, only by not resolving
    against the reference data.
    """

    def __init__(self, reference: ReferenceData, config: Optional[AdapterConfig] = None):
        self.reference = reference
        self.config = config or AdapterConfig(name="base")
        self._is_running = False
        self._start_time: Optional[datetime] = None

    @property
    def name(self) -> str:
        return self.config.name

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the adapter (open devices, warm up decoders, etc.)"""
        pass

    @abstractmethod
    async def acquire(self, kind: ScanKind) -> ScanResult:
        """
        Read an identifier from the physical world.

        Args:
            kind: Whether a vehicle VIN or a part label is being read

        Returns:
            ScanResult with the identifier, or a failure reason when the read
            could not be decoded. Unreadable reads are expected results, not
            exceptions.
        """
        pass

    @abstractmethod
    async def cancel(self) -> bool:
        """
        Cancel an in-flight acquisition.

        Returns True if an acquisition was cancelled.
        """
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Check adapter health"""
        pass

    async def acquire_manual(self, kind: ScanKind, raw_text: str) -> ScanResult:
        """
        Accept an identifier typed by the operator.

        The identifier must resolve in the reference data; the resolved
        record is returned with the result.
        """
        identifier = (raw_text or "").strip()
        if not identifier:
            return ScanResult(
                kind=kind,
                source=ScanSource.MANUAL,
                not_found_reason=NotFoundReason.EMPTY_INPUT,
            )

        if kind == ScanKind.VEHICLE:
            record = self.reference.resolve_vehicle(identifier)
            missing = NotFoundReason.UNKNOWN_VEHICLE
        else:
            record = self.reference.resolve_part(identifier)
            missing = NotFoundReason.UNKNOWN_PART

        if record is None:
            logger.info(f"Manual {kind.value} entry not found: {identifier}")
            return ScanResult(
                kind=kind,
                source=ScanSource.MANUAL,
                not_found_reason=missing,
                metadata={"entered": identifier},
            )

        return ScanResult(
            kind=kind,
            source=ScanSource.MANUAL,
            identifier=identifier,
            record=record,
        )

    async def shutdown(self) -> None:
        """Clean up resources"""
        self._is_running = False
        logger.info(f"Adapter {self.name} shut down")

    def _track_duration(self, result: ScanResult) -> None:
        if self._start_time:
            delta = datetime.now() - self._start_time
            result.duration_ms = int(delta.total_seconds() * 1000)
