"""
Verification Workflow Engine

Owns one station's scan session and moves it through the two-stage
workflow: bind a vehicle, then verify parts against it.

The flow:
  Idle --scan_vehicle--> VehicleBound --scan_part--> Verified(match|mismatch|scan_failure)
  Verified(match) --scan_next_part--> VehicleBound (same vehicle)
  Verified(scan_failure) --retry_scan_part | enter_part--> Verified(*)
  any --reset--> Idle

Every operation returns a ``StepResult``. Workflow errors (missing vehicle,
unknown identifier, illegal transition, cancelled read) are values on the
result and never change the session.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .adapters import BaseScanAdapter, MockScanAdapter, ScanResult
from .catalog import ReferenceData
from .logging_config import setup_logging
from .main import (
    AlertEvent,
    AlertSeverity,
    NotFoundReason,
    OutcomeTag,
    ScanFailureReason,
    ScanKind,
    StationConfig,
    Vehicle,
    VerificationOutcome,
)
from .metrics import MetricsCollector, StationStatus
from .session import ScanSession, Stage
from .sinks import CompositeSink, EventSink, HttpEventSink, LoggingSink
from .verification import CompatibilityVerifier

logger = logging.getLogger(__name__)


class StepError(Enum):
    """Why an engine operation did not advance the session"""
    PRECURSOR_MISSING = "precursor_missing"
    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"
    SCAN_FAILED = "scan_failed"
    CANCELLED = "cancelled"


@dataclass
class StepResult:
    """
    Result of one engine operation.

    ``recommended_action`` is the prompt for the operator or supervisor
    (a recommendation, not a command).
    """
    ok: bool
    stage: Stage
    reason: str
    outcome: Optional[VerificationOutcome] = None
    alert: Optional[AlertEvent] = None
    error: Optional[StepError] = None
    vehicle: Optional[Vehicle] = None
    failure_reason: Optional[ScanFailureReason] = None
    not_found_reason: Optional[NotFoundReason] = None
    recommended_action: str = "none"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "stage": self.stage.value,
            "reason": self.reason,
            "outcome": self.outcome.to_dict() if self.outcome else None,
            "alert": self.alert.to_dict() if self.alert else None,
            "error": self.error.value if self.error else None,
            "vehicle": self.vehicle.to_dict() if self.vehicle else None,
            "failure_reason": self.failure_reason.value if self.failure_reason else None,
            "not_found_reason": self.not_found_reason.value if self.not_found_reason else None,
            "recommended_action": self.recommended_action,
        }


_OUTCOME_ACTIONS = {
    OutcomeTag.MATCH: "scan_next_part",
    OutcomeTag.MISMATCH: "block_installation",
    OutcomeTag.SCAN_FAILURE: "retry_or_manual_entry",
}


class VerificationEngine:
    """
    Two-stage scan workflow for a single station.

    All transitions are serialized by one lock; acquisition is the only
    suspending step and completes before any state change, so a cancelled
    or timed-out read leaves the session where it was. Part operations are
    checked for a bound vehicle on arrival as well as under the lock, so one
    issued during a vehicle read is rejected instead of waiting its turn.
    """

    def __init__(
        self,
        adapter: BaseScanAdapter,
        reference: ReferenceData,
        config: Optional[StationConfig] = None,
        alert_sink: Optional[EventSink] = None,
        outcome_sink: Optional[EventSink] = None,
    ):
        self.config = config or StationConfig()
        self.adapter = adapter
        self.reference = reference
        self.alert_sink = alert_sink or LoggingSink()
        self.outcome_sink = outcome_sink or LoggingSink()
        self.metrics = MetricsCollector()

        self._session = ScanSession()
        self._verifier = CompatibilityVerifier(self.config.station_id)
        self._lock = asyncio.Lock()
        self._inflight: Optional[asyncio.Future] = None
        self._cancel_requested = False
        self._started = False
        self._log = logging.LoggerAdapter(logger, {"station_id": self.station_id})

        self._log.info(f"Verification engine initialized ({adapter.name} adapter)")

    @classmethod
    def from_config(
        cls,
        config: StationConfig,
        adapter: Optional[BaseScanAdapter] = None,
        reference: Optional[ReferenceData] = None,
        configure_logging: bool = True,
    ) -> "VerificationEngine":
        """
        Wire reference data, a mock adapter and sinks from station config.

        Also applies the configured log level and log file unless
        ``configure_logging`` is False (embedding applications that own
        their logging setup).
        """
        if configure_logging:
            setup_logging(config.log_level, config.log_file, station_id=config.station_id)

        if reference is None:
            if config.reference_data_path:
                reference = ReferenceData.from_yaml(config.reference_data_path)
            else:
                reference = ReferenceData.demo()

        if adapter is None:
            adapter = MockScanAdapter(
                reference,
                failure_rate=config.scan_failure_rate,
                latency_ms=config.scan_latency_ms,
            )

        alert_sink: EventSink = LoggingSink()
        if config.alert_endpoint_url:
            alert_sink = CompositeSink(alert_sink, HttpEventSink(
                config.alert_endpoint_url,
                event_name="station.alert",
                timeout_ms=config.http_timeout_ms,
            ))

        outcome_sink: EventSink = LoggingSink()
        if config.outcome_endpoint_url:
            outcome_sink = CompositeSink(outcome_sink, HttpEventSink(
                config.outcome_endpoint_url,
                event_name="station.verification",
                timeout_ms=config.http_timeout_ms,
            ))

        return cls(adapter, reference, config, alert_sink, outcome_sink)

    @property
    def station_id(self) -> str:
        return self.config.station_id

    @property
    def session(self) -> ScanSession:
        return self._session

    @property
    def is_scanning(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    # =========================================================================
    # Vehicle stage
    # =========================================================================

    async def scan_vehicle(self) -> StepResult:
        """Read a VIN with the adapter and bind the vehicle"""
        async with self._lock:
            rejected = self._require_idle()
            if rejected:
                return rejected

            scan = await self._acquire(ScanKind.VEHICLE)
            if scan.failure_reason == ScanFailureReason.CANCELLED:
                return self._cancelled()
            if not scan.success:
                self.metrics.increment("vehicle_scan_failures")
                self._log.info(f"Vehicle scan failed: {scan.failure_reason.value}")
                return StepResult(
                    ok=False,
                    stage=self._session.stage,
                    reason=f"Vehicle scan failed ({scan.failure_reason.value})",
                    error=StepError.SCAN_FAILED,
                    failure_reason=scan.failure_reason,
                    recommended_action="retry_or_manual_entry",
                )

            vehicle = self.reference.resolve_vehicle(scan.identifier)
            if vehicle is None:
                return self._not_found(scan.identifier, NotFoundReason.UNKNOWN_VEHICLE)
            return self._bind(vehicle)

    async def enter_vehicle(self, vin: str) -> StepResult:
        """Bind a vehicle from a VIN typed by the operator"""
        async with self._lock:
            rejected = self._require_idle()
            if rejected:
                return rejected

            self.metrics.increment("manual_entries")
            scan = await self.adapter.acquire_manual(ScanKind.VEHICLE, vin)
            if not scan.success:
                return self._not_found(vin, scan.not_found_reason)
            return self._bind(scan.record)

    # =========================================================================
    # Part stage
    # =========================================================================

    async def scan_part(self) -> StepResult:
        """Read a part label with the adapter and classify it"""
        # Rejected on arrival, never queued behind an in-flight vehicle read
        rejected = self._require_vehicle()
        if rejected:
            return rejected

        async with self._lock:
            rejected = self._require_vehicle()
            if rejected:
                return rejected
            if self._session.stage != Stage.VEHICLE_BOUND:
                return self._invalid(
                    "Part already verified; scan next part, retry or reset first",
                )

            scan = await self._acquire(ScanKind.PART)
            if scan.failure_reason == ScanFailureReason.CANCELLED:
                return self._cancelled()
            return await self._process_part_read(scan)

    async def retry_scan_part(self) -> StepResult:
        """Re-read a part label after a scan failure"""
        rejected = self._require_vehicle()
        if rejected:
            return rejected

        async with self._lock:
            rejected = self._require_vehicle()
            if rejected:
                return rejected
            if not self._session.is_verified(OutcomeTag.SCAN_FAILURE):
                return self._invalid("Retry is only available after a scan failure")

            scan = await self._acquire(ScanKind.PART)
            if scan.failure_reason == ScanFailureReason.CANCELLED:
                return self._cancelled()

            self.metrics.increment("retries")
            self._session.release_outcome()
            self._log.info(f"Retrying part scan for {self._session.vehicle.vin}")
            return await self._process_part_read(scan)

    async def enter_part(self, part_id: str) -> StepResult:
        """
        Classify a part identifier typed by the operator.

        Bypasses the physical read, so it never yields a scan failure. An
        identifier missing from the catalog leaves the session untouched.
        """
        rejected = self._require_vehicle()
        if rejected:
            return rejected

        async with self._lock:
            rejected = self._require_vehicle()
            if rejected:
                return rejected
            if self._session.stage == Stage.VERIFIED and not self._session.is_verified(OutcomeTag.SCAN_FAILURE):
                return self._invalid("Manual entry is only available before verification or after a scan failure")

            self.metrics.increment("manual_entries")
            scan = await self.adapter.acquire_manual(ScanKind.PART, part_id)
            if not scan.success:
                return self._not_found(part_id, scan.not_found_reason)

            outcome = self._verifier.verify(self._session.vehicle, scan.record, source=scan.source)
            return await self._record(outcome)

    async def scan_next_part(self) -> StepResult:
        """Keep the vehicle and start a new part cycle after a match"""
        rejected = self._require_vehicle()
        if rejected:
            return rejected

        async with self._lock:
            rejected = self._require_vehicle()
            if rejected:
                return rejected
            if not self._session.is_verified(OutcomeTag.MATCH):
                return self._invalid("Next part is only available after a match")

            self._session.release_outcome()
            return StepResult(
                ok=True,
                stage=self._session.stage,
                reason=f"Ready for next part on {self._session.vehicle.vin}",
                vehicle=self._session.vehicle,
                recommended_action="scan_part",
            )

    async def block_installation(self) -> StepResult:
        """Block installation of a mismatched part and notify the supervisor"""
        rejected = self._require_vehicle()
        if rejected:
            return rejected

        async with self._lock:
            rejected = self._require_vehicle()
            if rejected:
                return rejected
            if not self._session.is_verified(OutcomeTag.MISMATCH):
                return self._invalid("Only a mismatched part can be blocked")
            if self._session.installation_blocked:
                return self._invalid("Installation already blocked")

            outcome = self._session.outcome
            self._session.block_installation()
            self.metrics.increment("installations_blocked")

            alert = AlertEvent(
                severity=AlertSeverity.WARNING,
                title="Installation Blocked",
                message=(
                    f"Installation blocked for part {outcome.part_id} on "
                    f"{outcome.vehicle.vin}. Supervisor notified."
                ),
                station_id=self.station_id,
                vin=outcome.vehicle.vin,
                part_id=outcome.part_id,
                operator=self.config.operator,
            )
            await self._emit_alert(alert)

            return StepResult(
                ok=True,
                stage=self._session.stage,
                reason=alert.message,
                outcome=outcome,
                alert=alert,
                vehicle=outcome.vehicle,
                recommended_action="reset",
            )

    # =========================================================================
    # Session control
    # =========================================================================

    async def reset(self) -> StepResult:
        """Discard the vehicle and any outcome. Legal from every stage."""
        async with self._lock:
            previous = self._session.stage
            self._session.reset()
            self.metrics.increment("resets")
            self._log.info(f"Session reset from {previous.value}")
            return StepResult(
                ok=True,
                stage=self._session.stage,
                reason="Session reset",
                recommended_action="scan_vehicle",
            )

    async def cancel_scan(self) -> bool:
        """
        Cancel the in-flight acquisition, if any.

        The interrupted operation returns a CANCELLED result and the session
        keeps its pre-call state.
        """
        if not self.is_scanning:
            return False
        self._cancel_requested = True
        await self.adapter.cancel()
        self._inflight.cancel()
        self._log.info("Scan cancelled by operator")
        return True

    async def start(self) -> None:
        """Initialize the adapter. Runs on the first read if not awaited earlier."""
        if self._started:
            return
        await self.adapter.initialize()
        self._started = True
        self._log.info(f"Adapter {self.adapter.name} started")

    async def aclose(self) -> None:
        """Shut down the adapter and flush sinks"""
        await self.cancel_scan()
        if self._started:
            await self.adapter.shutdown()
            self._started = False
        await self.alert_sink.aclose()
        await self.outcome_sink.aclose()

    # =========================================================================
    # Monitoring
    # =========================================================================

    def get_status(self) -> StationStatus:
        session = self._session
        outcome = session.outcome
        vehicle = session.vehicle

        if outcome is not None and outcome.tag != OutcomeTag.MATCH:
            status = "error"
        elif vehicle is not None:
            status = "active"
        else:
            status = "waiting"

        return StationStatus(
            station_id=self.station_id,
            station_name=self.config.station_name,
            operator=self.config.operator,
            stage=session.stage.value,
            status=status,
            vin=vehicle.vin if vehicle else None,
            last_part=outcome.part_id if outcome else None,
            last_outcome=outcome.tag.value if outcome else None,
            installation_blocked=session.installation_blocked,
            alerts=self.metrics.counters["alerts_emitted"],
        )

    def get_stats(self) -> Dict[str, Any]:
        return {
            "station_id": self.station_id,
            "stage": self._session.stage.value,
            **self.metrics.get_summary(),
        }

    # =========================================================================
    # Internals
    # =========================================================================

    async def _acquire(self, kind: ScanKind) -> ScanResult:
        """Run one bounded, cancellable adapter read"""
        await self.start()
        self._cancel_requested = False
        self._inflight = asyncio.ensure_future(self.adapter.acquire(kind))
        start_time = time.monotonic()
        try:
            return await asyncio.wait_for(
                self._inflight,
                timeout=self.config.scan_timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            self._log.warning(
                f"{kind.value} scan timed out after {self.config.scan_timeout_ms}ms"
            )
            return ScanResult.failed(kind, ScanFailureReason.TIMEOUT)
        except asyncio.CancelledError:
            if not self._cancel_requested:
                raise
            self.metrics.increment("cancelled_scans")
            return ScanResult.failed(kind, ScanFailureReason.CANCELLED)
        finally:
            self.metrics.acquisition_timed(int((time.monotonic() - start_time) * 1000))
            self._inflight = None
            self._cancel_requested = False

    async def _process_part_read(self, scan: ScanResult) -> StepResult:
        vehicle = self._session.vehicle

        if not scan.success:
            outcome = self._verifier.scan_failure(vehicle, scan.failure_reason)
            return await self._record(outcome)

        part = self.reference.resolve_part(scan.identifier)
        if part is None:
            return self._not_found(scan.identifier, NotFoundReason.UNKNOWN_PART)

        outcome = self._verifier.verify(vehicle, part, source=scan.source)
        return await self._record(outcome)

    async def _record(self, outcome: VerificationOutcome) -> StepResult:
        """Store the outcome, publish it and raise any alert it calls for"""
        self._session.record_outcome(outcome)
        self.metrics.outcome_recorded(outcome.tag)
        self._log.info(
            f"{outcome.tag.value.upper()} "
            f"vin={outcome.vehicle.vin} part={outcome.part_id or '-'} ({outcome.source.value})"
        )

        await self._publish_outcome(outcome)

        alert = self._alert_for(outcome)
        if alert is not None:
            await self._emit_alert(alert)

        if outcome.tag == OutcomeTag.MISMATCH:
            reason = f"Part mismatch on {', '.join(outcome.diverging_fields)}"
        elif outcome.tag == OutcomeTag.SCAN_FAILURE:
            reason = f"Part scan failed ({outcome.failure_reason.value})"
        else:
            reason = f"Part {outcome.part_id} verified"

        return StepResult(
            ok=True,
            stage=self._session.stage,
            reason=reason,
            outcome=outcome,
            alert=alert,
            vehicle=outcome.vehicle,
            failure_reason=outcome.failure_reason,
            recommended_action=_OUTCOME_ACTIONS[outcome.tag],
        )

    def _alert_for(self, outcome: VerificationOutcome) -> Optional[AlertEvent]:
        if outcome.tag == OutcomeTag.SCAN_FAILURE:
            if outcome.part_id:
                message = f"Barcode scanning failed for part {outcome.part_id}"
            else:
                message = "Unable to read part barcode - manual verification required"
            return AlertEvent(
                severity=AlertSeverity.CRITICAL,
                title="Barcode Read Failed",
                message=message,
                station_id=self.station_id,
                vin=outcome.vehicle.vin,
                part_id=outcome.part_id,
                operator=self.config.operator,
            )

        if outcome.tag == OutcomeTag.MISMATCH and self.config.emit_alert_on_mismatch:
            expected = outcome.vehicle.triple
            details = "; ".join(
                f"{name} {getattr(outcome.scanned_as, name)} scanned for {getattr(expected, name)}"
                for name in outcome.diverging_fields
            )
            return AlertEvent(
                severity=AlertSeverity.CRITICAL,
                title="Part Mismatch Detected",
                message=f"{outcome.part.name} ({outcome.part_id}) mismatch - {details}",
                station_id=self.station_id,
                vin=outcome.vehicle.vin,
                part_id=outcome.part_id,
                operator=self.config.operator,
            )

        return None

    async def _emit_alert(self, alert: AlertEvent) -> None:
        self.metrics.increment("alerts_emitted")
        try:
            await self.alert_sink.publish(alert)
        except Exception as e:
            self._log.error(f"Alert sink error: {e}")

    async def _publish_outcome(self, outcome: VerificationOutcome) -> None:
        try:
            await self.outcome_sink.publish(outcome)
        except Exception as e:
            self._log.error(f"Outcome sink error: {e}")

    def _bind(self, vehicle: Vehicle) -> StepResult:
        self._session.bind_vehicle(vehicle)
        self.metrics.increment("vehicles_bound")
        self._log.info(
            f"Vehicle bound: {vehicle.vin} "
            f"({vehicle.model} {vehicle.variant}, {vehicle.color})"
        )
        return StepResult(
            ok=True,
            stage=self._session.stage,
            reason=f"Vehicle {vehicle.vin} bound",
            vehicle=vehicle,
            recommended_action="scan_part",
        )

    def _require_idle(self) -> Optional[StepResult]:
        if self._session.vehicle is not None:
            return self._invalid(
                f"Vehicle {self._session.vehicle.vin} already bound; reset to scan another vehicle",
            )
        return None

    def _require_vehicle(self) -> Optional[StepResult]:
        if self._session.vehicle is None:
            self._log.debug("Part operation rejected: no vehicle bound")
            return StepResult(
                ok=False,
                stage=self._session.stage,
                reason="Scan a vehicle first",
                error=StepError.PRECURSOR_MISSING,
                recommended_action="scan_vehicle",
            )
        return None

    def _invalid(self, reason: str) -> StepResult:
        return StepResult(
            ok=False,
            stage=self._session.stage,
            reason=reason,
            error=StepError.INVALID_TRANSITION,
            outcome=self._session.outcome,
            vehicle=self._session.vehicle,
            recommended_action="reset",
        )

    def _not_found(self, identifier: str, reason: NotFoundReason) -> StepResult:
        self.metrics.increment("not_found")
        self._log.info(f"Identifier not found: {identifier!r} ({reason.value})")
        if reason == NotFoundReason.EMPTY_INPUT:
            message = "No identifier entered"
        elif reason == NotFoundReason.UNKNOWN_VEHICLE:
            message = f"Vehicle {identifier} not found in registry"
        else:
            message = f"Part {identifier} not found in catalog"
        return StepResult(
            ok=False,
            stage=self._session.stage,
            reason=message,
            error=StepError.NOT_FOUND,
            outcome=self._session.outcome,
            vehicle=self._session.vehicle,
            not_found_reason=reason,
            recommended_action="retry_entry",
        )

    def _cancelled(self) -> StepResult:
        return StepResult(
            ok=False,
            stage=self._session.stage,
            reason="Scan cancelled",
            error=StepError.CANCELLED,
            outcome=self._session.outcome,
            vehicle=self._session.vehicle,
            failure_reason=ScanFailureReason.CANCELLED,
        )
