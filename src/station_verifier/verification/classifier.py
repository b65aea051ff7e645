"""
Compatibility Classifier

Decides whether a resolved part fits the bound vehicle by comparing the
part's expected (model, variant, color) against the vehicle's own.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from ..main import (
    CompatibilityTriple,
    OutcomeTag,
    Part,
    ScanFailureReason,
    ScanSource,
    Vehicle,
    VerificationOutcome,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Classification:
    """Tag plus the evidence behind it"""
    tag: OutcomeTag
    scanned_as: CompatibilityTriple
    diverging_fields: Tuple[str, ...] = ()

    @property
    def is_match(self) -> bool:
        return self.tag == OutcomeTag.MATCH


def classify(vehicle: Vehicle, part: Part) -> Classification:
    """
    Classify ``part`` against ``vehicle``.

    MATCH iff model, variant and color are all equal. The scanned-as triple is
    what the part label declares; for a mismatch every field differing from
    the vehicle is reported, each independently of the others.
    """
    scanned_as = part.expected
    diverging = scanned_as.diverging_fields(vehicle.triple)
    if diverging:
        return Classification(OutcomeTag.MISMATCH, scanned_as, diverging)
    return Classification(OutcomeTag.MATCH, scanned_as)


class CompatibilityVerifier:
    """
    Builds verification outcomes for one station.

    Kept separate from the workflow engine so outcome construction stays a
    pure function of its inputs.
    """

    def __init__(self, station_id: str):
        self.station_id = station_id

    def verify(
        self,
        vehicle: Vehicle,
        part: Part,
        source: ScanSource = ScanSource.AUTOMATED,
    ) -> VerificationOutcome:
        classification = classify(vehicle, part)

        if classification.is_match:
            logger.debug(f"[{self.station_id}] {part.part_id} matches {vehicle.vin}")
        else:
            logger.debug(
                f"[{self.station_id}] {part.part_id} diverges from {vehicle.vin} "
                f"on {', '.join(classification.diverging_fields)}"
            )

        return VerificationOutcome(
            tag=classification.tag,
            vehicle=vehicle,
            station_id=self.station_id,
            part=part,
            part_id=part.part_id,
            scanned_as=classification.scanned_as,
            diverging_fields=classification.diverging_fields,
            source=source,
        )

    def scan_failure(
        self,
        vehicle: Vehicle,
        reason: ScanFailureReason,
        part_id: Optional[str] = None,
    ) -> VerificationOutcome:
        """Outcome for a part label that could not be read"""
        return VerificationOutcome(
            tag=OutcomeTag.SCAN_FAILURE,
            vehicle=vehicle,
            station_id=self.station_id,
            part_id=part_id,
            failure_reason=reason,
        )
