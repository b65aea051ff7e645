"""
Scan Session State

The session for one vehicle at one station. The state is a single tagged
value, so an outcome can never exist without a bound vehicle.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Union

from .main import OutcomeTag, Vehicle, VerificationOutcome


class Stage(Enum):
    """Session lifecycle stage"""
    IDLE = "idle"
    VEHICLE_BOUND = "vehicle_bound"
    VERIFIED = "verified"


@dataclass(frozen=True)
class Idle:
    """No vehicle, no outcome"""
    stage = Stage.IDLE


@dataclass(frozen=True)
class VehicleBound:
    """Vehicle bound; part scanning permitted"""
    vehicle: Vehicle
    stage = Stage.VEHICLE_BOUND


@dataclass(frozen=True)
class Verified:
    """Vehicle bound and the latest part classified"""
    vehicle: Vehicle
    outcome: VerificationOutcome
    installation_blocked: bool = False
    stage = Stage.VERIFIED


SessionState = Union[Idle, VehicleBound, Verified]


class ScanSession:
    """Current state of a station's scan session"""

    def __init__(self):
        self._state: SessionState = Idle()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def stage(self) -> Stage:
        return self._state.stage

    @property
    def vehicle(self) -> Optional[Vehicle]:
        return getattr(self._state, "vehicle", None)

    @property
    def outcome(self) -> Optional[VerificationOutcome]:
        return getattr(self._state, "outcome", None)

    @property
    def outcome_tag(self) -> Optional[OutcomeTag]:
        outcome = self.outcome
        return outcome.tag if outcome else None

    @property
    def installation_blocked(self) -> bool:
        return isinstance(self._state, Verified) and self._state.installation_blocked

    def is_verified(self, tag: OutcomeTag) -> bool:
        return self.outcome_tag == tag

    # =========================================================================
    # Transitions (callers check legality)
    # =========================================================================

    def bind_vehicle(self, vehicle: Vehicle) -> None:
        self._state = VehicleBound(vehicle=vehicle)

    def record_outcome(self, outcome: VerificationOutcome) -> None:
        vehicle = self.vehicle
        if vehicle is None:
            raise RuntimeError("Cannot record an outcome without a bound vehicle")
        self._state = Verified(vehicle=vehicle, outcome=outcome)

    def release_outcome(self) -> None:
        """Keep the vehicle, drop the outcome"""
        vehicle = self.vehicle
        if vehicle is None:
            raise RuntimeError("No vehicle bound")
        self._state = VehicleBound(vehicle=vehicle)

    def block_installation(self) -> None:
        if not isinstance(self._state, Verified):
            raise RuntimeError("No verified part to block")
        self._state = replace(self._state, installation_blocked=True)

    def reset(self) -> None:
        self._state = Idle()

    def to_dict(self):
        vehicle = self.vehicle
        outcome = self.outcome
        return {
            "stage": self.stage.value,
            "vehicle": vehicle.to_dict() if vehicle else None,
            "outcome": outcome.to_dict() if outcome else None,
            "installation_blocked": self.installation_blocked,
        }
