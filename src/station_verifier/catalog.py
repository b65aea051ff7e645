"""
Reference Data

Vehicle registry and part catalog lookups used to resolve scanned
identifiers. The registry and catalog are read-only collaborators; the
in-memory ``ReferenceData`` implementation can be loaded from YAML.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from .main import Part, ReferenceDataError, Vehicle, parse_part_id

logger = logging.getLogger(__name__)


class VehicleRegistry(ABC):
    """Resolves VINs to registered vehicles"""

    @abstractmethod
    def resolve_vehicle(self, vin: str) -> Optional[Vehicle]:
        """Return the vehicle for ``vin`` or None if it is not registered"""
        pass


class PartCatalog(ABC):
    """Resolves part identifiers to catalog parts"""

    @abstractmethod
    def resolve_part(self, part_id: str) -> Optional[Part]:
        """Return the part for ``part_id`` or None if it is not cataloged"""
        pass


class ReferenceData(VehicleRegistry, PartCatalog):
    """In-memory vehicle registry and part catalog"""

    def __init__(
        self,
        vehicles: Optional[Iterable[Vehicle]] = None,
        parts: Optional[Iterable[Part]] = None,
    ):
        self._vehicles: Dict[str, Vehicle] = {}
        self._parts: Dict[str, Part] = {}

        for vehicle in vehicles or []:
            self.add_vehicle(vehicle)
        for part in parts or []:
            self.add_part(part)

    def add_vehicle(self, vehicle: Vehicle) -> None:
        if vehicle.vin in self._vehicles:
            raise ReferenceDataError(f"Duplicate VIN in registry: {vehicle.vin}")
        self._vehicles[vehicle.vin] = vehicle

    def add_part(self, part: Part) -> None:
        if part.part_id in self._parts:
            raise ReferenceDataError(f"Duplicate part id in catalog: {part.part_id}")
        if parse_part_id(part.part_id) is None:
            logger.debug(f"Part id {part.part_id} does not follow the category-model-variant-color-seq convention")
        self._parts[part.part_id] = part

    def resolve_vehicle(self, vin: str) -> Optional[Vehicle]:
        return self._vehicles.get(vin.strip())

    def resolve_part(self, part_id: str) -> Optional[Part]:
        return self._parts.get(part_id.strip())

    @property
    def vins(self) -> List[str]:
        return list(self._vehicles)

    @property
    def part_ids(self) -> List[str]:
        return list(self._parts)

    # =========================================================================
    # Loading
    # =========================================================================

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReferenceData":
        """
        Build reference data from a mapping.

        Expected shape::

            vehicles:
              - {vin: ..., model: ..., variant: ..., color: ...}
            parts:
              - {part_id: ..., name: ..., expected_model: ...,
                 expected_variant: ..., expected_color: ...}
        """
        if not isinstance(data, dict):
            raise ReferenceDataError("Reference data must be a mapping")

        try:
            vehicles = [Vehicle(**entry) for entry in data.get("vehicles") or []]
            parts = [Part(**entry) for entry in data.get("parts") or []]
        except TypeError as e:
            raise ReferenceDataError(f"Malformed reference data entry: {e}") from e

        return cls(vehicles=vehicles, parts=parts)

    @classmethod
    def from_yaml(cls, path: str) -> "ReferenceData":
        """Load reference data from a YAML file"""
        import yaml

        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ReferenceDataError(f"Invalid reference data YAML {path}: {e}") from e

        reference = cls.from_dict(data)
        logger.info(
            f"Loaded reference data from {path}: "
            f"{len(reference.vins)} vehicles, {len(reference.part_ids)} parts"
        )
        return reference

    @classmethod
    def demo(cls) -> "ReferenceData":
        """Reference data for the demo assembly line"""
        return cls(vehicles=list(DEMO_VEHICLES), parts=list(DEMO_PARTS))


DEMO_VEHICLES = (
    Vehicle(vin="SKU23WH001234", model="Kushaq", variant="Style", color="Candy White"),
    Vehicle(vin="SLA23SL001235", model="Slavia", variant="Ambition", color="Brilliant Silver"),
    Vehicle(vin="KOD23BL001236", model="Kodiaq", variant="L&K", color="Lava Blue"),
)

DEMO_PARTS = (
    Part(
        part_id="DH-KUS-STY-WH-001",
        name="Door Handle - Chrome",
        expected_model="Kushaq",
        expected_variant="Style",
        expected_color="Candy White",
    ),
    Part(
        part_id="GS-SLA-AMB-SL-002",
        name="Gear Shift Lever",
        expected_model="Slavia",
        expected_variant="Ambition",
        expected_color="Brilliant Silver",
    ),
    Part(
        part_id="OR-KOD-LK-BL-003",
        name="ORVM Assembly",
        expected_model="Kodiaq",
        expected_variant="L&K",
        expected_color="Lava Blue",
    ),
)
