"""
Metrics Tracking

Per-station verification counters for monitoring.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from .main import OutcomeTag


@dataclass
class StationStatus:
    """Snapshot of one station for a monitoring view"""
    station_id: str
    station_name: str
    operator: Optional[str]
    stage: str
    status: str                     # "waiting" | "active" | "error"
    vin: Optional[str] = None
    last_part: Optional[str] = None
    last_outcome: Optional[str] = None
    installation_blocked: bool = False
    alerts: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "station_id": self.station_id,
            "station_name": self.station_name,
            "operator": self.operator,
            "stage": self.stage,
            "status": self.status,
            "vin": self.vin,
            "last_part": self.last_part,
            "last_outcome": self.last_outcome,
            "installation_blocked": self.installation_blocked,
            "alerts": self.alerts,
        }


class MetricsCollector:
    """
    Collects verification metrics for one station.

    Owned by the engine; nothing is shared across stations.
    """

    def __init__(self):
        self._start_time = datetime.now()

        # Aggregate counters
        self._counters = {
            "vehicles_bound": 0,
            "vehicle_scan_failures": 0,
            "parts_scanned": 0,
            "matches": 0,
            "mismatches": 0,
            "scan_failures": 0,
            "not_found": 0,
            "manual_entries": 0,
            "retries": 0,
            "resets": 0,
            "alerts_emitted": 0,
            "installations_blocked": 0,
            "cancelled_scans": 0,
        }

        # Timing histograms
        self._timing: Dict[str, List[int]] = {
            "acquisition_ms": [],
        }

    def increment(self, counter: str, amount: int = 1) -> None:
        self._counters[counter] += amount

    def outcome_recorded(self, tag: OutcomeTag) -> None:
        self._counters["parts_scanned"] += 1
        if tag == OutcomeTag.MATCH:
            self._counters["matches"] += 1
        elif tag == OutcomeTag.MISMATCH:
            self._counters["mismatches"] += 1
        else:
            self._counters["scan_failures"] += 1

    def acquisition_timed(self, duration_ms: int) -> None:
        self._timing["acquisition_ms"].append(duration_ms)

    @property
    def counters(self) -> Dict[str, int]:
        return self._counters.copy()

    def get_summary(self) -> Dict[str, Any]:
        """Get summary statistics"""
        uptime_seconds = (datetime.now() - self._start_time).total_seconds()
        classified = self._counters["matches"] + self._counters["mismatches"]
        scanned = self._counters["parts_scanned"]
        acquisitions = self._timing["acquisition_ms"]

        return {
            "uptime_seconds": int(uptime_seconds),
            "counters": self._counters.copy(),
            "rates": {
                "match_rate": self._counters["matches"] / classified if classified else 0,
                "scan_failure_rate": self._counters["scan_failures"] / scanned if scanned else 0,
            },
            "timing": {
                "avg_acquisition_ms": sum(acquisitions) / len(acquisitions) if acquisitions else 0,
                "max_acquisition_ms": max(acquisitions) if acquisitions else 0,
            },
        }

    def reset(self) -> None:
        """Reset all metrics"""
        self._start_time = datetime.now()
        for key in self._counters:
            self._counters[key] = 0
        for key in self._timing:
            self._timing[key] = []
