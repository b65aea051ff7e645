"""
Mock Scan Adapter

Simulates a camera/barcode reader for testing and demos without hardware.
"""

import asyncio
import logging
import random
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, Iterable, List, Optional

from ..catalog import ReferenceData
from ..main import ScanFailureReason, ScanKind
from .base import AdapterConfig, BaseScanAdapter, ScanResult

logger = logging.getLogger(__name__)


class MockScanAdapter(BaseScanAdapter):
    """
    Mock adapter for testing.

    Each read sleeps for ``latency_ms`` and then fails with probability
    ``failure_rate``; otherwise it yields an identifier from the pool for
    that kind. Scripted identifiers queued with ``enqueue`` are returned
    first, in order, with ``None`` standing for an unreadable label.
    """

    def __init__(
        self,
        reference: Optional[ReferenceData] = None,
        config: Optional[AdapterConfig] = None,
        failure_rate: float = 1 / 3,
        latency_ms: int = 1500,
        seed: Optional[int] = None,
        vehicle_pool: Optional[List[str]] = None,
        part_pool: Optional[List[str]] = None,
    ):
        reference = reference or ReferenceData.demo()
        super().__init__(reference, config or AdapterConfig(
            name="mock",
            latency_ms=latency_ms,
        ))
        self.failure_rate = failure_rate
        self.latency_ms = latency_ms
        self._rng = random.Random(seed)
        self._pools: Dict[ScanKind, List[str]] = {
            ScanKind.VEHICLE: list(vehicle_pool if vehicle_pool is not None else reference.vins),
            ScanKind.PART: list(part_pool if part_pool is not None else reference.part_ids),
        }
        self._scripts: Dict[ScanKind, Deque[Optional[str]]] = {
            ScanKind.VEHICLE: deque(),
            ScanKind.PART: deque(),
        }
        self._pending: Optional[asyncio.Future] = None
        self.reads = 0

    async def initialize(self) -> None:
        """Initialize mock adapter"""
        self._is_running = True
        logger.info("Mock scan adapter initialized")

    def enqueue(self, kind: ScanKind, identifiers: Iterable[Optional[str]]) -> None:
        """Script the next reads for ``kind``; None means unreadable"""
        self._scripts[kind].extend(identifiers)

    async def acquire(self, kind: ScanKind) -> ScanResult:
        """Acquire with simulated latency and failures"""
        self._start_time = datetime.now()
        self.reads += 1

        # Simulate camera/decode time
        loop = asyncio.get_running_loop()
        self._pending = loop.create_future()
        loop.call_later(self.latency_ms / 1000, _resolve, self._pending)
        try:
            await self._pending
        except asyncio.CancelledError:
            logger.info(f"Mock {kind.value} scan cancelled")
            raise
        finally:
            self._pending = None

        result = self._next_read(kind)
        self._track_duration(result)
        return result

    def _next_read(self, kind: ScanKind) -> ScanResult:
        script = self._scripts[kind]
        if script:
            identifier = script.popleft()
            if identifier is None:
                return ScanResult.failed(kind, ScanFailureReason.UNREADABLE, metadata={"is_mock": True})
            return ScanResult.read(kind, identifier, metadata={"is_mock": True})

        if self._rng.random() < self.failure_rate:
            return ScanResult.failed(kind, ScanFailureReason.UNREADABLE, metadata={"is_mock": True})

        pool = self._pools[kind]
        if not pool:
            return ScanResult.failed(kind, ScanFailureReason.UNREADABLE, metadata={"is_mock": True})
        return ScanResult.read(kind, self._rng.choice(pool), metadata={"is_mock": True})

    async def cancel(self) -> bool:
        """Cancel the in-flight mock read"""
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
            return True
        return False

    async def health_check(self) -> Dict[str, Any]:
        """Mock health check"""
        return {
            "status": "healthy",
            "provider": "mock",
            "failure_rate": self.failure_rate,
            "latency_ms": self.latency_ms,
        }


def _resolve(future: asyncio.Future) -> None:
    if not future.done():
        future.set_result(None)
