"""
Event Sinks

Where verification outcomes and alerts go once the engine has produced
them. Sinks are injected into the engine; delivery is fire-and-forget.
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Set, Union

import httpx

from .main import AlertEvent, AlertSeverity, VerificationOutcome

logger = logging.getLogger(__name__)

Event = Union[AlertEvent, VerificationOutcome]


class EventSink(ABC):
    """Consumer of alerts or verification outcomes"""

    @abstractmethod
    async def publish(self, event: Event) -> None:
        """Deliver one event. Must not wait for downstream acknowledgement."""
        pass

    async def aclose(self) -> None:
        """Flush and release resources"""
        pass


class LoggingSink(EventSink):
    """Writes events to the log"""

    _LEVELS = {
        AlertSeverity.CRITICAL: logging.ERROR,
        AlertSeverity.WARNING: logging.WARNING,
        AlertSeverity.INFO: logging.INFO,
    }

    async def publish(self, event: Event) -> None:
        if isinstance(event, AlertEvent):
            logger.log(
                self._LEVELS.get(event.severity, logging.WARNING),
                f"[ALERT][{event.severity.value.upper()}][{event.station_id}] {event.title}: {event.message}",
            )
        else:
            logger.info(
                f"[{event.station_id}] Outcome {event.tag.value} "
                f"vin={event.vehicle.vin} part={event.part_id or '-'}"
            )


class MemorySink(EventSink):
    """Keeps every published event in a list"""

    def __init__(self):
        self.events: List[Event] = []

    async def publish(self, event: Event) -> None:
        self.events.append(event)

    @property
    def alerts(self) -> List[AlertEvent]:
        return [e for e in self.events if isinstance(e, AlertEvent)]

    @property
    def outcomes(self) -> List[VerificationOutcome]:
        return [e for e in self.events if isinstance(e, VerificationOutcome)]

    def clear(self) -> None:
        self.events.clear()


class CompositeSink(EventSink):
    """Fans each event out to several sinks"""

    def __init__(self, *sinks: EventSink):
        self.sinks = list(sinks)

    async def publish(self, event: Event) -> None:
        for sink in self.sinks:
            try:
                await sink.publish(event)
            except Exception as e:
                logger.error(f"Sink {type(sink).__name__} error: {e}")

    async def aclose(self) -> None:
        for sink in self.sinks:
            await sink.aclose()


class HttpEventSink(EventSink):
    """
    POSTs events as JSON to a monitoring endpoint.

    Each POST runs as a background task so ``publish`` returns immediately;
    failures are logged, never raised. ``aclose`` waits for pending posts.
    """

    def __init__(
        self,
        url: str,
        event_name: str,
        service: str = "station-verifier",
        timeout_ms: int = 5000,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.event_name = event_name
        self.service = service
        self.timeout_ms = timeout_ms
        self._client = client
        self._owns_client = client is None
        self._pending: Set[asyncio.Task] = set()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_ms / 1000)
        return self._client

    def build_payload(self, event: Event) -> dict:
        return {
            "service": self.service,
            "event": self.event_name,
            "station_id": event.station_id,
            "rid": str(uuid.uuid4()),
            "payload": event.to_dict(),
        }

    async def publish(self, event: Event) -> None:
        task = asyncio.ensure_future(self._post(self.build_payload(event)))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _post(self, payload: dict) -> Optional[Any]:
        try:
            response = await self._get_client().post(self.url, json=payload)
            if response.is_success:
                logger.debug(f"Event {self.event_name} delivered ({payload['rid']})")
                return payload["rid"]
            logger.warning(f"Event {self.event_name} delivery failed: {response.status_code}")
        except httpx.HTTPError as e:
            logger.warning(f"Event {self.event_name} delivery error: {e}")
        return None

    async def aclose(self) -> None:
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
