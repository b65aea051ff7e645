"""
Tests for event sinks
"""

import json
import logging

import httpx
import pytest
from unittest.mock import AsyncMock

from station_verifier.main import AlertEvent, AlertSeverity, OutcomeTag, Vehicle, VerificationOutcome
from station_verifier.sinks import CompositeSink, HttpEventSink, LoggingSink, MemorySink


VEHICLE = Vehicle(vin="SKU23WH001234", model="Kushaq", variant="Style", color="Candy White")


@pytest.fixture
def alert():
    return AlertEvent(
        severity=AlertSeverity.CRITICAL,
        title="Barcode Read Failed",
        message="Unable to read part barcode - manual verification required",
        station_id="ST003",
        vin=VEHICLE.vin,
        operator="Amit Singh",
    )


@pytest.fixture
def outcome():
    return VerificationOutcome(
        tag=OutcomeTag.MATCH,
        vehicle=VEHICLE,
        station_id="ST003",
        part_id="DH-KUS-STY-WH-001",
    )


class TestMemorySink:
    """Tests for the in-memory sink"""

    @pytest.mark.asyncio
    async def test_splits_events(self, alert, outcome):
        sink = MemorySink()
        await sink.publish(alert)
        await sink.publish(outcome)

        assert sink.events == [alert, outcome]
        assert sink.alerts == [alert]
        assert sink.outcomes == [outcome]

        sink.clear()
        assert sink.events == []


class TestCompositeSink:
    """Tests for fan-out delivery"""

    @pytest.mark.asyncio
    async def test_fans_out(self, alert):
        first, second = MemorySink(), MemorySink()
        await CompositeSink(first, second).publish(alert)

        assert first.alerts == [alert]
        assert second.alerts == [alert]

    @pytest.mark.asyncio
    async def test_isolates_failing_sink(self, alert):
        """One broken sink must not stop the others"""
        broken = MemorySink()
        broken.publish = AsyncMock(side_effect=RuntimeError("down"))
        healthy = MemorySink()

        await CompositeSink(broken, healthy).publish(alert)

        broken.publish.assert_awaited_once_with(alert)
        assert healthy.alerts == [alert]

    @pytest.mark.asyncio
    async def test_aclose_closes_all(self):
        first, second = MemorySink(), MemorySink()
        first.aclose = AsyncMock()
        second.aclose = AsyncMock()

        await CompositeSink(first, second).aclose()

        first.aclose.assert_awaited_once()
        second.aclose.assert_awaited_once()


class TestLoggingSink:
    """Tests for log output"""

    @pytest.mark.asyncio
    async def test_critical_alert_logs_error(self, alert, caplog):
        with caplog.at_level(logging.INFO, logger="station_verifier"):
            await LoggingSink().publish(alert)

        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert "[ALERT][CRITICAL][ST003] Barcode Read Failed" in record.getMessage()

    @pytest.mark.asyncio
    async def test_outcome_logs_info(self, outcome, caplog):
        with caplog.at_level(logging.INFO, logger="station_verifier"):
            await LoggingSink().publish(outcome)

        record = caplog.records[-1]
        assert record.levelno == logging.INFO
        assert "Outcome match vin=SKU23WH001234 part=DH-KUS-STY-WH-001" in record.getMessage()


class TestHttpEventSink:
    """Tests for HTTP delivery"""

    def make_sink(self, handler, event_name="station.alert"):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return HttpEventSink("http://monitor.local/events", event_name, client=client), client

    @pytest.mark.asyncio
    async def test_posts_payload(self, alert):
        """Should POST the event envelope as JSON"""
        received = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(json.loads(request.content))
            return httpx.Response(202)

        sink, client = self.make_sink(handler)
        await sink.publish(alert)
        await sink.aclose()
        await client.aclose()

        assert len(received) == 1
        body = received[0]
        assert body["service"] == "station-verifier"
        assert body["event"] == "station.alert"
        assert body["station_id"] == "ST003"
        assert body["rid"]
        assert body["payload"]["severity"] == "critical"
        assert body["payload"]["operator"] == "Amit Singh"

    @pytest.mark.asyncio
    async def test_outcome_payload(self, outcome):
        sink = HttpEventSink("http://monitor.local/events", "station.verification")
        payload = sink.build_payload(outcome)

        assert payload["event"] == "station.verification"
        assert payload["payload"]["tag"] == "match"
        assert payload["payload"]["vehicle"]["vin"] == VEHICLE.vin

    @pytest.mark.asyncio
    async def test_server_error_is_logged(self, alert, caplog):
        """A rejected delivery is logged, never raised"""
        sink, client = self.make_sink(lambda request: httpx.Response(500))

        with caplog.at_level(logging.WARNING, logger="station_verifier"):
            await sink.publish(alert)
            await sink.aclose()
        await client.aclose()

        assert any("delivery failed: 500" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_connection_error_is_logged(self, alert, caplog):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        sink, client = self.make_sink(handler)

        with caplog.at_level(logging.WARNING, logger="station_verifier"):
            await sink.publish(alert)
            await sink.aclose()
        await client.aclose()

        assert any("delivery error" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_publish_does_not_wait(self, alert):
        """publish returns before the POST completes"""
        sink, client = self.make_sink(lambda request: httpx.Response(200))

        await sink.publish(alert)
        assert len(sink._pending) == 1

        await sink.aclose()
        await client.aclose()
        assert not sink._pending


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
