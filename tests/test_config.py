"""
Tests for configuration, reference data, metrics and logging
"""

import logging
import pytest
from unittest.mock import patch

from station_verifier.catalog import DEMO_PARTS, DEMO_VEHICLES, ReferenceData
from station_verifier.logging_config import StationFormatter, setup_logging
from station_verifier.main import ConfigError, OutcomeTag, ReferenceDataError, StationConfig, parse_part_id
from station_verifier.metrics import MetricsCollector


class TestStationConfig:
    """Tests for StationConfig"""

    def test_defaults(self):
        config = StationConfig()
        assert config.station_id == "ST001"
        assert config.emit_alert_on_mismatch is False
        assert config.scan_timeout_ms == 10000
        assert config.scan_failure_rate == pytest.approx(1 / 3)
        assert config.alert_endpoint_url is None

    @pytest.mark.parametrize("kwargs", [
        {"station_id": ""},
        {"scan_timeout_ms": 0},
        {"scan_latency_ms": -1},
        {"scan_failure_rate": 1.5},
        {"scan_failure_rate": -0.1},
    ])
    def test_invalid_values(self, kwargs):
        with pytest.raises(ConfigError):
            StationConfig(**kwargs)

    def test_from_env(self):
        env = {
            "STATION_ID": "ST004",
            "STATION_OPERATOR": "Sneha Patel",
            "STATION_ALERT_ON_MISMATCH": "true",
            "STATION_SCAN_TIMEOUT_MS": "2500",
            "STATION_SCAN_FAILURE_RATE": "0",
            "STATION_ALERT_URL": "http://monitor.local/alerts",
        }
        with patch.dict("os.environ", env, clear=True):
            config = StationConfig.from_env()

        assert config.station_id == "ST004"
        assert config.operator == "Sneha Patel"
        assert config.emit_alert_on_mismatch is True
        assert config.scan_timeout_ms == 2500
        assert config.scan_failure_rate == 0.0
        assert config.alert_endpoint_url == "http://monitor.local/alerts"
        assert config.outcome_endpoint_url is None

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "station.yaml"
        path.write_text(
            "station_id: ST002\n"
            "station_name: Gear Assembly\n"
            "emit_alert_on_mismatch: true\n"
            "scan_latency_ms: 0\n"
        )
        config = StationConfig.from_yaml(str(path))

        assert config.station_id == "ST002"
        assert config.station_name == "Gear Assembly"
        assert config.emit_alert_on_mismatch is True
        assert config.scan_latency_ms == 0

    def test_from_yaml_empty_file(self, tmp_path):
        path = tmp_path / "station.yaml"
        path.write_text("")
        assert StationConfig.from_yaml(str(path)) == StationConfig()

    def test_from_yaml_unknown_key(self, tmp_path):
        path = tmp_path / "station.yaml"
        path.write_text("station_id: ST002\nalert_on_everything: true\n")
        with pytest.raises(ConfigError, match="alert_on_everything"):
            StationConfig.from_yaml(str(path))

    def test_from_yaml_not_mapping(self, tmp_path):
        path = tmp_path / "station.yaml"
        path.write_text("- ST001\n- ST002\n")
        with pytest.raises(ConfigError):
            StationConfig.from_yaml(str(path))

    def test_to_dict(self):
        data = StationConfig(station_id="ST005").to_dict()
        assert data["station_id"] == "ST005"
        assert "scan_timeout_ms" in data


class TestReferenceData:
    """Tests for the vehicle registry and part catalog"""

    def test_demo(self):
        reference = ReferenceData.demo()
        assert reference.vins == [v.vin for v in DEMO_VEHICLES]
        assert reference.part_ids == [p.part_id for p in DEMO_PARTS]
        assert reference.resolve_vehicle("SLA23SL001235").model == "Slavia"
        assert reference.resolve_part(" OR-KOD-LK-BL-003 ").name == "ORVM Assembly"
        assert reference.resolve_part("XX-NOT-IN-CAT-999") is None

    def test_duplicates_rejected(self):
        with pytest.raises(ReferenceDataError):
            ReferenceData(vehicles=[DEMO_VEHICLES[0], DEMO_VEHICLES[0]])
        with pytest.raises(ReferenceDataError):
            ReferenceData(parts=[DEMO_PARTS[1], DEMO_PARTS[1]])

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "reference.yaml"
        path.write_text(
            "vehicles:\n"
            "  - {vin: SKU23WH009999, model: Kushaq, variant: Active, color: Tornado Red}\n"
            "parts:\n"
            "  - part_id: SC-KUS-ACT-RD-010\n"
            "    name: Seat Cover\n"
            "    expected_model: Kushaq\n"
            "    expected_variant: Active\n"
            "    expected_color: Tornado Red\n"
        )
        reference = ReferenceData.from_yaml(str(path))

        assert reference.resolve_vehicle("SKU23WH009999").color == "Tornado Red"
        assert reference.resolve_part("SC-KUS-ACT-RD-010").expected.variant == "Active"

    def test_from_yaml_malformed_entry(self, tmp_path):
        path = tmp_path / "reference.yaml"
        path.write_text("vehicles:\n  - {vin: SKU23WH009999, model: Kushaq}\n")
        with pytest.raises(ReferenceDataError, match="Malformed"):
            ReferenceData.from_yaml(str(path))

    def test_from_yaml_invalid_syntax(self, tmp_path):
        path = tmp_path / "reference.yaml"
        path.write_text("vehicles: [unclosed\n")
        with pytest.raises(ReferenceDataError):
            ReferenceData.from_yaml(str(path))

    def test_from_dict_not_mapping(self):
        with pytest.raises(ReferenceDataError):
            ReferenceData.from_dict(["not", "a", "mapping"])


class TestParsePartId:
    """Tests for part identifier segments"""

    def test_conventional_id(self):
        assert parse_part_id("DH-KUS-STY-WH-001") == {
            "category": "DH",
            "model": "KUS",
            "variant": "STY",
            "color": "WH",
            "sequence": "001",
        }

    @pytest.mark.parametrize("part_id", ["DH-KUS-STY-WH", "DH--STY-WH-001", "PART42", ""])
    def test_unconventional_id(self, part_id):
        assert parse_part_id(part_id) is None


class TestMetricsCollector:
    """Tests for MetricsCollector"""

    def test_outcomes_and_rates(self):
        metrics = MetricsCollector()
        metrics.outcome_recorded(OutcomeTag.MATCH)
        metrics.outcome_recorded(OutcomeTag.MATCH)
        metrics.outcome_recorded(OutcomeTag.MISMATCH)
        metrics.outcome_recorded(OutcomeTag.SCAN_FAILURE)
        metrics.acquisition_timed(100)
        metrics.acquisition_timed(300)

        summary = metrics.get_summary()
        assert summary["counters"]["parts_scanned"] == 4
        assert summary["counters"]["scan_failures"] == 1
        assert summary["rates"]["match_rate"] == pytest.approx(2 / 3)
        assert summary["rates"]["scan_failure_rate"] == pytest.approx(0.25)
        assert summary["timing"]["avg_acquisition_ms"] == 200
        assert summary["timing"]["max_acquisition_ms"] == 300

    def test_empty_summary(self):
        summary = MetricsCollector().get_summary()
        assert summary["rates"]["match_rate"] == 0
        assert summary["timing"]["max_acquisition_ms"] == 0

    def test_reset(self):
        metrics = MetricsCollector()
        metrics.increment("retries", 3)
        metrics.reset()
        assert all(value == 0 for value in metrics.counters.values())

    def test_unknown_counter(self):
        with pytest.raises(KeyError):
            MetricsCollector().increment("bogus")


@pytest.fixture
def package_logger():
    """The package logger, restored to an unconfigured state afterwards"""
    logger = logging.getLogger("station_verifier")
    yield logger
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)


def make_record(name="station_verifier.engine", msg="Part %s blocked", args=("X",), **extra):
    record = logging.LogRecord(name, logging.WARNING, __file__, 1, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStationFormatter:
    """Tests for station-tagged log lines"""

    def test_plain_line(self):
        """Should name level, station and component"""
        line = StationFormatter("ST001", use_colors=False).format(make_record())

        assert "WARNING" in line
        assert "[ST001] engine: Part X blocked" in line
        assert "\033[" not in line

    def test_record_station_wins(self):
        """A record's own station id overrides the configured one"""
        formatter = StationFormatter("ST001", use_colors=False)
        line = formatter.format(make_record(station_id="ST004"))

        assert "[ST004]" in line
        assert "[ST001]" not in line

    def test_no_station(self):
        line = StationFormatter(use_colors=False).format(make_record(name="httpx"))
        assert "[-] httpx: Part X blocked" in line

    def test_nested_component(self):
        line = StationFormatter("ST001", use_colors=False).format(
            make_record(name="station_verifier.adapters.mock")
        )
        assert "adapters.mock:" in line


class TestSetupLogging:
    """Tests for setup_logging"""

    def test_setup_with_file(self, tmp_path, package_logger):
        log_file = tmp_path / "logs" / "station.log"
        returned = setup_logging(level="debug", log_file=str(log_file), use_colors=False, station_id="ST002")

        assert returned is package_logger
        assert package_logger.level == logging.DEBUG
        assert len(package_logger.handlers) == 2
        assert log_file.parent.is_dir()
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_file_receives_station_lines(self, tmp_path, package_logger):
        """Lines written to the log file carry the configured station"""
        log_file = tmp_path / "station.log"
        setup_logging(level="INFO", log_file=str(log_file), use_colors=False, station_id="ST002")

        logging.getLogger("station_verifier.catalog").info("Loaded reference data")
        for handler in package_logger.handlers:
            handler.flush()

        assert "[ST002] catalog: Loaded reference data" in log_file.read_text()

    def test_reconfigure_replaces_handlers(self, package_logger):
        """Calling setup again does not stack handlers"""
        setup_logging(use_colors=False)
        setup_logging(use_colors=False)
        assert len(package_logger.handlers) == 1

    def test_unknown_level_falls_back(self, package_logger):
        setup_logging(level="chatty", use_colors=False)
        assert package_logger.level == logging.INFO


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
