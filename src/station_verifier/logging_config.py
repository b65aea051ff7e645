"""
Logging Configuration

Station-tagged log output. Each line names the station it came from, taken
from the record (engines log through a ``LoggerAdapter`` carrying their
``station_id``) or from the station configured in ``setup_logging``.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

PACKAGE_LOGGER = "station_verifier"


class StationFormatter(logging.Formatter):
    """Formats records as ``[time] LEVEL [station] component: message``"""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, station_id: Optional[str] = None, use_colors: bool = True):
        super().__init__()
        self.station_id = station_id
        self.use_colors = use_colors and sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        level = f"{record.levelname:8}"
        if self.use_colors:
            level = f"{self.COLORS.get(record.levelname, '')}{level}{self.RESET}"

        station = getattr(record, "station_id", None) or self.station_id or "-"
        line = f"[{timestamp}] {level} [{station}] {_component(record.name)}: {record.getMessage()}"

        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _component(logger_name: str) -> str:
    """``station_verifier.adapters.mock`` -> ``adapters.mock``"""
    prefix = PACKAGE_LOGGER + "."
    if logger_name.startswith(prefix):
        return logger_name[len(prefix):]
    return logger_name


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    use_colors: bool = True,
    station_id: Optional[str] = None,
) -> logging.Logger:
    """
    Configure the package logger from station settings.

    Args:
        level: Log level name; unknown names fall back to INFO
        log_file: Optional file that receives the same lines, uncoloured
        use_colors: Colour the level on a terminal
        station_id: Station shown on records that do not carry their own

    Returns:
        The configured ``station_verifier`` logger
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(StationFormatter(station_id, use_colors=use_colors))
    package_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(StationFormatter(station_id, use_colors=False))
        package_logger.addHandler(file_handler)

    # Event delivery logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    package_logger.debug(f"Logging configured (level={level.upper()}, file={log_file or '-'})")
    return package_logger
