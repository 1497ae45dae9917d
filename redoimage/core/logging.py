"""Logging setup: stderr console at the configured level plus an in-memory flight recorder for failed runs."""

import logging
import sys
from collections import deque
from datetime import datetime, timezone
from pathlib import Path

from redoimage.core.config import Settings

FLIGHT_LOG_CAPACITY = 50_000
DEFAULT_FORENSICS_DIR = Path("logs") / "forensics"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(threadName)s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that emit per-chunk/per-connection DEBUG records and would flood the buffer.
NOISY_LOGGERS = {"PIL": logging.INFO, "urllib3": logging.INFO}

_flight_logger: "FlightLogger | None" = None


class FlightLogger(logging.Handler):
    """
    Keeps the most recent records (every level) in a ring buffer so a failed run can be
    written out after the fact with dump(label). Nothing touches disk until then.
    """

    def __init__(self, capacity: int = FLIGHT_LOG_CAPACITY, forensics_dir: str | Path | None = None) -> None:
        super().__init__(level=logging.DEBUG)
        self._records: deque[logging.LogRecord] = deque(maxlen=capacity)
        self.forensics_dir = Path(forensics_dir) if forensics_dir is not None else DEFAULT_FORENSICS_DIR

    def emit(self, record: logging.LogRecord) -> None:
        self._records.append(record)

    def dump(self, label: str) -> str:
        """Write buffered records to {forensics_dir}/{label}_{utc timestamp}.log and return the path."""
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        target = self.forensics_dir / f"{label}_{stamp}.log"
        target.parent.mkdir(parents=True, exist_ok=True)
        fmt = self.formatter or logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)
        snapshot = list(self._records)
        target.write_text("".join(fmt.format(r) + "\n" for r in snapshot))
        return str(target)

    def __len__(self) -> int:
        return len(self._records)


def get_flight_logger() -> FlightLogger | None:
    """The FlightLogger installed by the last setup_logging() call, if any."""
    return _flight_logger


def _console_handler(level_name: str, formatter: logging.Formatter) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(logging.getLevelNamesMapping().get(level_name, logging.WARNING))
    handler.setFormatter(formatter)
    return handler


def setup_logging(settings: Settings) -> FlightLogger:
    """
    Replace the root handlers with a console handler and a fresh FlightLogger.

    Root runs at DEBUG so the flight recorder sees everything; the console only shows
    settings.log_level and above. Safe to call repeatedly (handlers are not duplicated).
    """
    global _flight_logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)
    root = logging.getLogger()
    for h in root.handlers[:]:
        root.removeHandler(h)
    root.setLevel(logging.DEBUG)
    root.addHandler(_console_handler(settings.log_level, formatter))

    flight = FlightLogger(forensics_dir=settings.forensics_dir)
    flight.setFormatter(formatter)
    root.addHandler(flight)

    for name, level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(level)

    _flight_logger = flight
    return flight
