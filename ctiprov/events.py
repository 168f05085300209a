"""
Event logging utilities for NDJSON format, and the text log file.
"""

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .state import ensure_state_home

EVENTS_NAME = "logs.ndjson"
LOG_FORMAT = "%(asctime)s - %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


class EventTypes:
    RUN_START = "RUN_START"
    STEP_START = "STEP_START"
    STEP_DONE = "STEP_DONE"
    HEALTH_ATTEMPT = "HEALTH_ATTEMPT"
    HEALTH_OK = "HEALTH_OK"
    HEALTH_TIMEOUT = "HEALTH_TIMEOUT"
    FALLBACK_START = "FALLBACK_START"
    DIAGNOSTICS = "DIAGNOSTICS"
    SMOKE_OK = "SMOKE_OK"
    SMOKE_FAIL = "SMOKE_FAIL"
    DONE = "DONE"
    ERROR = "ERROR"
    TEARDOWN_START = "TEARDOWN_START"
    TEARDOWN_DONE = "TEARDOWN_DONE"


class EventLog:
    """Append-only NDJSON event stream kept in the state home."""

    def __init__(self, state_home: Path):
        self.state_home = Path(state_home)

    @property
    def path(self) -> Path:
        return self.state_home / EVENTS_NAME

    def emit(self, event_type: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Emit an event to logs.ndjson.

        Args:
            event_type: Event type (e.g., "STEP_START", "ERROR")
            data: Event data

        Returns:
            The written event
        """
        ensure_state_home(self.state_home)
        event = {
            "ts": datetime.now().isoformat(),
            "type": event_type,
            "data": data or {},
        }
        with open(self.path, "a") as f:
            f.write(json.dumps(event, default=str) + "\n")
            f.flush()
        return event

    def read(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []

        events = []
        with open(self.path, "r") as f:
            for line in f:
                line = line.strip()
                if line:
                    try:
                        events.append(json.loads(line))
                    except json.JSONDecodeError:
                        continue  # Skip malformed lines
        return events

    def last(self) -> Optional[Dict[str, Any]]:
        events = self.read()
        return events[-1] if events else None


class NullEventLog(EventLog):
    """Event log that records in memory only; used when no state home is wanted."""

    def __init__(self):
        super().__init__(Path("."))
        self.events: List[Dict[str, Any]] = []

    def emit(self, event_type: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        event = {"ts": datetime.now().isoformat(), "type": event_type, "data": data or {}}
        self.events.append(event)
        return event

    def read(self) -> List[Dict[str, Any]]:
        return list(self.events)


def configure_logging(log_file: Optional[Path] = None, verbose: bool = False) -> None:
    """
    Configure the ``ctiprov`` logger.

    Lines are appended to ``log_file`` as ``YYYY-MM-DD HH:MM:SS - message``;
    ``verbose`` also mirrors them to stderr.
    """
    root = logging.getLogger("ctiprov")
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

    if log_file is not None:
        log_file = Path(log_file)
        ensure_state_home(log_file.parent)
        file_handler = logging.FileHandler(log_file, mode="a")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    if verbose:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(formatter)
        root.addHandler(stream_handler)
