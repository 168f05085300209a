"""
Local state: the state home directory, the single-runner lock and the
last-run record.
"""

import fcntl
import json
import os
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from .errors import LockHeldError

LOCK_NAME = "ctiprov.lock"
RUN_RECORD_NAME = "last_run.json"


def ensure_state_home(state_home: Path) -> Path:
    """
    Create the state home directory if needed.

    Args:
        state_home: State directory

    Returns:
        Path: Resolved state directory
    """
    state_home = Path(state_home).expanduser().resolve()
    state_home.mkdir(parents=True, exist_ok=True)
    return state_home


@contextmanager
def provision_lock(state_home: Path) -> Iterator[Path]:
    """
    Hold an exclusive lock for the duration of a provisioning or teardown run.

    Raises:
        LockHeldError: If another ctiprov process holds the lock
    """
    lock_path = ensure_state_home(state_home) / LOCK_NAME
    f = lock_path.open("a+", encoding="utf-8")
    try:
        try:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            raise LockHeldError(
                f"Another ctiprov run is in progress (lock: {lock_path})",
                hint="Wait for it to finish; concurrent runs against one host are unsafe",
            )
        f.seek(0)
        f.truncate()
        f.write(f"pid={os.getpid()} started={datetime.now().isoformat()}\n")
        f.flush()
        yield lock_path
    finally:
        f.close()


def write_run_record(state_home: Path, record: Dict[str, Any]) -> None:
    """Write the summary of the most recent run."""
    path = ensure_state_home(state_home) / RUN_RECORD_NAME
    data = dict(record)
    data.setdefault("written_at", datetime.now().isoformat())
    with open(path, "w") as f:
        json.dump(data, f, indent=2)


def read_run_record(state_home: Path) -> Optional[Dict[str, Any]]:
    path = Path(state_home).expanduser() / RUN_RECORD_NAME
    if not path.exists():
        return None
    with open(path, "r") as f:
        return json.load(f)
