"""
Scan log store and per-run context.

Each scan/fix run gets its own RunContext with a fresh, append-only log.
The store remembers only the most recent run so ``/scan/logs`` shows the
latest pipeline's progress; an older run still in flight keeps appending to
its own log and cannot leak entries into the newer one.
"""

import logging
import threading
from typing import List, Optional, Union

from ..models.scan_log import RunStatus, ScanLogEntry

logger = logging.getLogger(__name__)


class ScanLog:
    """Thread-safe append-only list of ScanLogEntry."""

    def __init__(self):
        self._entries: List[ScanLogEntry] = []
        self._lock = threading.Lock()

    def append(self, entry: ScanLogEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def entries(self) -> List[ScanLogEntry]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RunContext:
    """Identity of one pipeline run plus the log it writes to."""

    def __init__(self, repo_id: Optional[Union[int, str]], username: Optional[str],
                 log: Optional[ScanLog] = None):
        self.repo_id = repo_id
        self.username = username
        self.log = log if log is not None else ScanLog()

    def emit(self, status: RunStatus, message: str) -> ScanLogEntry:
        """Append a timestamped event for this run."""
        entry = ScanLogEntry(
            repo_id=self.repo_id,
            username=self.username or "unknown",
            status=status,
            message=message,
        )
        self.log.append(entry)
        logger.debug(f"[{status.value}] repo={self.repo_id} {message}")
        return entry


class ScanLogStore:
    """Holds the log of the most recent run."""

    def __init__(self):
        self._current = ScanLog()
        self._lock = threading.Lock()

    def start_run(self, repo_id: Optional[Union[int, str]], username: Optional[str]) -> RunContext:
        """Begin a new run: previous entries are no longer visible."""
        log = ScanLog()
        with self._lock:
            self._current = log
        return RunContext(repo_id=repo_id, username=username, log=log)

    def entries(self) -> List[ScanLogEntry]:
        with self._lock:
            current = self._current
        return current.entries()
