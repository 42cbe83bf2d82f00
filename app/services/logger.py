import csv
import logging
import os
import threading
import time

from app.core.config import settings

HEADER = ["timestamp", "event_type", "ticket_id", "outcome", "latency_ms"]

logger = logging.getLogger(__name__)


class EventLog:
    """Appends one CSV row per endpoint outcome. An empty path disables it."""

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return bool(self.path)

    def record(self, event_type: str, ticket_id: str, outcome: str, latency_ms: int = 0) -> None:
        if not self.enabled:
            return
        with self._lock:
            try:
                # Initialize CSV with headers if it doesn't exist
                write_header = not os.path.exists(self.path)
                with open(self.path, "a", newline="") as f:
                    writer = csv.writer(f)
                    if write_header:
                        writer.writerow(HEADER)
                    writer.writerow([time.time(), event_type, ticket_id, outcome, latency_ms])
            except OSError as e:
                logger.warning(f"Failed to write event log {self.path}: {e}")

events = EventLog(settings.EVENT_LOG_FILE)
