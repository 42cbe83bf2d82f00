# Background removal of abandoned tickets, so the table does not
# grow between requests.

import logging
import threading
from typing import Optional

from app.services.ticket_service import TicketService

logger = logging.getLogger(__name__)


class TicketSweeper:
    def __init__(self, service: TicketService, interval_seconds: float):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.service = service
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="ticket-sweeper", daemon=True)
        self._thread.start()
        logger.info(f"Ticket sweeper started, interval={self.interval_seconds}s")

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def run_once(self) -> None:
        try:
            self.service.sweep()
        except Exception:
            # Keep sweeping on the next tick
            logger.exception("Ticket sweep failed")

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            self.run_once()
