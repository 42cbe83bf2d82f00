import os

# Keep tests away from the on-disk ticket file and the background sweeper
os.environ["TICKET_STORE_PATH"] = ""
os.environ["SWEEP_INTERVAL_SECONDS"] = "0"
os.environ["EVENT_LOG_FILE"] = ""

import pytest

from app.db import MemoryBackend, TicketStore
from app.services.ticket_service import TicketService


class FakeClock:
    """Manually advanced clock, in seconds."""

    def __init__(self, now: float = 1_700_000_000):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return TicketStore(MemoryBackend())


@pytest.fixture
def service(store, clock):
    return TicketService(
        store,
        ttl_seconds=10,
        frontend_origin="http://phone.test:3000",
        clock=clock,
    )
