# Ticket table shared by every request, plus the backends that
# make it durable (in-memory snapshot or the JSON ticket file).

import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Protocol, Sequence

from app.services.tickets import Ticket

logger = logging.getLogger(__name__)


class TicketBackend(Protocol):
    def load(self) -> List[Ticket]: ...

    def save(self, tickets: Sequence[Ticket]) -> None: ...


class MemoryBackend:
    """Keeps a serialised snapshot in memory. Used for tests and when no store path is set."""

    def __init__(self, tickets: Optional[Sequence[Ticket]] = None):
        self._records: List[dict] = [t.to_record() for t in tickets or []]

    def load(self) -> List[Ticket]:
        return [Ticket.from_record(dict(r)) for r in self._records]

    def save(self, tickets: Sequence[Ticket]) -> None:
        self._records = [t.to_record() for t in tickets]


class JsonFileBackend:
    """
    Stores the whole ticket table as one JSON list. Every save rewrites the
    file through a temporary file and an atomic rename, so readers never see
    a half-written table.
    """

    def __init__(self, path: str):
        self.path = path

    def load(self) -> List[Ticket]:
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)

        # An empty table may have been written as null
        if data is None:
            return []
        if not isinstance(data, list):
            raise ValueError(f"{self.path} does not contain a list of tickets")
        return [Ticket.from_record(record) for record in data]

    def save(self, tickets: Sequence[Ticket]) -> None:
        payload = json.dumps([t.to_record() for t in tickets], indent=2)
        directory = os.path.dirname(os.path.abspath(self.path))
        fd, tmp_path = tempfile.mkstemp(prefix=".tickets-", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            # mkstemp creates 0600; keep the ticket file readable like before
            os.chmod(tmp_path, 0o644)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise


class TicketStore:
    """
    Process-wide ticket table guarded by a single reentrant lock.

    The backend has no transactions of its own, so callers run every
    reload-mutate-persist sequence inside ``locked()``. Load and save
    failures are logged and never raised: the table keeps serving from
    memory until the backend recovers.

    Deleted ids are remembered until a save succeeds, so a reload from a
    stale backend cannot bring a consumed ticket back.
    """

    def __init__(self, backend: Optional[TicketBackend] = None):
        self.backend = backend if backend is not None else MemoryBackend()
        self._lock = threading.RLock()
        self._tickets: Dict[str, Ticket] = {}
        # ticket id -> issued_at, for deletions not yet persisted
        self._unsaved_deletes: Dict[str, int] = {}
        self.load()

    @contextmanager
    def locked(self) -> Iterator["TicketStore"]:
        with self._lock:
            yield self

    def load(self) -> List[Ticket]:
        with self._lock:
            try:
                tickets = self.backend.load()
            except FileNotFoundError:
                logger.info("No ticket file yet, keeping the current table")
                return list(self._tickets.values())
            except (OSError, ValueError) as e:
                logger.warning(f"Failed to load tickets, keeping the current table: {e}")
                return list(self._tickets.values())

            tickets = [t for t in tickets if t.id not in self._unsaved_deletes]
            self._tickets = {t.id: t for t in tickets}
            return tickets

    def save(self) -> bool:
        with self._lock:
            try:
                self.backend.save(list(self._tickets.values()))
            except OSError as e:
                logger.error(f"Failed to save {len(self._tickets)} tickets: {e}")
                return False
            self._unsaved_deletes.clear()
            return True

    def add(self, ticket: Ticket) -> None:
        with self._lock:
            if ticket.id in self._tickets:
                raise ValueError(f"Ticket {ticket.id} already exists")
            self._tickets[ticket.id] = ticket

    def find(self, ticket_id: str) -> Optional[Ticket]:
        with self._lock:
            return self._tickets.get(ticket_id)

    def update(self, ticket: Ticket) -> None:
        with self._lock:
            if ticket.id not in self._tickets:
                raise KeyError(ticket.id)
            self._tickets[ticket.id] = ticket

    def delete(self, ticket_id: str) -> None:
        with self._lock:
            ticket = self._tickets.pop(ticket_id, None)
            if ticket is not None:
                self._unsaved_deletes[ticket_id] = ticket.issued_at

    def sweep_expired(self, now: int, ttl_seconds: int) -> None:
        with self._lock:
            expired = [t.id for t in self._tickets.values() if t.is_expired(now, ttl_seconds)]
            for ticket_id in expired:
                logger.info(f"Found expired ticket: {ticket_id}, delete it")
                del self._tickets[ticket_id]

            # An expired ticket reloaded from the backend is swept again
            self._unsaved_deletes = {
                ticket_id: issued_at
                for ticket_id, issued_at in self._unsaved_deletes.items()
                if now - issued_at <= ttl_seconds
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._tickets)
