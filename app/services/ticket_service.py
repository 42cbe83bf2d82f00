import logging
import time
from typing import Callable, Optional

from app.db import TicketStore
from app.services.ids import SnowflakeGenerator
from app.services.qr_service import QRService
from app.services.tickets import (
    ClaimResult,
    IssueResult,
    Outcome,
    PollResult,
    Ticket,
    TicketState,
)

"""TicketService: Handles the ticket lifecycle of the scan-to-login flow"""


logger = logging.getLogger(__name__)


class TicketService:
    def __init__(
        self,
        store: TicketStore,
        ttl_seconds: int,
        id_generator: Optional[Callable[[], str]] = None,
        frontend_origin: str = "",
        clock: Callable[[], float] = time.time,
    ):
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must not be negative")
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.id_generator = id_generator or SnowflakeGenerator().next_id
        self.frontend_origin = frontend_origin.rstrip("/")
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    def issue(self, requester_address: str) -> IssueResult:
        """
        Creates a new pending ticket for the desktop client.
        Expired tickets are swept in the same critical section, so a
        concurrent sweep can never drop a freshly issued ticket.
        Returns the ticket id and the URL to encode into the QR code.
        """
        with self.store.locked():
            self.store.load()
            now = self._now()
            self.store.sweep_expired(now, self.ttl_seconds)

            # IdGenerationError propagates: the caller cannot be given a ticket
            ticket_id = self.id_generator()
            self.store.add(Ticket(id=ticket_id, requester_address=requester_address, issued_at=now))
            self.store.save()

        logger.info(f"Ticket Issued: ticket_id={ticket_id}, requester={requester_address}")
        url = QRService.build_scan_url(self.frontend_origin, ticket_id, requester_address)
        return IssueResult(ticket_id=ticket_id, url=url)

    def claim(self, ticket_id: str, user_id: str) -> ClaimResult:
        """
        Phone side: binds user_id to a pending ticket.
        Claiming again with the same user_id succeeds without changes;
        a different user_id is rejected with ``claimed``.
        """
        if not ticket_id:
            raise ValueError("ticket_id is required")
        if not user_id:
            raise ValueError("user_id is required")

        with self.store.locked():
            self.store.load()
            ticket = self.store.find(ticket_id)
            if ticket is None:
                logger.warning(f"Claim failed: ticket_id={ticket_id} not found")
                return ClaimResult(success=False, message=Outcome.NOT_FOUND)

            state = ticket.state(self._now(), self.ttl_seconds)
            if state == TicketState.EXPIRED:
                self.store.delete(ticket_id)
                self.store.save()
                logger.info(f"Claim failed: ticket_id={ticket_id} expired")
                return ClaimResult(success=False, message=Outcome.EXPIRED)

            if state == TicketState.CLAIMED:
                if ticket.user_id == user_id:
                    return ClaimResult(success=True, message=Outcome.SUCCESS)
                logger.warning(f"Claim rejected: ticket_id={ticket_id} already claimed by another user")
                return ClaimResult(success=False, message=Outcome.ALREADY_CLAIMED)

            self.store.update(Ticket(
                id=ticket.id,
                requester_address=ticket.requester_address,
                issued_at=ticket.issued_at,
                user_id=user_id,
            ))
            self.store.save()

        logger.info(f"Ticket Claimed: ticket_id={ticket_id}, user={user_id}")
        return ClaimResult(success=True, message=Outcome.SUCCESS)

    def poll(self, ticket_id: str) -> PollResult:
        """
        Desktop side: checks whether the ticket has been claimed.
        A claimed ticket is deleted as it is reported, so only one poll
        ever sees ``success``.
        """
        with self.store.locked():
            self.store.load()
            ticket = self.store.find(ticket_id)
            if ticket is None:
                return PollResult(success=False, user_id="", message=Outcome.NOT_FOUND)

            state = ticket.state(self._now(), self.ttl_seconds)
            if state == TicketState.EXPIRED:
                self.store.delete(ticket_id)
                self.store.save()
                logger.info(f"Ticket expired during poll: ticket_id={ticket_id}")
                return PollResult(success=False, user_id="", message=Outcome.EXPIRED)

            if state == TicketState.PENDING:
                return PollResult(success=False, user_id="", message=Outcome.NOT_YET)

            self.store.delete(ticket_id)
            self.store.save()

        logger.info(f"Ticket Consumed: ticket_id={ticket_id}, user={ticket.user_id}")
        return PollResult(success=True, user_id=ticket.user_id, message=Outcome.SUCCESS)

    def discard(self, ticket_id: str) -> None:
        with self.store.locked():
            self.store.load()
            if self.store.find(ticket_id) is None:
                return
            self.store.delete(ticket_id)
            self.store.save()
        logger.info(f"Ticket Discarded: ticket_id={ticket_id}")

    def sweep(self) -> None:
        with self.store.locked():
            self.store.load()
            before = len(self.store)
            self.store.sweep_expired(self._now(), self.ttl_seconds)
            if len(self.store) != before:
                self.store.save()
