# Login ticket model and the lifecycle outcomes reported
# back to the desktop and phone clients.


from dataclasses import dataclass
from enum import Enum


class TicketState(str, Enum):
    """Logical state of a ticket, derived from its fields and the current time."""

    PENDING = "pending"
    CLAIMED = "claimed"
    EXPIRED = "expired"


class Outcome(str, Enum):
    SUCCESS = "success"
    NOT_FOUND = "notfound"
    EXPIRED = "expired"
    NOT_YET = "notyet"
    ALREADY_CLAIMED = "claimed"


@dataclass(frozen=True)
class Ticket:
    id: str
    requester_address: str
    issued_at: int
    user_id: str = ""

    def is_expired(self, now: int, ttl_seconds: int) -> bool:
        return now - self.issued_at > ttl_seconds

    def state(self, now: int, ttl_seconds: int) -> TicketState:
        if self.is_expired(now, ttl_seconds):
            return TicketState.EXPIRED
        if self.user_id:
            return TicketState.CLAIMED
        return TicketState.PENDING

    def to_record(self) -> dict:
        """
        Serialises the ticket using the field names of the on-disk
        ticket file (uuid, ip, user_id, generate_time).
        """
        return {
            "uuid": self.id,
            "ip": self.requester_address,
            "user_id": self.user_id,
            "generate_time": self.issued_at,
        }

    @classmethod
    def from_record(cls, record: dict) -> "Ticket":
        if not isinstance(record, dict):
            raise ValueError(f"Ticket record must be an object, got {type(record).__name__}")
        try:
            ticket_id = record["uuid"]
            issued_at = record["generate_time"]
        except KeyError as e:
            raise ValueError(f"Ticket record missing field {e}") from e

        if not isinstance(ticket_id, str) or not ticket_id:
            raise ValueError("Ticket record has an invalid uuid")
        if isinstance(issued_at, bool) or not isinstance(issued_at, int):
            raise ValueError(f"Ticket {ticket_id} has an invalid generate_time")

        return cls(
            id=ticket_id,
            requester_address=str(record.get("ip") or ""),
            issued_at=issued_at,
            user_id=str(record.get("user_id") or ""),
        )


@dataclass(frozen=True)
class IssueResult:
    ticket_id: str
    url: str


@dataclass(frozen=True)
class ClaimResult:
    success: bool
    message: Outcome


@dataclass(frozen=True)
class PollResult:
    success: bool
    user_id: str
    message: Outcome
