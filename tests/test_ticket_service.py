from concurrent.futures import ThreadPoolExecutor
from urllib.parse import parse_qs, urlparse

import pytest

from app.db import MemoryBackend, TicketStore
from app.services.ids import IdGenerationError
from app.services.ticket_service import TicketService
from app.services.tickets import Outcome, PollResult, Ticket, TicketState


def fixed_ids(*ids):
    remaining = list(ids)
    return lambda: remaining.pop(0)


def test_issue_creates_pending_ticket(service, store, clock):
    issued = service.issue("10.0.0.5")

    ticket = store.find(issued.ticket_id)
    assert ticket is not None
    assert ticket.requester_address == "10.0.0.5"
    assert ticket.user_id == ""
    assert ticket.issued_at == int(clock.now)
    assert ticket.state(int(clock.now), 10) == TicketState.PENDING


def test_issue_url_embeds_ticket_and_requester(service):
    issued = service.issue("10.0.0.5")

    parsed = urlparse(issued.url)
    assert f"{parsed.scheme}://{parsed.netloc}" == "http://phone.test:3000"
    assert parsed.path == "/phone"
    qs = parse_qs(parsed.query)
    assert qs["uuid"] == [issued.ticket_id]
    assert qs["ip"] == ["10.0.0.5"]


def test_issue_sweeps_expired_tickets(service, store, clock):
    old = service.issue("a")
    clock.advance(11)
    new = service.issue("b")

    assert store.find(old.ticket_id) is None
    assert store.find(new.ticket_id) is not None


def test_issue_ids_are_unique_in_a_burst(service):
    ids = {service.issue("burst").ticket_id for _ in range(500)}
    assert len(ids) == 500


def test_issue_propagates_id_generation_failure(store, clock):
    def broken():
        raise IdGenerationError("Clock moved backwards by 5 ms")

    svc = TicketService(store, ttl_seconds=10, id_generator=broken, clock=clock)
    with pytest.raises(IdGenerationError):
        svc.issue("10.0.0.5")
    assert len(store) == 0


def test_issue_survives_save_failure(clock):
    class ReadOnlyBackend(MemoryBackend):
        def save(self, tickets):
            raise OSError("read-only file system")

    store = TicketStore(ReadOnlyBackend())
    svc = TicketService(store, ttl_seconds=10, clock=clock)

    issued = svc.issue("10.0.0.5")
    assert store.find(issued.ticket_id) is not None


def test_poll_before_claim_is_notyet(service):
    issued = service.issue("desk")
    assert service.poll(issued.ticket_id) == PollResult(False, "", Outcome.NOT_YET)


def test_poll_unknown_ticket_is_notfound(service):
    assert service.poll("does-not-exist") == PollResult(False, "", Outcome.NOT_FOUND)


def test_claim_unknown_ticket_is_notfound(service):
    res = service.claim("does-not-exist", "user42")
    assert not res.success
    assert res.message == Outcome.NOT_FOUND


@pytest.mark.parametrize("ticket_id, user_id", [("", "user42"), ("123", "")])
def test_claim_requires_ticket_and_user(service, ticket_id, user_id):
    with pytest.raises(ValueError):
        service.claim(ticket_id, user_id)


def test_claim_then_poll_returns_user_once(service):
    issued = service.issue("desk")

    res = service.claim(issued.ticket_id, "alice")
    assert res.success
    assert res.message == Outcome.SUCCESS

    assert service.poll(issued.ticket_id) == PollResult(True, "alice", Outcome.SUCCESS)
    # Single use
    assert service.poll(issued.ticket_id) == PollResult(False, "", Outcome.NOT_FOUND)


def test_reclaim_by_same_user_is_idempotent(service, store):
    issued = service.issue("desk")
    service.claim(issued.ticket_id, "alice")

    res = service.claim(issued.ticket_id, "alice")
    assert res.success
    assert store.find(issued.ticket_id).user_id == "alice"


def test_reclaim_by_other_user_is_rejected(service, store):
    issued = service.issue("desk")
    service.claim(issued.ticket_id, "alice")

    res = service.claim(issued.ticket_id, "mallory")
    assert not res.success
    assert res.message == Outcome.ALREADY_CLAIMED
    assert store.find(issued.ticket_id).user_id == "alice"


def test_claim_after_expiry_deletes_ticket(service, store, clock):
    issued = service.issue("desk")
    clock.advance(11)

    res = service.claim(issued.ticket_id, "alice")
    assert not res.success
    assert res.message == Outcome.EXPIRED
    assert store.find(issued.ticket_id) is None


def test_expiry_boundary(service, clock):
    at_ttl = service.issue("desk")
    clock.advance(10)
    assert service.poll(at_ttl.ticket_id).message == Outcome.NOT_YET
    assert service.claim(at_ttl.ticket_id, "alice").success

    clock.advance(1)
    assert service.poll(at_ttl.ticket_id) == PollResult(False, "", Outcome.EXPIRED)
    assert service.poll(at_ttl.ticket_id) == PollResult(False, "", Outcome.NOT_FOUND)


def test_claimed_ticket_still_expires(service, clock):
    issued = service.issue("desk")
    service.claim(issued.ticket_id, "alice")
    clock.advance(11)

    assert service.poll(issued.ticket_id).message == Outcome.EXPIRED


def test_scenario_claim_and_consume(store, clock):
    svc = TicketService(store, ttl_seconds=10, id_generator=fixed_ids("A"), clock=clock)

    assert svc.issue("desk").ticket_id == "A"
    clock.advance(1)
    assert svc.poll("A") == PollResult(False, "", Outcome.NOT_YET)
    clock.advance(1)
    res = svc.claim("A", "user42")
    assert (res.success, res.message) == (True, Outcome.SUCCESS)
    clock.advance(1)
    assert svc.poll("A") == PollResult(True, "user42", Outcome.SUCCESS)
    clock.advance(1)
    assert svc.poll("A") == PollResult(False, "", Outcome.NOT_FOUND)


def test_scenario_expired_ticket(store, clock):
    svc = TicketService(store, ttl_seconds=10, id_generator=fixed_ids("B"), clock=clock)

    svc.issue("desk")
    clock.advance(11)
    assert svc.poll("B") == PollResult(False, "", Outcome.EXPIRED)
    clock.advance(1)
    assert svc.poll("B") == PollResult(False, "", Outcome.NOT_FOUND)


def test_discard_is_idempotent(service, store):
    issued = service.issue("desk")

    service.discard(issued.ticket_id)
    service.discard(issued.ticket_id)
    service.discard("never-existed")

    assert store.find(issued.ticket_id) is None


def test_sweep_removes_only_expired(service, store, clock):
    old = service.issue("a")
    clock.advance(6)
    young = service.issue("b")
    clock.advance(5)

    service.sweep()

    assert store.find(old.ticket_id) is None
    assert store.find(young.ticket_id) is not None


def test_reload_picks_up_out_of_process_changes(clock):
    backend = MemoryBackend()
    svc = TicketService(TicketStore(backend), ttl_seconds=10, clock=clock)

    # Another process wrote a claimed ticket into the shared backend
    backend.save([Ticket(id="42", requester_address="x", issued_at=int(clock.now), user_id="bob")])

    assert svc.poll("42") == PollResult(True, "bob", Outcome.SUCCESS)
    assert backend.load() == []


def test_concurrent_issue_then_poll(service):
    m = 64
    with ThreadPoolExecutor(max_workers=16) as pool:
        issued = list(pool.map(lambda i: service.issue(f"10.0.0.{i}"), range(m)))
        ids = [r.ticket_id for r in issued]
        assert len(set(ids)) == m

        polls = list(pool.map(service.poll, ids))

    assert all(p == PollResult(False, "", Outcome.NOT_YET) for p in polls)
    assert len(service.store) == m


def test_concurrent_claims_are_not_lost(service):
    m = 32
    ids = [service.issue("desk").ticket_id for _ in range(m)]

    with ThreadPoolExecutor(max_workers=16) as pool:
        claims = list(pool.map(lambda i: service.claim(ids[i], f"user{i}"), range(m)))
        assert all(c.success for c in claims)
        polls = list(pool.map(service.poll, ids))

    assert [p.user_id for p in polls] == [f"user{i}" for i in range(m)]
    assert all(p.message == Outcome.SUCCESS for p in polls)


class FailingSaveBackend(MemoryBackend):
    def __init__(self):
        super().__init__()
        self.fail_save = False

    def save(self, tickets):
        if self.fail_save:
            raise OSError("disk full")
        super().save(tickets)


def test_consumed_ticket_stays_consumed_when_save_fails(clock):
    backend = FailingSaveBackend()
    svc = TicketService(TicketStore(backend), ttl_seconds=10, clock=clock)
    issued = svc.issue("desk")
    svc.claim(issued.ticket_id, "alice")

    backend.fail_save = True
    first = svc.poll(issued.ticket_id)
    second = svc.poll(issued.ticket_id)

    assert first == PollResult(True, "alice", Outcome.SUCCESS)
    assert second == PollResult(False, "", Outcome.NOT_FOUND)
    assert svc.claim(issued.ticket_id, "mallory").message == Outcome.NOT_FOUND

    # Once the backend recovers the deletion is written out
    backend.fail_save = False
    svc.issue("desk")
    assert issued.ticket_id not in {t.id for t in backend.load()}


def test_sweep_and_issue_running_together_keep_every_issued_ticket(clock):
    backend = MemoryBackend([
        Ticket(id=f"stale-{i}", requester_address="old", issued_at=int(clock.now) - 60)
        for i in range(20)
    ])
    store = TicketStore(backend)
    svc = TicketService(store, ttl_seconds=10, clock=clock)

    with ThreadPoolExecutor(max_workers=16) as pool:
        sweeps = [pool.submit(svc.sweep) for _ in range(40)]
        issues = [pool.submit(svc.issue, f"10.0.1.{i}") for i in range(40)]
        for f in sweeps:
            f.result()
        ids = [f.result().ticket_id for f in issues]

    persisted = {t.id for t in backend.load()}
    assert len(set(ids)) == 40
    assert all(store.find(ticket_id) is not None for ticket_id in ids)
    assert persisted == set(ids)
