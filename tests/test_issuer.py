import asyncio
from dataclasses import replace

import pytest

from gatepass import credential, issuer as issuer_module
from gatepass.errors import PaymentRejected
from gatepass.model.paymentsession import CREATED

from .conftest import CREDENTIAL_SECRET


async def test_issue_creates_ticket_from_session(verified_session, issuer,
                                                 tickets, payer):
    ps = await verified_session("Solo", 2)
    issued = await issuer.issue(ps, payer)

    assert issued.created is True
    t = issued.ticket
    assert t.owner_id == payer.user_id
    assert t.owner_email == payer.email
    assert t.gateway_order_id == ps.gateway_order_id
    assert t.gateway_payment_id == ps.gateway_payment_id
    assert (t.tier, t.quantity, t.unit_price, t.amount) == ("Solo", 2, 500,
                                                            1000)
    assert t.status == "paid"
    assert t.checked_in is False
    assert await tickets.get(t.id) == t

    cred = credential.parse(issued.payload, CREDENTIAL_SECRET)
    assert cred.id == t.id
    assert issued.qr_png and issued.qr_png.startswith(b"\x89PNG")


async def test_issue_is_idempotent_per_payment(verified_session, issuer,
                                               tickets, payer):
    ps = await verified_session()
    first = await issuer.issue(ps, payer)
    second = await issuer.issue(ps, payer)
    assert second.created is False
    assert second.ticket.id == first.ticket.id
    assert await tickets.count() == 1


async def test_concurrent_issue_yields_one_ticket(verified_session, issuer,
                                                  tickets, payer):
    ps = await verified_session()
    results = await asyncio.gather(*(issuer.issue(ps, payer)
                                     for _ in range(5)))
    assert len({r.ticket.id for r in results}) == 1
    assert sum(r.created for r in results) == 1
    assert await tickets.count() == 1


async def test_unverified_session_is_refused(verified_session, issuer,
                                             tickets, payer):
    ps = await verified_session()
    with pytest.raises(PaymentRejected):
        await issuer.issue(replace(ps, status=CREATED), payer)
    with pytest.raises(PaymentRejected):
        await issuer.issue(replace(ps, gateway_payment_id=None), payer)
    assert await tickets.count() == 0


async def test_qr_failure_does_not_lose_the_ticket(verified_session, issuer,
                                                   tickets, payer,
                                                   monkeypatch):
    def boom(payload, **kwargs):
        raise RuntimeError("renderer unavailable")

    monkeypatch.setattr(issuer_module.qr, "render_png", boom)
    ps = await verified_session()
    issued = await issuer.issue(ps, payer)
    assert issued.qr_png is None
    assert issued.payload
    assert await tickets.get(issued.ticket.id) is not None


async def test_latest_for_owner(issued_ticket, tickets, payer):
    await issued_ticket("Solo", 1)
    latest = await issued_ticket("Group", 1)
    assert (await tickets.latest_for_owner(payer.user_id)).id == latest.id
    assert await tickets.latest_for_owner("nobody") is None
