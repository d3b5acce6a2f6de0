import asyncio

import orjson
import pytest

from gatepass import credential, qr
from gatepass.admission import CHECK_IN, CHECK_OUT, AdmissionController
from gatepass.auth import AdminSession, Payer
from gatepass.errors import (
    AlreadyCheckedIn, ErrorCode, InvalidAction, MalformedCredential,
    NotCheckedIn, TicketNotFound,
)
from gatepass.model.tickets import Ticket
from gatepass.pricing import PricingTable, build_order

from .conftest import CREDENTIAL_SECRET


@pytest.fixture
def gate(tickets) -> AdmissionController:
    return AdmissionController(tickets, CREDENTIAL_SECRET)


async def test_check_in_records_who_and_when(gate, issued_ticket, admin):
    t = await issued_ticket()
    checked = await gate.check_in(t.id, admin)
    assert checked.checked_in is True
    assert checked.checked_in_at is not None
    assert checked.checked_in_by == admin.admin_id


async def test_second_check_in_conflicts_and_keeps_first_time(
        gate, issued_ticket, tickets, admin):
    t = await issued_ticket()
    first = await gate.check_in(t.id, admin)
    with pytest.raises(AlreadyCheckedIn) as exc:
        await gate.check_in(t.id, AdminSession("alice"))
    assert exc.value.code is ErrorCode.ALREADY_CHECKED_IN
    assert exc.value.status_code == 409
    stored = await tickets.get(t.id)
    assert stored.checked_in_at == first.checked_in_at
    assert stored.checked_in_by == admin.admin_id


async def test_check_out_then_in_again(gate, issued_ticket, admin):
    t = await issued_ticket()
    await gate.check_in(t.id, admin)
    out = await gate.check_out(t.id, admin)
    assert out.checked_in is False
    assert out.checked_in_at is None
    assert out.checked_in_by is None
    again = await gate.check_in(t.id, admin)
    assert again.checked_in is True


async def test_check_out_without_check_in(gate, issued_ticket, admin):
    t = await issued_ticket()
    with pytest.raises(NotCheckedIn) as exc:
        await gate.check_out(t.id, admin)
    assert exc.value.code is ErrorCode.NOT_CHECKED_IN


@pytest.mark.parametrize("action", [CHECK_IN, CHECK_OUT])
async def test_unknown_ticket(gate, admin, action):
    with pytest.raises(TicketNotFound):
        await gate.apply("no-such-ticket", action, admin)


async def test_simultaneous_check_ins_admit_once(gate, issued_ticket, admin):
    t = await issued_ticket()
    results = await asyncio.gather(
        *(gate.check_in(t.id, admin) for _ in range(5)),
        return_exceptions=True,
    )
    admitted = [r for r in results if isinstance(r, Ticket)]
    rejected = [r for r in results if isinstance(r, AlreadyCheckedIn)]
    assert len(admitted) == 1
    assert len(rejected) == 4


@pytest.mark.parametrize("action", ["checkin", "", None, "CHECK_IN"])
async def test_invalid_action(gate, issued_ticket, admin, action):
    t = await issued_ticket()
    with pytest.raises(InvalidAction):
        await gate.apply(t.id, action, admin)
    with pytest.raises(InvalidAction):
        await gate.scan(credential.encode(t, CREDENTIAL_SECRET), action,
                        admin)


async def test_scan_resolves_and_checks_in(gate, issued_ticket, admin):
    t = await issued_ticket()
    raw = credential.encode(t, CREDENTIAL_SECRET)
    assert (await gate.resolve(raw)).id == t.id
    checked = await gate.scan(raw, CHECK_IN, admin)
    assert checked.id == t.id and checked.checked_in
    with pytest.raises(AlreadyCheckedIn):
        await gate.scan(raw, CHECK_IN, admin)


async def test_tampered_credential_never_reaches_the_ticket(
        gate, issued_ticket, tickets, admin):
    t = await issued_ticket()
    data = orjson.loads(credential.encode(t, CREDENTIAL_SECRET))
    data["sig"] = "0" * credential.SIG_HEX_CHARS
    with pytest.raises(MalformedCredential):
        await gate.scan(orjson.dumps(data).decode(), CHECK_IN, admin)
    assert (await tickets.get(t.id)).checked_in is False


async def test_credential_for_unknown_ticket(gate, issued_ticket, admin):
    t = await issued_ticket()
    from dataclasses import replace

    ghost = replace(t, id="ghost-ticket")
    with pytest.raises(TicketNotFound):
        await gate.scan(credential.encode(ghost, CREDENTIAL_SECRET), CHECK_IN,
                        admin)


async def test_credential_must_match_stored_payment(gate, issued_ticket,
                                                    admin):
    t = await issued_ticket()
    from dataclasses import replace

    forged = replace(t, gateway_payment_id="pay_other")
    with pytest.raises(MalformedCredential):
        await gate.resolve(credential.encode(forged, CREDENTIAL_SECRET))


async def test_scan_image(gate, issued_ticket, admin):
    t = await issued_ticket()
    png = qr.render_png(credential.encode(t, CREDENTIAL_SECRET))
    checked = await gate.scan_image(png, CHECK_IN, admin)
    assert checked.id == t.id and checked.checked_in


async def test_scan_image_without_code(gate, admin):
    with pytest.raises(MalformedCredential) as exc:
        await gate.scan_image(b"not an image", CHECK_IN, admin)
    assert exc.value.message == "No QR code found in image"


async def test_buy_two_solo_then_admit(manager, gateway, issuer, gate, admin):
    pricing = PricingTable({"Solo": 500})
    payer = Payer(user_id="fan-1", email="fan@example.com")
    order = build_order(pricing, "Solo", 2)
    assert order.total_amount == 1000

    ps, _ = await manager.create_session(order, payer)
    pay = gateway.new_payment_id()
    ps = await manager.verify(payer, ps.gateway_order_id, pay,
                              gateway.sign(ps.gateway_order_id, pay))
    issued = await issuer.issue(ps, payer)
    assert issued.ticket.amount == 1000

    checked = await gate.scan(issued.payload, CHECK_IN, admin)
    assert checked.checked_in
    with pytest.raises(AlreadyCheckedIn):
        await gate.scan(issued.payload, CHECK_IN, admin)
