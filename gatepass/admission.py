"""Gate admission: scanned credential -> ticket -> check-in/check-out.

Two states, NotCheckedIn and CheckedIn; an admin may move a ticket either
way. Each transition is one conditional UPDATE guarded on the current
`checked_in` value, so two simultaneous scans cannot both succeed.
"""
from __future__ import annotations
from typing import Optional

from loguru import logger

from . import credential, qr
from .auth import AdminSession
from .errors import (
    AlreadyCheckedIn, InvalidAction, MalformedCredential, NotCheckedIn,
    TicketNotFound,
)
from .helpers import now_ts
from .infra.timings import timeit
from .model.tickets import Ticket, TicketStore

CHECK_IN = "check_in"
CHECK_OUT = "check_out"
ACTIONS = (CHECK_IN, CHECK_OUT)


class AdmissionController:
    def __init__(self, tickets: TicketStore, credential_secret: str) -> None:
        self.tickets = tickets
        self.credential_secret = credential_secret

    async def resolve(self, raw_payload: Optional[str]) -> Ticket:
        cred = credential.parse(raw_payload, self.credential_secret)
        ticket = await self.lookup(cred.id)
        if (ticket.gateway_order_id != cred.order_id
                or ticket.gateway_payment_id != cred.payment_id):
            raise MalformedCredential("QR payload does not match the ticket")
        return ticket

    async def lookup(self, ticket_id: str) -> Ticket:
        ticket = await self.tickets.get(ticket_id)
        if ticket is None:
            raise TicketNotFound(ticket_id)
        return ticket

    async def check_in(self, ticket_id: str, admin: AdminSession) -> Ticket:
        async with timeit("admission.check_in"):
            updated = await self.tickets.conditional_update(
                ticket_id, expect_checked_in=False, values={
                    "checked_in": True,
                    "checked_in_at": now_ts(),
                    "checked_in_by": admin.admin_id,
                },
            )
        if updated is None:
            await self.lookup(ticket_id)
            logger.info("ticket {} already checked in (scan by {})",
                        ticket_id, admin.admin_id)
            raise AlreadyCheckedIn(ticket_id)
        logger.info("ticket {} checked in by {}", ticket_id, admin.admin_id)
        return updated

    async def check_out(self, ticket_id: str, admin: AdminSession) -> Ticket:
        async with timeit("admission.check_out"):
            updated = await self.tickets.conditional_update(
                ticket_id, expect_checked_in=True, values={
                    "checked_in": False,
                    "checked_in_at": None,
                    "checked_in_by": None,
                },
            )
        if updated is None:
            await self.lookup(ticket_id)
            raise NotCheckedIn(ticket_id)
        logger.info("ticket {} checked out by {}", ticket_id, admin.admin_id)
        return updated

    async def apply(self, ticket_id: str, action: str,
                    admin: AdminSession) -> Ticket:
        if action == CHECK_IN:
            return await self.check_in(ticket_id, admin)
        if action == CHECK_OUT:
            return await self.check_out(ticket_id, admin)
        raise InvalidAction(action)

    async def scan(self, raw_payload: Optional[str], action: str,
                   admin: AdminSession) -> Ticket:
        # camera capture and manual paste both end up here
        if action not in ACTIONS:
            raise InvalidAction(action)
        ticket = await self.resolve(raw_payload)
        return await self.apply(ticket.id, action, admin)

    def decode_image(self, image: bytes) -> str:
        payload = qr.decode_png(image)
        if payload is None:
            raise MalformedCredential("No QR code found in image")
        return payload

    async def scan_image(self, image: bytes, action: str,
                         admin: AdminSession) -> Ticket:
        return await self.scan(self.decode_image(image), action, admin)
