from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from loguru import logger

from . import credential, qr
from .auth import Payer
from .errors import PaymentRejected
from .helpers import new_id, now_ts
from .infra.timings import timeit
from .model.paymentsession import VERIFIED, PaymentSession
from .model.tickets import Ticket, TicketStore


@dataclass(frozen=True)
class IssuedTicket:
    ticket: Ticket
    payload: str
    qr_png: Optional[bytes]
    created: bool


class TicketIssuer:
    def __init__(self, tickets: TicketStore, credential_secret: str) -> None:
        self.tickets = tickets
        self.credential_secret = credential_secret

    async def issue(self, session: PaymentSession,
                    payer: Payer) -> IssuedTicket:
        """Persist the ticket for a verified payment session.

        Idempotent per gateway_payment_id: repeated calls (duplicate
        callbacks, client retries) return the ticket that already exists.
        """
        if session.status != VERIFIED or not session.gateway_payment_id:
            raise PaymentRejected("Payment has not been verified")

        async with timeit("tickets.get_by_payment_id"):
            existing = await self.tickets.get_by_payment_id(
                session.gateway_payment_id
            )
        if existing is not None:
            logger.info(
                "ticket {} already issued for payment {}",
                existing.id, session.gateway_payment_id,
            )
            return self.render(existing, created=False)

        candidate = Ticket(
            id=new_id(),
            owner_id=payer.user_id,
            owner_email=payer.email or session.payer_email,
            gateway_order_id=session.gateway_order_id,
            gateway_payment_id=session.gateway_payment_id,
            amount=session.amount,
            currency=session.currency,
            tier=session.tier,
            quantity=session.quantity,
            unit_price=session.unit_price,
            created_at=now_ts(),
        )
        # check-then-insert alone races; the UNIQUE constraint settles it
        async with timeit("tickets.insert"):
            ticket, created = await self.tickets.insert_if_absent(candidate)
        if created:
            logger.info(
                "ticket {} issued: {} x{} = {} {} (payment {})",
                ticket.id, ticket.tier, ticket.quantity, ticket.amount,
                ticket.currency, ticket.gateway_payment_id,
            )
        else:
            logger.info(
                "concurrent issuance for payment {} resolved to ticket {}",
                ticket.gateway_payment_id, ticket.id,
            )
        return self.render(ticket, created=created)

    def render(self, ticket: Ticket, created: bool = False) -> IssuedTicket:
        payload = credential.encode(ticket, self.credential_secret)
        try:
            png = qr.render_png(payload)
        except Exception as e:
            # the stored ticket is the source of truth; the image is a nicety
            logger.warning("QR rendering failed for ticket {}: {}",
                           ticket.id, e)
            png = None
        return IssuedTicket(
            ticket=ticket, payload=payload, qr_png=png, created=created
        )
