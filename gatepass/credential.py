"""The QR credential payload: what gets printed on a ticket and scanned at
the gate.

The payload is compact JSON. Its identifying fields are bound together by a
truncated HMAC so a hand-edited payload is detected before any lookup. Extra
fields are tolerated and ignored by the parser; the stored ticket is always
the authority for amounts and tiers.
"""
from __future__ import annotations
from typing import Optional

import orjson
from pydantic import BaseModel, ConfigDict, ValidationError

from .errors import MalformedCredential
from .helpers import ct_equal, hmac_hex, utf8_len
from .model.tickets import Ticket

MAX_PAYLOAD_BYTES = 512
SIG_HEX_CHARS = 32


class Credential(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    order_id: str
    payment_id: str
    amount: int
    currency: str
    sig: str
    tier: Optional[str] = None
    quantity: Optional[int] = None
    created_at: Optional[float] = None


def _sign(secret: str, ticket_id: str, order_id: str, payment_id: str) -> str:
    return hmac_hex(secret, f"{ticket_id}|{order_id}|{payment_id}")[
        :SIG_HEX_CHARS
    ]


def encode(ticket: Ticket, secret: str) -> str:
    payload = orjson.dumps({
        "id": ticket.id,
        "order_id": ticket.gateway_order_id,
        "payment_id": ticket.gateway_payment_id,
        "amount": ticket.amount,
        "currency": ticket.currency,
        "tier": ticket.tier,
        "quantity": ticket.quantity,
        "created_at": ticket.created_at,
        "sig": _sign(secret, ticket.id, ticket.gateway_order_id,
                     ticket.gateway_payment_id),
    })
    if len(payload) > MAX_PAYLOAD_BYTES:
        raise ValueError(
            f"credential payload is {len(payload)} bytes, "
            f"max {MAX_PAYLOAD_BYTES}"
        )
    return payload.decode()


def parse(raw: Optional[str], secret: str) -> Credential:
    if not raw or not raw.strip():
        raise MalformedCredential("Empty QR payload")
    if utf8_len(raw) > 4 * MAX_PAYLOAD_BYTES:
        raise MalformedCredential("QR payload too large")
    try:
        data = orjson.loads(raw.strip())
    except (orjson.JSONDecodeError, UnicodeError):
        raise MalformedCredential("Invalid QR code format") from None
    if not isinstance(data, dict):
        raise MalformedCredential("Invalid QR code format")
    try:
        cred = Credential.model_validate(data)
    except ValidationError:
        raise MalformedCredential("QR payload is missing ticket fields") \
            from None
    expected = _sign(secret, cred.id, cred.order_id, cred.payment_id)
    if not ct_equal(expected, cred.sig):
        raise MalformedCredential("QR payload signature mismatch")
    return cred
