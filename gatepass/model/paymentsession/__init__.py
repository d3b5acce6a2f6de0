# model/paymentsession/__init__.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import async_sessionmaker

from ...helpers import to_iso
from ...infra.sql import Gated

CREATED = "created"
VERIFIED = "verified"
FAILED = "failed"


@dataclass(frozen=True)
class PaymentSession:
    gateway_order_id: str
    amount: int
    currency: str
    tier: str
    quantity: int
    unit_price: int
    payer_id: str
    payer_email: Optional[str]
    created_at: float
    status: str = CREATED
    finalized_at: Optional[float] = None
    gateway_payment_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gateway_order_id": self.gateway_order_id,
            "amount": self.amount,
            "currency": self.currency,
            "tier": self.tier,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "payer_id": self.payer_id,
            "payer_email": self.payer_email,
            "status": self.status,
            "created_at": to_iso(self.created_at),
            "finalized_at": to_iso(self.finalized_at),
            "gateway_payment_id": self.gateway_payment_id,
        }


from ._sql import PaymentSessionStore as SqlPaymentSessionStore  # noqa: E402
from ._redis import PaymentSessionStore as RedisPaymentSessionStore  # noqa: E402,E501


# Factory keeps server.py simple and constructor-agnostic:
def new_store(backend: str, *,
              Session: Optional[async_sessionmaker] = None,
              gated: Optional[Gated] = None,
              r: Optional[redis.Redis] = None,
              ttl_seconds: int = 24 * 3600):
    if backend == "sql":
        if Session is None or gated is None:
            raise RuntimeError(
                "PaymentSessionStore(sql) requires Session and gated"
            )
        return SqlPaymentSessionStore(Session=Session, gated=gated)
    if backend == "redis":
        if r is None:
            raise RuntimeError(
                "PaymentSessionStore(redis) requires r=redis.Redis"
            )
        return RedisPaymentSessionStore(r=r, ttl_seconds=ttl_seconds)
    raise RuntimeError(f"unknown payment session backend {backend!r}")


__all__ = [
    "PaymentSession", "SqlPaymentSessionStore", "RedisPaymentSessionStore",
    "new_store", "CREATED", "VERIFIED", "FAILED",
]
