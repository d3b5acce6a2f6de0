# payment sessions kept in redis hashes
from __future__ import annotations
from typing import Dict, List, Optional
import redis.asyncio as redis

from ...helpers import now_ts
from . import CREATED, PaymentSession


# ---- keys
def k_ps(order_id: str) -> str: return f"ps:{order_id}"
def k_final(order_id: str) -> str: return f"psfinal:{order_id}"


RECENT_INDEX = "paymentsessions"


def _to_mapping(ps: PaymentSession) -> Dict[str, str]:
    # mapping values are strings for decode_responses=True
    return {
        "gateway_order_id": ps.gateway_order_id,
        "amount": str(ps.amount),
        "currency": ps.currency,
        "tier": ps.tier,
        "quantity": str(ps.quantity),
        "unit_price": str(ps.unit_price),
        "payer_id": ps.payer_id,
        "payer_email": ps.payer_email or "",
        "created_at": str(ps.created_at),
        "status": ps.status,
        "finalized_at": "" if ps.finalized_at is None else str(
            ps.finalized_at
        ),
        "gateway_payment_id": ps.gateway_payment_id or "",
    }


def _from_mapping(h: Dict[str, str]) -> PaymentSession:
    fin = h.get("finalized_at") or ""
    return PaymentSession(
        gateway_order_id=h["gateway_order_id"],
        amount=int(h["amount"]),
        currency=h["currency"],
        tier=h["tier"],
        quantity=int(h["quantity"]),
        unit_price=int(h["unit_price"]),
        payer_id=h["payer_id"],
        payer_email=h.get("payer_email") or None,
        created_at=float(h.get("created_at", "0")),
        status=h.get("status", CREATED),
        finalized_at=float(fin) if fin else None,
        gateway_payment_id=h.get("gateway_payment_id") or None,
    )


class PaymentSessionStore:
    def __init__(self, r: redis.Redis, ttl_seconds: int) -> None:
        self.r = r
        self.ttl = ttl_seconds

    async def save(self, ps: PaymentSession) -> None:
        pipe = self.r.pipeline(transaction=True)
        pipe.hset(k_ps(ps.gateway_order_id), mapping=_to_mapping(ps))
        pipe.expire(k_ps(ps.gateway_order_id), self.ttl)
        pipe.zadd(RECENT_INDEX, {ps.gateway_order_id: float(ps.created_at)})
        await pipe.execute()

    async def get(self, gateway_order_id: str) -> Optional[PaymentSession]:
        pipe = self.r.pipeline()
        pipe.hgetall(k_ps(gateway_order_id))
        pipe.get(k_final(gateway_order_id))
        h, final = await pipe.execute()
        if not h:
            return None
        # the gate is authoritative while the hash update is in flight
        if final:
            status, _, payment_id = final.partition(":")
            h["status"] = status
            if payment_id:
                h["gateway_payment_id"] = payment_id
        return _from_mapping(h)

    async def finalize(self, gateway_order_id: str, status: str,
                       gateway_payment_id: Optional[str] = None) -> bool:
        if not await self.r.exists(k_ps(gateway_order_id)):
            return False
        # NX gate: only the first finalizer moves the session out of created
        ok = await self.r.set(
            k_final(gateway_order_id), f"{status}:{gateway_payment_id or ''}",
            nx=True, ex=self.ttl,
        )
        if not ok:
            return False
        pipe = self.r.pipeline(transaction=True)
        pipe.hset(k_ps(gateway_order_id), mapping={
            "status": status,
            "finalized_at": str(now_ts()),
            "gateway_payment_id": gateway_payment_id or "",
        })
        await pipe.execute()
        return True

    async def recent(self, limit: int = 200) -> List[PaymentSession]:
        ids = await self.r.zrevrange(RECENT_INDEX, 0, max(0, limit - 1))
        pipe = self.r.pipeline()
        for order_id in ids:
            pipe.hgetall(k_ps(order_id))
        rows = await pipe.execute()

        items = []
        for order_id, h in zip(ids, rows):
            # house-keeping: hash expired, drop it from the index
            if not h:
                await self.r.zrem(RECENT_INDEX, order_id)
                continue
            items.append(_from_mapping(h))
        return items
