from __future__ import annotations
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from ...helpers import now_ts
from ...infra.sql import Gated
from ..orm import PaymentSessionRow
from . import CREATED, PaymentSession


def _from_row(row: PaymentSessionRow) -> PaymentSession:
    return PaymentSession(
        gateway_order_id=row.gateway_order_id,
        amount=row.amount,
        currency=row.currency,
        tier=row.tier,
        quantity=row.quantity,
        unit_price=row.unit_price,
        payer_id=row.payer_id,
        payer_email=row.payer_email,
        created_at=row.created_at,
        status=row.status,
        finalized_at=row.finalized_at,
        gateway_payment_id=row.gateway_payment_id,
    )


class PaymentSessionStore:
    def __init__(self, *, Session: async_sessionmaker, gated: Gated) -> None:
        self.Session = Session
        self.gated = gated

    async def save(self, ps: PaymentSession) -> None:
        async with self.gated():
            async with self.Session() as db:
                async with db.begin():
                    db.add(PaymentSessionRow(
                        gateway_order_id=ps.gateway_order_id,
                        amount=ps.amount,
                        currency=ps.currency,
                        status=ps.status,
                        tier=ps.tier,
                        quantity=ps.quantity,
                        unit_price=ps.unit_price,
                        payer_id=ps.payer_id,
                        payer_email=ps.payer_email,
                        created_at=ps.created_at,
                        finalized_at=ps.finalized_at,
                        gateway_payment_id=ps.gateway_payment_id,
                    ))

    async def get(self, gateway_order_id: str) -> Optional[PaymentSession]:
        async with self.gated():
            async with self.Session() as db:
                row = await db.get(PaymentSessionRow, gateway_order_id)
                return _from_row(row) if row else None

    async def finalize(self, gateway_order_id: str, status: str,
                       gateway_payment_id: Optional[str] = None) -> bool:
        # created -> verified|failed, once; terminal states never move
        async with self.gated():
            async with self.Session() as db:
                async with db.begin():
                    result = await db.execute(
                        update(PaymentSessionRow)
                        .where(
                            PaymentSessionRow.gateway_order_id
                            == gateway_order_id
                        )
                        .where(PaymentSessionRow.status == CREATED)
                        .values(
                            status=status,
                            finalized_at=now_ts(),
                            gateway_payment_id=gateway_payment_id,
                        )
                        .execution_options(synchronize_session=False)
                    )
                    return result.rowcount == 1

    async def recent(self, limit: int = 200) -> List[PaymentSession]:
        async with self.gated():
            async with self.Session() as db:
                rows = (await db.execute(
                    select(PaymentSessionRow)
                    .order_by(PaymentSessionRow.created_at.desc())
                    .limit(max(1, min(limit, 500)))
                )).scalars().all()
        return [_from_row(r) for r in rows]
