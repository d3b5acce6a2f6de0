from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..helpers import to_iso
from ..infra.sql import Gated
from .orm import TicketRow


@dataclass(frozen=True)
class Ticket:
    id: str
    owner_id: str
    owner_email: Optional[str]
    gateway_order_id: str
    gateway_payment_id: str
    amount: int
    currency: str
    tier: str
    quantity: int
    unit_price: int
    created_at: float
    status: str = "paid"
    checked_in: bool = False
    checked_in_at: Optional[float] = None
    checked_in_by: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["created_at"] = to_iso(self.created_at)
        d["checked_in_at"] = to_iso(self.checked_in_at)
        return d


def _from_row(row: TicketRow) -> Ticket:
    return Ticket(
        id=row.id,
        owner_id=row.owner_id,
        owner_email=row.owner_email,
        gateway_order_id=row.gateway_order_id,
        gateway_payment_id=row.gateway_payment_id,
        amount=row.amount,
        currency=row.currency,
        tier=row.tier,
        quantity=row.quantity,
        unit_price=row.unit_price,
        created_at=row.created_at,
        status=row.status,
        checked_in=bool(row.checked_in),
        checked_in_at=row.checked_in_at,
        checked_in_by=row.checked_in_by,
    )


class TicketStore:
    """The `tickets` record store.

    Writers are the issuer (insert) and the admission controller
    (conditional check-in/out updates). Everything else only reads.
    """

    def __init__(self, Session: async_sessionmaker, gated: Gated) -> None:
        self.Session = Session
        self.gated = gated

    async def get(self, ticket_id: str) -> Optional[Ticket]:
        async with self.gated():
            async with self.Session() as db:
                row = await db.get(TicketRow, ticket_id)
                return _from_row(row) if row else None

    async def get_by_payment_id(self, payment_id: str) -> Optional[Ticket]:
        async with self.gated():
            async with self.Session() as db:
                row = (await db.execute(
                    select(TicketRow).where(
                        TicketRow.gateway_payment_id == payment_id
                    )
                )).scalar_one_or_none()
                return _from_row(row) if row else None

    async def latest_for_owner(self, owner_id: str) -> Optional[Ticket]:
        async with self.gated():
            async with self.Session() as db:
                row = (await db.execute(
                    select(TicketRow)
                    .where(TicketRow.owner_id == owner_id)
                    .order_by(TicketRow.created_at.desc())
                    .limit(1)
                )).scalar_one_or_none()
                return _from_row(row) if row else None

    async def insert_if_absent(self, ticket: Ticket) -> Tuple[Ticket, bool]:
        """Insert `ticket` unless one exists for its gateway_payment_id.

        Returns (stored ticket, created). The UNIQUE constraint on
        gateway_payment_id settles concurrent inserts for the same payment.
        """
        try:
            async with self.gated():
                async with self.Session() as db:
                    async with db.begin():
                        db.add(TicketRow(**asdict(ticket)))
            return ticket, True
        except IntegrityError:
            # a concurrent issuance for the same payment won the race
            existing = await self.get_by_payment_id(ticket.gateway_payment_id)
            if existing is None:
                raise
            return existing, False

    async def conditional_update(
        self, ticket_id: str, expect_checked_in: bool, values: Dict[str, Any]
    ) -> Optional[Ticket]:
        """Apply `values` only if checked_in currently equals the expectation.

        Returns the updated ticket, or None when no row matched.
        """
        async with self.gated():
            async with self.Session() as db:
                async with db.begin():
                    result = await db.execute(
                        update(TicketRow)
                        .where(TicketRow.id == ticket_id)
                        .where(TicketRow.checked_in == expect_checked_in)
                        .values(**values)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount != 1:
                        return None
                    row = await db.get(TicketRow, ticket_id)
                    return _from_row(row)

    # ---- read-side aggregates

    async def count(self, checked_in: Optional[bool] = None) -> int:
        stmt = select(func.count()).select_from(TicketRow)
        if checked_in is not None:
            stmt = stmt.where(TicketRow.checked_in == checked_in)
        async with self.gated():
            async with self.Session() as db:
                return int((await db.execute(stmt)).scalar_one())

    async def counts_by_tier(self) -> Dict[str, int]:
        async with self.gated():
            async with self.Session() as db:
                rows = (await db.execute(
                    select(TicketRow.tier, func.count())
                    .group_by(TicketRow.tier)
                )).all()
        return {tier: int(n) for tier, n in rows}

    async def recent(self, limit: int = 10) -> List[Ticket]:
        async with self.gated():
            async with self.Session() as db:
                rows = (await db.execute(
                    select(TicketRow)
                    .order_by(TicketRow.created_at.desc())
                    .limit(max(1, min(limit, 500)))
                )).scalars().all()
        return [_from_row(r) for r in rows]
