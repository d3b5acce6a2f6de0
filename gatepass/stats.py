from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List

from .model.tickets import Ticket, TicketStore


@dataclass(frozen=True)
class Stats:
    total_tickets: int
    checked_in_tickets: int
    pending_tickets: int
    counts_by_tier: Dict[str, int]
    recent: List[Ticket] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_tickets": self.total_tickets,
            "checked_in_tickets": self.checked_in_tickets,
            "pending_tickets": self.pending_tickets,
            "counts_by_tier": dict(self.counts_by_tier),
            "recent_tickets": [t.to_dict() for t in self.recent],
        }


class StatsAggregator:
    def __init__(self, tickets: TicketStore) -> None:
        self.tickets = tickets

    async def stats(self, recent_limit: int = 10) -> Stats:
        # separate reads; a slightly stale mix is fine for gate telemetry
        total = await self.tickets.count()
        checked_in = await self.tickets.count(checked_in=True)
        by_tier = await self.tickets.counts_by_tier()
        recent = await self.tickets.recent(recent_limit) if recent_limit else []
        return Stats(
            total_tickets=total,
            checked_in_tickets=checked_in,
            pending_tickets=max(0, total - checked_in),
            counts_by_tier=by_tier,
            recent=recent,
        )
