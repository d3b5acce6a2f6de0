from gatepass.admission import AdmissionController
from gatepass.stats import StatsAggregator

from .conftest import CREDENTIAL_SECRET


async def test_empty_store(tickets):
    stats = await StatsAggregator(tickets).stats()
    assert stats.total_tickets == 0
    assert stats.checked_in_tickets == 0
    assert stats.pending_tickets == 0
    assert stats.counts_by_tier == {}
    assert stats.recent == []


async def test_counts_and_recent(tickets, issued_ticket, admin):
    first = await issued_ticket("Solo", 1)
    await issued_ticket("Solo", 2)
    last = await issued_ticket("Group", 1)
    await AdmissionController(tickets, CREDENTIAL_SECRET).check_in(
        first.id, admin
    )

    stats = await StatsAggregator(tickets).stats(recent_limit=2)
    assert stats.total_tickets == 3
    assert stats.checked_in_tickets == 1
    assert stats.pending_tickets == 2
    assert stats.counts_by_tier == {"Solo": 2, "Group": 1}
    assert [t.id for t in stats.recent][0] == last.id
    assert len(stats.recent) == 2

    d = stats.to_dict()
    assert d["total_tickets"] == 3
    assert d["recent_tickets"][0]["id"] == last.id
    assert isinstance(d["recent_tickets"][0]["created_at"], str)
