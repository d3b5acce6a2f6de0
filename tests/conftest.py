"""Pytest configuration and shared fixtures."""

import pytest
import pytest_asyncio

from gatepass.auth import AdminSession, Payer
from gatepass.config import Config
from gatepass.gateway import MockGateway
from gatepass.infra.sql import make_async_engine
from gatepass.issuer import TicketIssuer
from gatepass.model.orm import Base
from gatepass.model.paymentsession import new_store
from gatepass.model.tickets import TicketStore
from gatepass.payments import PaymentSessionManager
from gatepass.pricing import PricingTable, build_order

TIERS = {"Solo": 500, "Couple": 900, "Group": 1800}
MOCK_SECRET = "mock-secret"
CREDENTIAL_SECRET = "credential-secret"


@pytest.fixture
def config(tmp_path) -> Config:
    return Config(
        database_url=f"sqlite:///{tmp_path / 'gatepass.db'}",
        gateway="mock",
        mock_secret=MOCK_SECRET,
        ticket_tiers=dict(TIERS),
        session_secret="test-session-secret",
        credential_secret=CREDENTIAL_SECRET,
        admins={"admin": "gate-pw", "alice": "alice-pw"},
        log_level="WARNING",
    )


@pytest.fixture
def pricing() -> PricingTable:
    return PricingTable(TIERS)


@pytest.fixture
def payer() -> Payer:
    return Payer(user_id="user-1", email="user1@example.com")


@pytest.fixture
def admin() -> AdminSession:
    return AdminSession(admin_id="admin")


@pytest.fixture
def gateway() -> MockGateway:
    return MockGateway(secret=MOCK_SECRET)


@pytest_asyncio.fixture
async def db(config):
    engine, SessionAsync, gated = make_async_engine(config)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield SessionAsync, gated
    await engine.dispose()


@pytest.fixture
def tickets(db) -> TicketStore:
    SessionAsync, gated = db
    return TicketStore(SessionAsync, gated)


@pytest.fixture
def sessions(db):
    SessionAsync, gated = db
    return new_store("sql", Session=SessionAsync, gated=gated)


@pytest.fixture
def manager(gateway, sessions) -> PaymentSessionManager:
    return PaymentSessionManager(gateway, sessions, "INR")


@pytest.fixture
def issuer(tickets) -> TicketIssuer:
    return TicketIssuer(tickets, CREDENTIAL_SECRET)


@pytest.fixture
def verified_session(manager, gateway, pricing, payer):
    """Factory: open a session for (tier, quantity) and verify its payment."""

    async def _make(tier="Solo", quantity=1, who=None):
        who = who or payer
        ps, _ = await manager.create_session(
            build_order(pricing, tier, quantity), who
        )
        payment_id = gateway.new_payment_id()
        return await manager.verify(
            who, ps.gateway_order_id, payment_id,
            gateway.sign(ps.gateway_order_id, payment_id),
        )

    return _make


@pytest.fixture
def issued_ticket(verified_session, issuer, payer):
    async def _make(tier="Solo", quantity=1):
        ps = await verified_session(tier, quantity)
        return (await issuer.issue(ps, payer)).ticket

    return _make
