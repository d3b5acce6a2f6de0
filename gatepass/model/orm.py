from sqlalchemy.orm import declarative_base
from sqlalchemy import (
    Column,
    Index,
    Integer,
    String,
    Float,
    Boolean,
)


Base = declarative_base()


# ----------------------------
# ORM models
# ----------------------------
class TicketRow(Base):
    __tablename__ = "tickets"
    id = Column(String, primary_key=True)
    owner_id = Column(String, nullable=False, index=True)
    owner_email = Column(String, nullable=True)

    gateway_order_id = Column(String, nullable=False)
    # dedup key: exactly one ticket per verified payment
    gateway_payment_id = Column(String, nullable=False, unique=True)

    amount = Column(Integer, nullable=False)  # smallest currency unit
    currency = Column(String, nullable=False)
    tier = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Integer, nullable=False)

    # payment-level status; admission state lives in checked_in*
    status = Column(String, nullable=False, default="paid")

    checked_in = Column(Boolean, nullable=False, default=False)
    checked_in_at = Column(Float, nullable=True)
    checked_in_by = Column(String, nullable=True)

    created_at = Column(Float, nullable=False)

    __table_args__ = (
        Index("idx_tickets_created_at", "created_at"),
    )


class PaymentSessionRow(Base):
    __tablename__ = "payment_sessions"
    gateway_order_id = Column(String, primary_key=True)
    amount = Column(Integer, nullable=False)
    currency = Column(String, nullable=False)
    # created | verified | failed
    status = Column(String, nullable=False, default="created")
    tier = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Integer, nullable=False)
    payer_id = Column(String, nullable=False)
    payer_email = Column(String, nullable=True)
    gateway_payment_id = Column(String, nullable=True)
    created_at = Column(Float, nullable=False)
    finalized_at = Column(Float, nullable=True)
