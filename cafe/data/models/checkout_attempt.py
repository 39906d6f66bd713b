# cafe/data/models/checkout_attempt.py
from sqlalchemy import Column, Integer, String, DateTime, Numeric, JSON, Text
from datetime import datetime, timezone

from cafe.data.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class CheckoutAttemptModel(Base):
    """Trwaly rekord jednej proby checkoutu (kolejka rekonsyliacji)."""

    __tablename__ = "checkout_attempts"

    id = Column(Integer, primary_key=True)
    idempotency_key = Column(String(255), nullable=False, unique=True, index=True)

    kind = Column(String(20), nullable=False, default="order")  # order, tickets
    status = Column(String(20), nullable=False, default="created", index=True)  # created, intent_created, charged, recorded, failed
    payment_intent_id = Column(String(255), nullable=True, index=True)
    client_secret = Column(String(255), nullable=True)

    amount = Column(Numeric(10, 2), nullable=False)
    amount_minor = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False)
    order_type = Column(String(20), nullable=True)  # tylko dla zamowien

    customer = Column(JSON, nullable=False)
    items = Column(JSON, nullable=False)  # zamrozone pozycje (OrderLine albo TicketLine)
    delivery_address = Column(Text, nullable=True)
    special_instructions = Column(Text, nullable=True)

    order_id = Column(Integer, nullable=True)
    ticket_sale_id = Column(Integer, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
