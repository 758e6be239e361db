"""Activity log and billing event models."""

from uuid import uuid4
from sqlalchemy import Column, String, Text, Integer, TIMESTAMP, Uuid, func
from moodboard.models.base import Base, JSONType, utcnow


class ActivityLog(Base):
    """User action record (dashboard created, table imported, ...)."""

    __tablename__ = "activity_log"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    action = Column(String(127), nullable=False, index=True)
    resource_type = Column(String(64), nullable=True)
    resource_id = Column(String(255), nullable=True)
    activity_metadata = Column("metadata", JSONType, nullable=True)  # Column name 'metadata' in DB
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, server_default=func.now(), index=True)

    def __repr__(self):
        return f"<ActivityLog(action={self.action}, user_id={self.user_id})>"


class BillingEvent(Base):
    """Stripe event recorded against a user, unique per Stripe event id."""

    __tablename__ = "billing_events"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    stripe_customer_id = Column(String(255), nullable=True)
    event_type = Column(String(127), nullable=False)
    amount = Column(Integer, nullable=True)  # minor units (cents)
    currency = Column(String(8), nullable=True)
    status = Column(String(64), nullable=True)
    description = Column(Text, nullable=True)
    stripe_event_id = Column(String(255), nullable=True, unique=True)
    event_metadata = Column("metadata", JSONType, nullable=True)  # Column name 'metadata' in DB
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, server_default=func.now(), index=True)

    def __repr__(self):
        return f"<BillingEvent(event_type={self.event_type}, stripe_event_id={self.stripe_event_id})>"
