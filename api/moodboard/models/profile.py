"""Profile model mirroring Supabase users plus their billing state."""

import enum
from sqlalchemy import Column, String, Enum, TIMESTAMP, Uuid, func
from moodboard.models.base import Base, utcnow


class ProfileRole(str, enum.Enum):
    """Account role."""
    USER = "user"
    PRO = "pro"
    ADMIN = "admin"


class SubscriptionTier(str, enum.Enum):
    """Subscription tier."""
    FREE = "free"
    PRO = "pro"


class Profile(Base):
    """User profile, keyed by the Supabase user id."""

    __tablename__ = "profiles"

    id = Column(Uuid(as_uuid=True), primary_key=True)  # Supabase user ID
    email = Column(String(255), nullable=True, index=True)
    full_name = Column(String(255), nullable=True)
    avatar_url = Column(String(1024), nullable=True)
    company = Column(String(255), nullable=True)
    role = Column(
        Enum(ProfileRole, name="profile_role", values_callable=lambda obj: [e.value for e in obj]),
        nullable=False,
        default=ProfileRole.USER,
        server_default="user",
    )
    stripe_customer_id = Column(String(255), nullable=True, unique=True)
    subscription_status = Column(String(64), nullable=True)
    subscription_tier = Column(
        Enum(SubscriptionTier, name="subscription_tier", values_callable=lambda obj: [e.value for e in obj]),
        nullable=False,
        default=SubscriptionTier.FREE,
        server_default="free",
    )
    subscription_price_id = Column(String(255), nullable=True)
    current_period_end = Column(TIMESTAMP(timezone=True), nullable=True)
    cancel_at = Column(TIMESTAMP(timezone=True), nullable=True)
    trial_ends_at = Column(TIMESTAMP(timezone=True), nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow, server_default=func.now())

    @property
    def is_pro(self) -> bool:
        return self.subscription_tier == SubscriptionTier.PRO or self.role in (ProfileRole.PRO, ProfileRole.ADMIN)

    def __repr__(self):
        return f"<Profile(id={self.id}, email={self.email}, tier={self.subscription_tier})>"
