from sqlalchemy import Column, String, Boolean, DateTime
from datetime import datetime, timezone
from database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Profile(Base):
    """
    Per-user billing and trial state.
    Rows are keyed by the identity provider's user id.
    """
    __tablename__ = "profiles"

    id = Column(String, primary_key=True, index=True)
    email = Column(String, nullable=True, index=True)
    subscription_status = Column(String, nullable=False, default="none")
    subscription_tier = Column(String, nullable=False, default="free")
    has_used_trial = Column(Boolean, nullable=False, default=False)
    trial_ends_at = Column(DateTime(timezone=True), nullable=True)
    subscription_ends_at = Column(DateTime(timezone=True), nullable=True)
    stripe_customer_id = Column(String, nullable=True, index=True)
    payment_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
