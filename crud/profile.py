"""
ProfileRepository for database operations on the Profile model
"""

import logging
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from database_models import Profile
from services.subscription_service import normalize_subscription_status, normalize_tier
from utils.dates import to_iso, utcnow

logger = logging.getLogger(__name__)

# Columns that billing sync and trial start are allowed to write
UPDATABLE_FIELDS = (
    "email",
    "subscription_status",
    "subscription_tier",
    "has_used_trial",
    "trial_ends_at",
    "subscription_ends_at",
    "stripe_customer_id",
    "payment_id",
)


class ProfileRepository:
    """
    Repository class for Profile database operations.
    Encapsulates all database logic for the Profile model.
    """

    def __init__(self, db: AsyncSession):
        """
        Initialize the repository with a database session.

        Args:
            db: AsyncSession instance for database operations
        """
        self.db = db

    async def get_profile_by_id(self, user_id: str) -> Optional[Profile]:
        """
        Retrieve a profile by user ID.

        Args:
            user_id: Identity provider's user ID

        Returns:
            Profile object if found, None otherwise
        """
        result = await self.db.execute(
            select(Profile).where(Profile.id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_profile_by_stripe_customer(self, stripe_customer_id: str) -> Optional[Profile]:
        result = await self.db.execute(
            select(Profile).where(Profile.stripe_customer_id == stripe_customer_id)
        )
        return result.scalars().first()

    async def get_or_create_profile(self, user_id: str, email: Optional[str] = None) -> Profile:
        """
        Return the profile for a user, creating a fresh one if none exists.
        Calling this repeatedly for the same user returns the same row.

        A new profile starts with status "none", tier "free" and no trial used.

        Args:
            user_id: Identity provider's user ID
            email: Optional email address to store on a new profile

        Returns:
            Existing or newly created Profile object
        """
        profile = await self.get_profile_by_id(user_id)
        if profile is not None:
            return profile

        logger.info(f"Creating new profile for user {user_id}")
        profile = Profile(
            id=user_id,
            email=email.lower() if email else None,
            subscription_status="none",
            subscription_tier="free",
            has_used_trial=False,
            trial_ends_at=None,
            subscription_ends_at=None,
        )
        self.db.add(profile)
        await self.db.flush()
        await self.db.refresh(profile)
        return profile

    async def update_profile(self, profile: Profile, updates: dict) -> Profile:
        """
        Update profile fields.

        Status and tier values are stored in canonical form. has_used_trial
        never goes back to False once set; such writes are dropped.

        Args:
            profile: Profile object to update
            updates: Dictionary of fields to update (e.g., {"subscription_status": "active"})

        Returns:
            Updated Profile object
        """
        for key, value in updates.items():
            if key not in UPDATABLE_FIELDS:
                logger.warning(f"Ignoring unknown profile field '{key}' for user {profile.id}")
                continue
            if key == "has_used_trial" and profile.has_used_trial and not value:
                logger.warning(f"Refusing to reset has_used_trial for user {profile.id}")
                continue
            if key == "subscription_status":
                value = normalize_subscription_status(value)
            elif key == "subscription_tier":
                value = normalize_tier(value)
            setattr(profile, key, value)

        profile.updated_at = utcnow()
        await self.db.flush()
        await self.db.refresh(profile)
        return profile

    @staticmethod
    def to_snapshot(profile: Profile) -> dict:
        """JSON-safe copy of a profile, suitable for caching."""
        return {
            "id": profile.id,
            "email": profile.email,
            "subscription_status": profile.subscription_status,
            "subscription_tier": profile.subscription_tier,
            "has_used_trial": bool(profile.has_used_trial),
            "trial_ends_at": to_iso(profile.trial_ends_at),
            "subscription_ends_at": to_iso(profile.subscription_ends_at),
            "stripe_customer_id": profile.stripe_customer_id,
            "created_at": to_iso(profile.created_at),
            "updated_at": to_iso(profile.updated_at),
        }
