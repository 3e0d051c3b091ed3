"""
Trial Service for computing trial status and starting one-time trials
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from crud.profile import ProfileRepository
from database_models import Profile
from models.subscription import TrialInfo
from services.subscription_service import STATUS_ACTIVE, STATUS_TRIALING, normalize_subscription_status
from utils.dates import days_until, parse_timestamp, to_iso, utcnow
from utils.cache import invalidate_cached, profile_cache_key

logger = logging.getLogger(__name__)

REASON_TRIAL_ALREADY_USED = "trial-already-used"
REASON_ACTIVE_SUBSCRIPTION = "active-subscription"
REASON_TRIAL_ALREADY_ACTIVE = "trial-already-active"


def calculate_trial_info(trial_ends_at, now=None) -> TrialInfo:
    """
    Trial status from a nullable end timestamp.

    Args:
        trial_ends_at: datetime, ISO-8601 string, or None
        now: Optional reference instant (defaults to current UTC time)

    Returns:
        TrialInfo with status "not_started", "active" or "expired"
    """
    end = parse_timestamp(trial_ends_at)
    if end is None:
        return TrialInfo(is_active=False, days_remaining=0, end_date=None, status="not_started")

    remaining = days_until(end, now)
    return TrialInfo(
        is_active=remaining > 0,
        days_remaining=remaining,
        end_date=to_iso(end),
        status="active" if remaining > 0 else "expired",
    )


def format_trial_status(info: TrialInfo) -> str:
    if info.status == "not_started":
        return "No trial started"
    if info.status == "expired":
        return "Trial expired"
    if info.days_remaining == 1:
        return "1 day remaining"
    return f"{info.days_remaining} days remaining"


@dataclass
class TrialStartResult:
    started: bool
    profile: Profile
    reason: Optional[str] = None


class TrialService:
    """
    Service for managing user trial periods.
    A user gets exactly one trial; has_used_trial records that it was spent.
    """

    def __init__(self, db: AsyncSession, profile_repo: ProfileRepository, trial_days: Optional[int] = None):
        """
        Initialize the trial service with database session and profile repository.

        Args:
            db: AsyncSession instance for database operations
            profile_repo: ProfileRepository instance for profile operations
            trial_days: Trial length override (defaults to settings.trial_days)
        """
        self.db = db
        self.profile_repo = profile_repo
        self.trial_days = trial_days or settings.trial_days

    async def start_trial(self, profile: Profile, now=None) -> TrialStartResult:
        """
        Start a trial for a profile if it is eligible.

        Refused when the trial was already used, when a paid subscription is
        running, or when a trial is still active.

        Args:
            profile: Profile object to start the trial for
            now: Optional reference instant (defaults to current UTC time)

        Returns:
            TrialStartResult with started flag, refusal reason and current profile
        """
        now = parse_timestamp(now) or utcnow()

        if profile.has_used_trial:
            logger.info(f"Trial refused for user {profile.id}: trial already used")
            return TrialStartResult(started=False, profile=profile, reason=REASON_TRIAL_ALREADY_USED)

        status = normalize_subscription_status(profile.subscription_status)
        sub_end = parse_timestamp(profile.subscription_ends_at)
        if status == STATUS_ACTIVE and (sub_end is None or sub_end > now):
            logger.info(f"Trial refused for user {profile.id}: active subscription")
            return TrialStartResult(started=False, profile=profile, reason=REASON_ACTIVE_SUBSCRIPTION)

        trial_end = parse_timestamp(profile.trial_ends_at)
        if trial_end is not None and trial_end > now:
            logger.info(f"Trial refused for user {profile.id}: trial already active")
            return TrialStartResult(started=False, profile=profile, reason=REASON_TRIAL_ALREADY_ACTIVE)

        trial_end = now + timedelta(days=self.trial_days)
        updated = await self.profile_repo.update_profile(profile, {
            "subscription_status": STATUS_TRIALING,
            "trial_ends_at": trial_end,
            "has_used_trial": True,
        })
        # the cached snapshot is dropped only once the row is committed
        await self.db.commit()
        invalidate_cached(profile_cache_key(updated.id))
        logger.info(f"Trial started for user {profile.id}, ends {trial_end.isoformat()}")
        return TrialStartResult(started=True, profile=updated)
