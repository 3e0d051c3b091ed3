"""
Subscription Router - access status, tier limits and trial activation
"""
import logging
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user
from crud.profile import ProfileRepository
from database import get_db
from services.feature_restrictions import get_feature_restrictions
from services.subscription_service import resolve_subscription_access
from services.trial_service import (
    REASON_ACTIVE_SUBSCRIPTION,
    REASON_TRIAL_ALREADY_ACTIVE,
    REASON_TRIAL_ALREADY_USED,
    TrialService,
    calculate_trial_info,
    format_trial_status,
)
from utils.rate_limit import trial_rate_limiter
from utils.responses import success_response, error_response
from utils.shared_utils import load_profile_snapshot, log_endpoint_event

logger = logging.getLogger(__name__)

subscription_router = APIRouter(prefix="/api", tags=["subscription"])

# reason -> (error code, message, redirect)
TRIAL_REFUSALS = {
    REASON_ACTIVE_SUBSCRIPTION: (
        "ACTIVE_SUBSCRIPTION",
        "You already have an active subscription",
        "/dashboard",
    ),
    REASON_TRIAL_ALREADY_ACTIVE: (
        "TRIAL_ACTIVE",
        "Trial already active",
        "/dashboard",
    ),
    REASON_TRIAL_ALREADY_USED: (
        "TRIAL_USED",
        "You have already used your free trial. Please choose a paid plan to continue.",
        "/pricing",
    ),
}


async def limit_trial_attempts(current_user: dict = Depends(get_current_user)) -> dict:
    """Dependency: allow a few trial activation attempts per user per hour."""
    if not trial_rate_limiter.allow(current_user["user_id"]):
        raise HTTPException(status_code=429, detail="Too many trial activation attempts. Try again later.")
    return current_user


@subscription_router.get("/subscription/status")
async def get_subscription_status(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Resolved access for the current user"""
    snapshot = await load_profile_snapshot(db, current_user)
    access = resolve_subscription_access(snapshot)
    trial = calculate_trial_info(snapshot.get("trial_ends_at"))

    log_endpoint_event("/api/subscription/status", current_user["user_id"], "success", {
        "tier": access.tier,
        "status": access.status,
    })
    return success_response(
        data={
            "subscription": access.model_dump(),
            "trial": {**trial.model_dump(), "label": format_trial_status(trial)},
            "has_used_trial": snapshot.get("has_used_trial", False),
        },
        message=access.display_status,
    )


@subscription_router.get("/subscription/features")
async def get_subscription_features(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Effective tier with its capability list and usage caps"""
    snapshot = await load_profile_snapshot(db, current_user)
    access = resolve_subscription_access(snapshot)
    return success_response(
        data={
            "tier": access.tier,
            "features": access.features,
            "limits": get_feature_restrictions(access.tier).model_dump(),
        }
    )


@subscription_router.post("/start-trial")
async def start_trial(
    current_user: dict = Depends(limit_trial_attempts),
    db: AsyncSession = Depends(get_db),
):
    """Start the one-time free trial for the current user"""
    user_id = current_user["user_id"]
    profile_repo = ProfileRepository(db)
    profile = await profile_repo.get_or_create_profile(user_id, current_user.get("email"))

    result = await TrialService(db, profile_repo).start_trial(profile)
    access = resolve_subscription_access(result.profile)

    if not result.started:
        code, message, redirect = TRIAL_REFUSALS[result.reason]
        log_endpoint_event("/api/start-trial", user_id, "refused", {"reason": result.reason})
        return error_response(
            code,
            status=400,
            message=message,
            data={"subscription": access.model_dump(), "redirect": redirect},
        )

    log_endpoint_event("/api/start-trial", user_id, "success", {"trial_ends_at": access.trial_ends_at})
    return success_response(
        data={
            "subscription": access.model_dump(),
            "profile": ProfileRepository.to_snapshot(result.profile),
            "redirect": "/dashboard",
        },
        message="Trial started successfully! Welcome to TrulyBot Ultra.",
    )
