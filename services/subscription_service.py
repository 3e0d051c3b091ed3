"""
Subscription access resolution.

Turns a stored profile into the tier and features a user gets right now.
This is a pure function of (profile, now): no I/O, no shared state.

Policy is "fail open": a missing or malformed profile, an expired trial or a
lapsed subscription degrades the user to the free tier instead of denying
access. This is a product decision, not an authorization check.
"""
from typing import Any, Dict, List, Optional, Tuple

from config.settings import TIER_FREE, TIER_BASIC, TIER_PRO, TIER_ULTRA, TIER_ENTERPRISE
from models.subscription import SubscriptionAccessResult
from utils.dates import days_until, parse_timestamp, to_iso, utcnow

STATUS_NONE = "none"
STATUS_ELIGIBLE = "eligible"
STATUS_TRIALING = "trialing"
STATUS_ACTIVE = "active"
STATUS_EXPIRED = "expired"
STATUS_CANCELLED = "cancelled"
STATUS_FREE = "free"

TRIAL_STATUSES = ("trial", STATUS_TRIALING)

# Legacy and third-party spellings -> canonical status
STATUS_ALIASES: Dict[str, str] = {
    "trial": STATUS_TRIALING,
    "canceled": STATUS_CANCELLED,
}

TIER_ORDER: Tuple[str, ...] = (TIER_FREE, TIER_BASIC, TIER_PRO, TIER_ULTRA, TIER_ENTERPRISE)

# Each tier lists everything the tier below it has, in the same order.
TIER_FEATURES: Dict[str, Tuple[str, ...]] = {
    TIER_FREE: (
        "core_ai_chatbot",
        "basic_knowledge_base",
        "website_embedding",
    ),
    TIER_BASIC: (
        "core_ai_chatbot",
        "basic_knowledge_base",
        "website_embedding",
        "unlimited_replies",
        "custom_chatbot_name",
        "custom_welcome_message",
        "lead_capture",
        "remove_branding",
    ),
    TIER_PRO: (
        "core_ai_chatbot",
        "basic_knowledge_base",
        "website_embedding",
        "unlimited_replies",
        "custom_chatbot_name",
        "custom_welcome_message",
        "lead_capture",
        "remove_branding",
        "maximum_knowledge_base",
        "logo_upload",
        "color_customization",
    ),
    TIER_ULTRA: (
        "core_ai_chatbot",
        "basic_knowledge_base",
        "website_embedding",
        "unlimited_replies",
        "custom_chatbot_name",
        "custom_welcome_message",
        "lead_capture",
        "remove_branding",
        "maximum_knowledge_base",
        "logo_upload",
        "color_customization",
        "full_brand_customization",
        "enhanced_lead_capture",
        "priority_support",
    ),
    TIER_ENTERPRISE: (
        "core_ai_chatbot",
        "basic_knowledge_base",
        "website_embedding",
        "unlimited_replies",
        "custom_chatbot_name",
        "custom_welcome_message",
        "lead_capture",
        "remove_branding",
        "maximum_knowledge_base",
        "logo_upload",
        "color_customization",
        "full_brand_customization",
        "enhanced_lead_capture",
        "priority_support",
        "dedicated_account_manager",
        "custom_integrations",
    ),
}


def _field(profile: Any, name: str, default=None):
    """Read a profile attribute from an ORM row, a mapping or any object."""
    if profile is None:
        return default
    if isinstance(profile, dict):
        return profile.get(name, default)
    return getattr(profile, name, default)


def normalize_subscription_status(raw) -> str:
    """Canonical status string. Aliases such as 'trial' map to 'trialing'."""
    if not isinstance(raw, str):
        return STATUS_NONE
    status = raw.strip().lower()
    if not status:
        return STATUS_NONE
    return STATUS_ALIASES.get(status, status)


def normalize_tier(raw) -> str:
    """Known tier name, or free for anything unrecognized."""
    if not isinstance(raw, str):
        return TIER_FREE
    tier = raw.strip().lower()
    return tier if tier in TIER_FEATURES else TIER_FREE


def features_for_tier(tier: str) -> List[str]:
    return list(TIER_FEATURES.get(tier, TIER_FEATURES[TIER_FREE]))


def has_access_to_tier(user_tier: str, required_tier: str) -> bool:
    """True if user_tier ranks at or above required_tier."""
    return TIER_ORDER.index(normalize_tier(user_tier)) >= TIER_ORDER.index(normalize_tier(required_tier))


def _build(
    status: str,
    tier: str,
    days_remaining: int = 0,
    is_trial_active: bool = False,
    trial_ends_at: Optional[str] = None,
    subscription_ends_at: Optional[str] = None,
) -> SubscriptionAccessResult:
    result = SubscriptionAccessResult(
        has_access=True,
        tier=tier,
        status=status,
        features=features_for_tier(tier),
        days_remaining=days_remaining,
        is_trial_active=is_trial_active,
        trial_ends_at=trial_ends_at,
        subscription_ends_at=subscription_ends_at,
    )
    return result.model_copy(update={"display_status": format_subscription_status(result)})


def resolve_subscription_access(profile: Any, now=None) -> SubscriptionAccessResult:
    """
    Resolve the effective access for a profile.

    Priority order, first match wins:
      1) no profile                -> free, status "none"
      2) trial / trialing          -> ultra while trial_ends_at is in the future,
                                      otherwise free with status "expired"
      3) active                    -> stored tier, status "active"
      4) none / eligible           -> free, status unchanged
      5) anything else             -> free, status "free"

    Never raises: unreadable input resolves to the free tier.

    Args:
        profile: ORM Profile, cached snapshot dict, or None
        now: Optional reference instant (defaults to current UTC time)

    Returns:
        SubscriptionAccessResult
    """
    now = parse_timestamp(now) or utcnow()

    if profile is None:
        return _build(STATUS_NONE, TIER_FREE)

    status = normalize_subscription_status(_field(profile, "subscription_status"))

    if status == STATUS_TRIALING:
        trial_end = parse_timestamp(_field(profile, "trial_ends_at"))
        remaining = days_until(trial_end, now)
        if remaining > 0:
            return _build(
                STATUS_TRIALING,
                TIER_ULTRA,
                days_remaining=remaining,
                is_trial_active=True,
                trial_ends_at=to_iso(trial_end),
            )
        return _build(STATUS_EXPIRED, TIER_FREE, trial_ends_at=to_iso(trial_end))

    if status == STATUS_ACTIVE:
        sub_end = parse_timestamp(_field(profile, "subscription_ends_at"))
        return _build(
            STATUS_ACTIVE,
            normalize_tier(_field(profile, "subscription_tier")),
            days_remaining=days_until(sub_end, now),
            subscription_ends_at=to_iso(sub_end),
        )

    if status in (STATUS_NONE, STATUS_ELIGIBLE):
        return _build(status, TIER_FREE)

    return _build(STATUS_FREE, TIER_FREE)


def format_subscription_status(result: SubscriptionAccessResult) -> str:
    """Human-readable status line for the dashboard."""
    if result.status == STATUS_ACTIVE:
        if result.days_remaining:
            return f"Active {result.tier.upper()} plan ({result.days_remaining} days remaining)"
        return f"Active {result.tier.upper()} plan"
    if result.status == STATUS_TRIALING:
        return f"Free trial active ({result.days_remaining} days remaining)"
    if result.status == STATUS_ELIGIBLE:
        return "Eligible for a free trial"
    if result.status == STATUS_EXPIRED:
        return "Trial expired"
    if result.status == STATUS_FREE:
        return "Free plan"
    return "No active subscription"
