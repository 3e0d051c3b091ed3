"""
Billing Service - applies Stripe subscription events to user profiles
"""

import json
import logging
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
import stripe

from config.settings import settings
from crud.profile import ProfileRepository
from database_models import Profile
from services.subscription_service import STATUS_ACTIVE, STATUS_CANCELLED, TIER_FEATURES
from utils.cache import invalidate_cached, profile_cache_key

logger = logging.getLogger(__name__)

# Initialize Stripe client
if settings.stripe_secret_key:
    stripe.api_key = settings.stripe_secret_key
else:
    logger.warning("STRIPE_SECRET_KEY is not set. Stripe functionality will be unavailable.")

# Stripe subscription status -> stored profile status
STRIPE_STATUS_MAP = {
    "active": STATUS_ACTIVE,
    "trialing": STATUS_ACTIVE,
    "past_due": "past_due",
    "canceled": STATUS_CANCELLED,
    "unpaid": STATUS_CANCELLED,
    "incomplete_expired": STATUS_CANCELLED,
}

SUBSCRIPTION_EVENTS = ("customer.subscription.created", "customer.subscription.updated")


def _as_dict(event) -> dict:
    if isinstance(event, dict):
        return event
    to_dict = getattr(event, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    # StripeObject renders itself as JSON
    return json.loads(str(event))


def _from_unix(value) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def _first_item(subscription: dict) -> dict:
    items = (subscription.get("items") or {}).get("data") or []
    return items[0] if items else {}


def _period_end(subscription: dict) -> Optional[datetime]:
    # Newer API versions report the period on the subscription item
    value = subscription.get("current_period_end")
    if value is None:
        value = _first_item(subscription).get("current_period_end")
    return _from_unix(value)


class BillingService:
    """
    Service class for billing sync.
    Stripe is the source of truth for paid plans; this copies its state onto profiles.
    """

    def __init__(self, db: AsyncSession, profile_repo: Optional[ProfileRepository] = None):
        """
        Initialize the billing service.

        Args:
            db: AsyncSession instance for database operations
            profile_repo: Optional ProfileRepository (created from db if omitted)
        """
        self.db = db
        self.profile_repo = profile_repo or ProfileRepository(db)

    def resolve_tier(self, subscription: dict) -> Optional[str]:
        """Tier from subscription metadata, else from the configured price map."""
        tier = ((subscription.get("metadata") or {}).get("tier") or "").strip().lower()
        if tier in TIER_FEATURES:
            return tier
        price_id = (_first_item(subscription).get("price") or {}).get("id")
        return settings.price_tier_map().get(price_id)

    async def _find_profile(self, user_id: Optional[str], customer_id: Optional[str]) -> Optional[Profile]:
        if user_id:
            profile = await self.profile_repo.get_profile_by_id(user_id)
            if profile is not None:
                return profile
        if customer_id:
            return await self.profile_repo.get_profile_by_stripe_customer(customer_id)
        return None

    async def _handle_checkout_completed(self, session: dict):
        user_id = session.get("client_reference_id") or (session.get("metadata") or {}).get("user_id")
        customer_id = session.get("customer")
        profile = await self._find_profile(user_id, None)
        if profile is None:
            logger.warning(f"Checkout completed for unknown user {user_id}")
            return {"error": "Profile not found", "is_error": True}

        if customer_id and profile.stripe_customer_id != customer_id:
            await self.profile_repo.update_profile(profile, {"stripe_customer_id": customer_id})
        return {"data": {"user_id": profile.id}, "is_error": False}

    async def _handle_subscription_change(self, subscription: dict, deleted: bool = False):
        user_id = (subscription.get("metadata") or {}).get("user_id")
        customer_id = subscription.get("customer")
        profile = await self._find_profile(user_id, customer_id)
        if profile is None:
            logger.warning(f"Subscription event for unknown profile (user={user_id}, customer={customer_id})")
            return {"error": "Profile not found", "is_error": True}

        stripe_status = "canceled" if deleted else (subscription.get("status") or "")
        status = STRIPE_STATUS_MAP.get(stripe_status)
        if status is None:
            logger.info(f"Ignoring Stripe subscription status '{stripe_status}' for user {profile.id}")
            return {"data": {"user_id": profile.id, "status": profile.subscription_status}, "is_error": False}

        updates = {"subscription_status": status}
        if customer_id:
            updates["stripe_customer_id"] = customer_id
        if status == STATUS_ACTIVE:
            tier = self.resolve_tier(subscription)
            if tier is None:
                logger.error(f"Cannot map Stripe subscription {subscription.get('id')} to a tier")
                return {"error": "Unknown subscription tier", "is_error": True}
            updates.update({
                "subscription_tier": tier,
                "subscription_ends_at": _period_end(subscription),
                "trial_ends_at": None,
                "payment_id": subscription.get("id"),
            })

        profile = await self.profile_repo.update_profile(profile, updates)
        logger.info(
            f"Billing sync: user {profile.id} -> status={profile.subscription_status} "
            f"tier={profile.subscription_tier}"
        )
        return {
            "data": {"user_id": profile.id, "status": profile.subscription_status, "tier": profile.subscription_tier},
            "is_error": False,
        }

    async def process_webhook(self, event):
        """
        Process a Stripe webhook event.

        Args:
            event: Verified Stripe Event object (or its dict form)

        Returns:
            Normalized response: {"data": ..., "is_error": False} or {"error": str(e), "is_error": True}
        """
        try:
            event = _as_dict(event)
            event_type = event.get("type")
            obj = (event.get("data") or {}).get("object") or {}
            logger.info(f"Processing Stripe webhook event: {event_type}")

            if event_type == "checkout.session.completed":
                result = await self._handle_checkout_completed(obj)
            elif event_type in SUBSCRIPTION_EVENTS:
                result = await self._handle_subscription_change(obj)
            elif event_type == "customer.subscription.deleted":
                result = await self._handle_subscription_change(obj, deleted=True)
            else:
                logger.info(f"Ignoring unhandled Stripe event type: {event_type}")
                return {"data": None, "is_error": False}

            if result.get("is_error"):
                return result

            # the cached snapshot is dropped only once the row is committed
            await self.db.commit()
            invalidate_cached(profile_cache_key(result["data"]["user_id"]))
            return result

        except Exception as e:
            logger.error(f"Error processing webhook: {e}", exc_info=True)
            await self.db.rollback()
            return {"error": str(e), "is_error": True}
