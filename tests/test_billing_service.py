"""
Unit tests for Stripe billing sync
"""
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from config.settings import settings
from crud.profile import ProfileRepository
from services.billing_service import BillingService
from services.subscription_service import resolve_subscription_access
from utils.cache import local_cache, profile_cache_key
from utils.dates import parse_timestamp
from utils.shared_utils import load_profile_snapshot

PERIOD_END = 1798761600  # 2027-01-01T00:00:00Z


def subscription_event(event_type, **subscription):
    obj = {
        "id": "sub_123",
        "customer": "cus_123",
        "status": "active",
        "current_period_end": PERIOD_END,
        "metadata": {"user_id": "user-1", "tier": "pro"},
        "items": {"data": [{"price": {"id": "price_pro"}}]},
    }
    obj.update(subscription)
    return {"id": "evt_1", "type": event_type, "data": {"object": obj}}


@pytest.fixture
async def profile(test_db):
    return await ProfileRepository(test_db).get_or_create_profile("user-1", "owner@shop.example")


@pytest.mark.asyncio
async def test_subscription_created_activates_plan(test_db, profile):
    result = await BillingService(test_db).process_webhook(subscription_event("customer.subscription.created"))

    assert result["is_error"] is False
    assert profile.subscription_status == "active"
    assert profile.subscription_tier == "pro"
    assert profile.stripe_customer_id == "cus_123"
    assert profile.payment_id == "sub_123"
    assert parse_timestamp(profile.subscription_ends_at) == datetime(2027, 1, 1, tzinfo=timezone.utc)
    assert resolve_subscription_access(profile).tier == "pro"


@pytest.mark.asyncio
async def test_activation_clears_trial_but_keeps_trial_used(test_db, profile):
    repo = ProfileRepository(test_db)
    await repo.update_profile(profile, {
        "subscription_status": "trialing",
        "trial_ends_at": datetime(2026, 12, 1, tzinfo=timezone.utc),
        "has_used_trial": True,
    })

    await BillingService(test_db).process_webhook(subscription_event("customer.subscription.updated"))

    assert profile.trial_ends_at is None
    assert profile.has_used_trial is True


@pytest.mark.asyncio
async def test_tier_falls_back_to_price_map(test_db, profile):
    event = subscription_event("customer.subscription.updated", metadata={"user_id": "user-1"})

    with patch.object(settings, "stripe_price_ultra", "price_pro"):
        result = await BillingService(test_db).process_webhook(event)

    assert result["is_error"] is False
    assert profile.subscription_tier == "ultra"


@pytest.mark.asyncio
async def test_unmappable_tier_is_reported(test_db, profile):
    event = subscription_event("customer.subscription.updated", metadata={"user_id": "user-1"})

    result = await BillingService(test_db).process_webhook(event)

    assert result["is_error"] is True
    assert profile.subscription_status == "none"


@pytest.mark.asyncio
async def test_period_end_read_from_subscription_item(test_db, profile):
    event = subscription_event(
        "customer.subscription.created",
        current_period_end=None,
        items={"data": [{"price": {"id": "price_pro"}, "current_period_end": PERIOD_END}]},
    )

    await BillingService(test_db).process_webhook(event)

    assert parse_timestamp(profile.subscription_ends_at) == datetime(2027, 1, 1, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_subscription_deleted_cancels(test_db, profile):
    service = BillingService(test_db)
    await service.process_webhook(subscription_event("customer.subscription.created"))

    result = await service.process_webhook(subscription_event("customer.subscription.deleted", status="active"))

    assert result["is_error"] is False
    assert profile.subscription_status == "cancelled"
    assert resolve_subscription_access(profile).tier == "free"


@pytest.mark.asyncio
async def test_past_due_degrades_to_free(test_db, profile):
    await BillingService(test_db).process_webhook(
        subscription_event("customer.subscription.updated", status="past_due")
    )

    assert profile.subscription_status == "past_due"
    access = resolve_subscription_access(profile)
    assert access.tier == "free"
    assert access.has_access is True


@pytest.mark.asyncio
async def test_profile_found_by_customer_id(test_db, profile):
    await ProfileRepository(test_db).update_profile(profile, {"stripe_customer_id": "cus_123"})
    event = subscription_event("customer.subscription.updated", metadata={"tier": "basic"})

    result = await BillingService(test_db).process_webhook(event)

    assert result["is_error"] is False
    assert profile.subscription_tier == "basic"


@pytest.mark.asyncio
async def test_unknown_profile_is_an_error(test_db):
    event = subscription_event("customer.subscription.created", metadata={"user_id": "ghost"}, customer="cus_ghost")

    result = await BillingService(test_db).process_webhook(event)

    assert result["is_error"] is True


@pytest.mark.asyncio
async def test_checkout_completed_links_customer(test_db, profile):
    event = {
        "type": "checkout.session.completed",
        "data": {"object": {"client_reference_id": "user-1", "customer": "cus_999"}},
    }

    result = await BillingService(test_db).process_webhook(event)

    assert result["is_error"] is False
    assert profile.stripe_customer_id == "cus_999"


@pytest.mark.asyncio
async def test_billing_sync_invalidates_cached_profile(test_db, profile):
    local_cache.set(profile_cache_key("user-1"), {"subscription_status": "none"})

    await BillingService(test_db).process_webhook(subscription_event("customer.subscription.created"))

    assert local_cache.get(profile_cache_key("user-1")) is None


@pytest.mark.asyncio
async def test_unhandled_events_are_acknowledged(test_db):
    result = await BillingService(test_db).process_webhook({"type": "invoice.created", "data": {"object": {}}})

    assert result == {"data": None, "is_error": False}


@pytest.mark.asyncio
async def test_synced_plan_is_visible_to_other_sessions(session_factory):
    user = {"user_id": "user-1", "email": "owner@shop.example"}
    async with session_factory() as reader:
        stale = await load_profile_snapshot(reader, user)
        await reader.commit()
    assert stale["subscription_status"] == "none"

    async with session_factory() as writer:
        result = await BillingService(writer).process_webhook(subscription_event("customer.subscription.created"))

        assert result["is_error"] is False
        assert writer.in_transaction() is False

        async with session_factory() as reader:
            fresh = await load_profile_snapshot(reader, user)

    assert fresh["subscription_status"] == "active"
    assert fresh["subscription_tier"] == "pro"


@pytest.mark.asyncio
async def test_checkout_refreshes_cached_customer_id(session_factory):
    user = {"user_id": "user-1", "email": "owner@shop.example"}
    async with session_factory() as reader:
        stale = await load_profile_snapshot(reader, user)
        await reader.commit()
    assert stale["stripe_customer_id"] is None

    event = {
        "type": "checkout.session.completed",
        "data": {"object": {"client_reference_id": "user-1", "customer": "cus_999"}},
    }
    async with session_factory() as writer:
        await BillingService(writer).process_webhook(event)

    async with session_factory() as reader:
        fresh = await load_profile_snapshot(reader, user)

    assert fresh["stripe_customer_id"] == "cus_999"
