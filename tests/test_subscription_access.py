"""
Unit tests for subscription access resolution
"""
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from services.subscription_service import (
    TIER_FEATURES,
    TIER_ORDER,
    format_subscription_status,
    has_access_to_tier,
    normalize_subscription_status,
    normalize_tier,
    resolve_subscription_access,
)

NOW = datetime(2026, 3, 10, 12, 0, 0, tzinfo=timezone.utc)


def make_profile(**overrides):
    profile = {
        "id": "user-1",
        "subscription_status": "none",
        "subscription_tier": "free",
        "has_used_trial": False,
        "trial_ends_at": None,
        "subscription_ends_at": None,
    }
    profile.update(overrides)
    return profile


def test_trialing_with_three_days_left():
    profile = make_profile(subscription_status="trialing", trial_ends_at=NOW + timedelta(days=3))

    result = resolve_subscription_access(profile, now=NOW)

    assert result.has_access is True
    assert result.tier == "ultra"
    assert result.status == "trialing"
    assert result.days_remaining == 3
    assert result.is_trial_active is True
    assert result.features == list(TIER_FEATURES["ultra"])


def test_trial_expired_two_days_ago_falls_back_to_free():
    profile = make_profile(subscription_status="trialing", trial_ends_at=NOW - timedelta(days=2))

    result = resolve_subscription_access(profile, now=NOW)

    assert result.has_access is True
    assert result.tier == "free"
    assert result.status == "expired"
    assert result.days_remaining == 0
    assert result.is_trial_active is False


def test_active_subscription_keeps_stored_tier():
    profile = make_profile(subscription_status="active", subscription_tier="pro")

    result = resolve_subscription_access(profile, now=NOW)

    assert result.has_access is True
    assert result.tier == "pro"
    assert result.status == "active"


def test_no_profile_is_free_with_access():
    result = resolve_subscription_access(None, now=NOW)

    assert result.has_access is True
    assert result.tier == "free"
    assert result.status == "none"
    assert result.features == list(TIER_FEATURES["free"])


def test_new_user_without_trial_gets_free_access():
    result = resolve_subscription_access(make_profile(subscription_status="none", has_used_trial=False), now=NOW)

    assert result.has_access is True
    assert result.tier == "free"
    assert result.status == "none"


@pytest.mark.parametrize("tier", ["free", "basic", "pro", "ultra", "enterprise"])
def test_active_resolves_to_every_stored_tier(tier):
    result = resolve_subscription_access(make_profile(subscription_status="active", subscription_tier=tier), now=NOW)

    assert result.tier == tier
    assert result.has_access is True


def test_active_counts_days_to_subscription_end():
    profile = make_profile(
        subscription_status="active",
        subscription_tier="basic",
        subscription_ends_at=(NOW + timedelta(days=12, hours=3)).isoformat(),
    )

    result = resolve_subscription_access(profile, now=NOW)

    assert result.days_remaining == 13
    assert result.display_status == "Active BASIC plan (13 days remaining)"


def test_trial_ending_exactly_now_is_expired():
    profile = make_profile(subscription_status="trialing", trial_ends_at=NOW)

    result = resolve_subscription_access(profile, now=NOW)

    assert result.tier == "free"
    assert result.status == "expired"
    assert result.days_remaining == 0


def test_trial_with_one_second_left_counts_as_one_day():
    profile = make_profile(subscription_status="trialing", trial_ends_at=NOW + timedelta(seconds=1))

    result = resolve_subscription_access(profile, now=NOW)

    assert result.tier == "ultra"
    assert result.days_remaining == 1


def test_legacy_trial_status_is_an_alias_for_trialing():
    profile = make_profile(subscription_status="trial", trial_ends_at=NOW + timedelta(days=5))

    result = resolve_subscription_access(profile, now=NOW)

    assert result.status == "trialing"
    assert result.tier == "ultra"


def test_trial_grants_ultra_regardless_of_stored_tier():
    profile = make_profile(
        subscription_status="trialing",
        subscription_tier="basic",
        trial_ends_at=NOW + timedelta(days=1),
    )

    assert resolve_subscription_access(profile, now=NOW).tier == "ultra"


def test_trial_without_end_date_is_expired():
    profile = make_profile(subscription_status="trialing", trial_ends_at=None)

    result = resolve_subscription_access(profile, now=NOW)

    assert result.status == "expired"
    assert result.tier == "free"


def test_trial_end_accepts_iso_strings_with_z_suffix():
    profile = make_profile(subscription_status="trialing", trial_ends_at="2026-03-12T12:00:00Z")

    result = resolve_subscription_access(profile, now=NOW)

    assert result.days_remaining == 2
    assert result.trial_ends_at == "2026-03-12T12:00:00+00:00"


def test_eligible_keeps_its_status():
    result = resolve_subscription_access(make_profile(subscription_status="eligible"), now=NOW)

    assert result.status == "eligible"
    assert result.tier == "free"


@pytest.mark.parametrize("status", ["expired", "cancelled", "canceled", "past_due", "mystery", ""])
def test_other_statuses_resolve_to_free(status):
    result = resolve_subscription_access(
        make_profile(subscription_status=status, subscription_tier="enterprise"), now=NOW
    )

    assert result.has_access is True
    assert result.tier == "free"


def test_unrecognized_status_has_free_label():
    result = resolve_subscription_access(make_profile(subscription_status="cancelled"), now=NOW)

    assert result.status == "free"
    assert result.display_status == "Free plan"


@pytest.mark.parametrize("garbage", [
    {},
    {"subscription_status": 42},
    {"subscription_status": "trialing", "trial_ends_at": "not-a-date"},
    {"subscription_status": "trialing", "trial_ends_at": 12345},
    {"subscription_status": "trialing", "trial_ends_at": "9999-12-31T23:59:59-05:00"},
    {"subscription_status": "trialing", "trial_ends_at": "0001-01-01T00:00:00+05:00"},
    {"subscription_status": "active", "subscription_tier": "platinum"},
    "a string",
    12,
])
def test_malformed_profiles_never_raise(garbage):
    result = resolve_subscription_access(garbage, now=NOW)

    assert result.has_access is True
    assert result.tier == "free"
    assert isinstance(result.days_remaining, int)
    assert result.days_remaining >= 0


def test_attribute_style_profiles_are_supported():
    profile = SimpleNamespace(subscription_status="active", subscription_tier="ultra")

    assert resolve_subscription_access(profile, now=NOW).tier == "ultra"


def test_resolve_defaults_to_current_time():
    profile = make_profile(
        subscription_status="trialing",
        trial_ends_at=datetime.now(timezone.utc) + timedelta(days=2),
    )

    result = resolve_subscription_access(profile)

    assert result.tier == "ultra"
    assert result.days_remaining == 2


def test_days_remaining_is_never_negative():
    for offset in range(-5, 6):
        profile = make_profile(subscription_status="trialing", trial_ends_at=NOW + timedelta(days=offset, hours=7))
        result = resolve_subscription_access(profile, now=NOW)
        assert isinstance(result.days_remaining, int)
        assert result.days_remaining >= 0


def test_feature_lists_grow_with_tier():
    for lower, higher in zip(TIER_ORDER, TIER_ORDER[1:]):
        assert set(TIER_FEATURES[lower]) < set(TIER_FEATURES[higher])
        # ordering is preserved as a prefix
        assert TIER_FEATURES[higher][:len(TIER_FEATURES[lower])] == TIER_FEATURES[lower]


def test_result_serializes_for_api():
    payload = resolve_subscription_access(
        make_profile(subscription_status="trialing", trial_ends_at=NOW + timedelta(days=3)), now=NOW
    ).model_dump()

    assert set(payload) >= {"has_access", "tier", "status", "features", "days_remaining"}
    assert payload["display_status"] == "Free trial active (3 days remaining)"


def test_normalizers():
    assert normalize_subscription_status(" TRIAL ") == "trialing"
    assert normalize_subscription_status("canceled") == "cancelled"
    assert normalize_subscription_status(None) == "none"
    assert normalize_tier("PRO") == "pro"
    assert normalize_tier("gold") == "free"
    assert normalize_tier(None) == "free"


def test_has_access_to_tier():
    assert has_access_to_tier("pro", "basic") is True
    assert has_access_to_tier("basic", "pro") is False
    assert has_access_to_tier("enterprise", "ultra") is True
    assert has_access_to_tier("unknown", "free") is True


def test_format_subscription_status_labels():
    assert format_subscription_status(resolve_subscription_access(None, now=NOW)) == "No active subscription"
    expired = resolve_subscription_access(
        make_profile(subscription_status="trial", trial_ends_at=NOW - timedelta(days=1)), now=NOW
    )
    assert format_subscription_status(expired) == "Trial expired"
    active = resolve_subscription_access(make_profile(subscription_status="active", subscription_tier="pro"), now=NOW)
    assert format_subscription_status(active) == "Active PRO plan"
