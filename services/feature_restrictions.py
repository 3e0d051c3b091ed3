"""
Per-tier feature restrictions and usage caps.

Upload and word limits are soft caps: the dashboard shows an upgrade prompt
when one is reached. The monthly conversation limit is enforced by the chat
endpoints.
"""
from typing import Dict

from config.settings import TIER_FREE, TIER_BASIC, TIER_PRO, TIER_ULTRA, TIER_ENTERPRISE
from models.subscription import FeatureRestrictions
from services.subscription_service import normalize_tier

TIER_RESTRICTIONS: Dict[str, FeatureRestrictions] = {
    TIER_FREE: FeatureRestrictions(
        can_customize_name=False,
        can_customize_welcome_message=False,
        can_upload_logo=False,
        can_change_colors=False,
        can_capture_leads=False,
        can_remove_branding=False,
        max_knowledge_uploads=10,
        max_knowledge_words=2000,
        monthly_conversation_limit=300,
    ),
    TIER_BASIC: FeatureRestrictions(
        can_customize_name=True,
        can_customize_welcome_message=True,
        can_upload_logo=False,
        can_change_colors=False,
        can_capture_leads=True,
        can_remove_branding=True,
        max_knowledge_uploads=20,
        max_knowledge_words=5000,
        monthly_conversation_limit=1000,
    ),
    TIER_PRO: FeatureRestrictions(
        can_customize_name=True,
        can_customize_welcome_message=True,
        can_upload_logo=True,
        can_change_colors=True,
        can_capture_leads=True,
        can_remove_branding=True,
        max_knowledge_uploads=50,
        max_knowledge_words=15000,
        monthly_conversation_limit=3000,
    ),
    TIER_ULTRA: FeatureRestrictions(
        can_customize_name=True,
        can_customize_welcome_message=True,
        can_upload_logo=True,
        can_change_colors=True,
        can_capture_leads=True,
        can_remove_branding=True,
        max_knowledge_uploads=75,
        max_knowledge_words=50000,
        monthly_conversation_limit=None,
    ),
    TIER_ENTERPRISE: FeatureRestrictions(
        can_customize_name=True,
        can_customize_welcome_message=True,
        can_upload_logo=True,
        can_change_colors=True,
        can_capture_leads=True,
        can_remove_branding=True,
        max_knowledge_uploads=100,
        max_knowledge_words=100000,
        monthly_conversation_limit=None,
    ),
}

UPGRADE_MESSAGES: Dict[str, str] = {
    "can_customize_name": "Upgrade to Basic plan to customize your chatbot name",
    "can_customize_welcome_message": "Upgrade to Basic plan to customize welcome messages",
    "can_upload_logo": "Upgrade to Pro plan to upload custom logos",
    "can_change_colors": "Upgrade to Pro plan to customize colors and themes",
    "can_capture_leads": "Upgrade to Basic plan to enable lead capture",
    "can_remove_branding": "Upgrade to Basic plan to remove TrulyBot branding",
}


def get_feature_restrictions(tier: str) -> FeatureRestrictions:
    return TIER_RESTRICTIONS[normalize_tier(tier)]


def can_access_feature(tier: str, feature: str) -> bool:
    """
    Boolean restrictions return their value, numeric caps are usable when
    above zero, and an unlimited (None) cap is always usable.
    Unknown feature names are not accessible.
    """
    restrictions = get_feature_restrictions(tier)
    if feature not in FeatureRestrictions.model_fields:
        return False
    value = getattr(restrictions, feature)
    if value is None:
        return True
    if isinstance(value, bool):
        return value
    return value > 0


def get_upgrade_message(feature: str) -> str:
    return UPGRADE_MESSAGES.get(feature, "Upgrade your plan to access this feature")


def has_reached_conversation_limit(tier: str, current_month_conversations: int) -> bool:
    limit = get_feature_restrictions(tier).monthly_conversation_limit
    if limit is None:
        return False
    return current_month_conversations >= limit


def has_reached_upload_limit(tier: str, current_uploads: int) -> bool:
    return current_uploads >= get_feature_restrictions(tier).max_knowledge_uploads


def has_reached_word_limit(tier: str, current_words: int) -> bool:
    return current_words >= get_feature_restrictions(tier).max_knowledge_words
