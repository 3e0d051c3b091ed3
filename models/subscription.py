"""
Subscription response models
"""
from typing import List, Optional
from pydantic import BaseModel, ConfigDict


class SubscriptionAccessResult(BaseModel):
    """Access decision derived from a profile. Recomputed on every request."""
    model_config = ConfigDict(frozen=True)

    has_access: bool
    tier: str
    status: str
    features: List[str]
    days_remaining: int = 0
    is_trial_active: bool = False
    trial_ends_at: Optional[str] = None
    subscription_ends_at: Optional[str] = None
    display_status: str = ""


class TrialInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_active: bool
    days_remaining: int
    end_date: Optional[str] = None
    status: str  # active, expired or not_started


class FeatureRestrictions(BaseModel):
    model_config = ConfigDict(frozen=True)

    can_customize_name: bool
    can_customize_welcome_message: bool
    can_upload_logo: bool
    can_change_colors: bool
    can_capture_leads: bool
    can_remove_branding: bool
    max_knowledge_uploads: int  # soft cap
    max_knowledge_words: int  # soft cap
    monthly_conversation_limit: Optional[int] = None  # None means unlimited
