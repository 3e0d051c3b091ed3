"""
Shared utility functions for routers and services
"""
import json
import logging
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from crud.profile import ProfileRepository
from utils.cache import get_cached, profile_cache_key

logger = logging.getLogger(__name__)


async def load_profile_snapshot(db: AsyncSession, current_user: dict) -> dict:
    """
    Cached profile snapshot for the authenticated user.
    Creates the profile on first sight of the user (get-or-create).

    Args:
        db: AsyncSession for the request
        current_user: dict from auth.get_current_user

    Returns:
        JSON-safe profile dict (see ProfileRepository.to_snapshot)
    """
    user_id = current_user["user_id"]

    async def fetch_profile():
        profile = await ProfileRepository(db).get_or_create_profile(user_id, current_user.get("email"))
        return ProfileRepository.to_snapshot(profile)

    return await get_cached(
        key=profile_cache_key(user_id),
        fallback_func=fetch_profile,
        ttl_seconds=settings.profile_cache_ttl_seconds,
    )


def log_endpoint_event(endpoint: str, user_id: Optional[str] = None, result: str = "success", details: Optional[dict] = None):
    """Log endpoint execution to app.log"""
    logger.info(f"{endpoint} | user={user_id} | {result} | {json.dumps(details or {})}")
