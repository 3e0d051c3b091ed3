from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user
from database import get_db
from services.subscription_service import resolve_subscription_access
from utils.responses import success_response
from utils.shared_utils import load_profile_snapshot

router = APIRouter(prefix="/api/user", tags=["user"])


@router.get("/profile")
async def get_profile(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Stored profile plus the access it resolves to.
    First call for a new user creates the profile.
    """
    snapshot = await load_profile_snapshot(db, current_user)
    access = resolve_subscription_access(snapshot)
    return success_response(data={"profile": snapshot, "subscription": access.model_dump()})
