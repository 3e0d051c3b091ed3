"""
Authentication dependencies
"""

import logging
from typing import Optional
from fastapi import HTTPException, Header, Cookie

from auth_utils import decode_jwt

logger = logging.getLogger(__name__)


def _extract_token(auth_token: Optional[str], authorization: Optional[str]) -> Optional[str]:
    # Cookie first (browser clients), then Bearer header (API consumers)
    if auth_token:
        return auth_token
    if authorization and authorization.startswith("Bearer "):
        return authorization[len("Bearer "):].strip() or None
    return None


async def get_current_user(
    auth_token: Optional[str] = Cookie(None),
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> dict:
    """
    Dependency function to get current authenticated user.

    The identity provider owns accounts and passwords; this service only
    verifies the session token it issued.

    Authentication priority:
    1. Check auth_token cookie first (httpOnly cookie)
    2. Fallback to Authorization header (Bearer token) for API consumers
    3. Raise 401 if neither is found
    """
    token = _extract_token(auth_token, authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Missing authentication token")

    try:
        payload = decode_jwt(token)
    except ValueError as e:
        logger.error(f"Cannot verify session token: {e}")
        raise HTTPException(status_code=401, detail="Authentication is not configured")

    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token payload")

    return {
        "user_id": str(user_id),
        "email": payload.get("email"),
    }
