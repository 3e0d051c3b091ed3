"""
Authentication utilities: JWT token handling for identity-provider sessions
"""

import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional
from config.settings import settings

# JWT configuration
ALGORITHM = "HS256"


def create_jwt(user_id: str, email: Optional[str] = None, expires_in: timedelta = timedelta(days=7)) -> str:
    """Create a JWT token for a user (same shape the identity provider issues)"""
    if not settings.jwt_secret_key:
        raise ValueError("JWT_SECRET_KEY is not set. Cannot create JWT token.")

    payload = {
        "sub": user_id,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    if email:
        payload["email"] = email
    if settings.jwt_audience:
        payload["aud"] = settings.jwt_audience
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=ALGORITHM)


def decode_jwt(token: str):
    """Decode a JWT token. Returns None if invalid."""
    if not settings.jwt_secret_key:
        raise ValueError("JWT_SECRET_KEY is not set. Cannot decode JWT token.")

    try:
        if settings.jwt_audience:
            return jwt.decode(
                token,
                settings.jwt_secret_key,
                algorithms=[ALGORITHM],
                audience=settings.jwt_audience,
            )
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[ALGORITHM],
            options={"verify_aud": False},
        )
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def create_expired_jwt(user_id: str, expired_seconds_ago: int = 1) -> str:
    """
    Create an expired JWT token for testing purposes.

    Args:
        user_id: User ID to include in token
        expired_seconds_ago: How many seconds ago the token should have expired (default: 1)

    Returns:
        Expired JWT token string

    Raises:
        ValueError: If JWT_SECRET_KEY is not set
    """
    return create_jwt(user_id, expires_in=timedelta(seconds=-expired_seconds_ago))
