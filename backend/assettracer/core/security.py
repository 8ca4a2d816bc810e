"""
Security utilities for session token verification.

Session tokens are Supabase access tokens (HS256, audience "authenticated").
Internal tokens minted by this backend (e.g. for tests and the CLI) are
signed with the same secret and carry no audience.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from .config import settings


logger = logging.getLogger(__name__)


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))

    to_encode.update({"exp": expire, "iat": now})

    return jwt.encode(
        to_encode,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm
    )


def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Verify and decode a JWT token.

    Tries, in order:
    1. Supabase tokens (audience "authenticated")
    2. Internal tokens (no audience)
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            audience="authenticated"
        )
        payload["_token_type"] = "supabase"
        return payload
    except JWTError as e:
        logger.debug(f"Supabase token verification failed: {type(e).__name__}")

    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"verify_aud": False}
        )
        payload["_token_type"] = "internal"
        return payload
    except JWTError as e:
        logger.debug(f"Internal token verification failed: {type(e).__name__}")

    return None


def extract_user_id_from_token(token: str) -> Optional[str]:
    """Extract user ID from JWT token."""
    payload = verify_token(token)
    if payload:
        return payload.get("sub")
    return None
