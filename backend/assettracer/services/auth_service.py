"""
Authentication service: resolves users from session tokens.

User identities are cached in Redis for a few minutes. Subscription tiers are
not part of the cached payload; they are read per request.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import redis.asyncio as redis
from fastapi import HTTPException, status

from ..core.config import settings
from ..core.security import verify_token
from ..core.supabase_client import supabase_client
from ..schemas.auth import UserResponse
from ..utils.json_encoder import safe_json_dumps, safe_json_loads


logger = logging.getLogger(__name__)


class AuthService:
    """Service class for authentication operations."""

    def __init__(self):
        self.redis_client = None

    async def get_redis(self):
        """Get Redis connection, or None if Redis is unavailable."""
        if not self.redis_client:
            redis_config = settings.redis_connection_kwargs
            try:
                client = redis.Redis(**redis_config)
                await client.ping()
                self.redis_client = client
                logger.info(f"Redis connection successful to {redis_config['host']}:{redis_config['port']}")
            except Exception as e:
                logger.warning(f"Redis unavailable, user cache disabled: {e}")
                self.redis_client = None

        return self.redis_client

    async def get_current_user(self, token: str) -> UserResponse:
        """
        Get current user from a session token with Redis caching.

        Supabase tokens carry email and user_metadata in their claims. Internal
        tokens without an email are resolved through the Supabase admin API.
        """
        payload = verify_token(token)

        if not payload:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token - verification failed"
            )

        user_id = payload.get("sub")
        if not user_id:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token: missing user ID (sub claim)"
            )

        redis_client = await self.get_redis()
        cache_key = f"user:{user_id}"

        if redis_client:
            try:
                cached_user = await redis_client.get(cache_key)
                if cached_user:
                    return UserResponse(**safe_json_loads(cached_user))
            except Exception as e:
                logger.warning(f"Redis cache read failed: {e}")

        if payload.get("email"):
            user_response = self._user_from_claims(user_id, payload)
        else:
            user_response = await self._get_user_from_database(user_id)

        if redis_client:
            try:
                await redis_client.setex(
                    cache_key,
                    settings.user_cache_ttl_seconds,
                    safe_json_dumps(user_response.model_dump())
                )
            except Exception as e:
                logger.warning(f"Redis cache write failed: {e}")

        return user_response

    def _user_from_claims(self, user_id: str, payload: Dict[str, Any]) -> UserResponse:
        user_metadata = payload.get("user_metadata") or {}

        issued_at = payload.get("iat")
        if issued_at:
            created_at = datetime.fromtimestamp(issued_at, tz=timezone.utc).isoformat()
        else:
            created_at = datetime.now(timezone.utc).isoformat()

        return UserResponse(
            id=user_id,
            email=payload.get("email") or user_metadata.get("email", ""),
            full_name=user_metadata.get("full_name") or user_metadata.get("name"),
            created_at=created_at,
            email_confirmed_at=created_at if user_metadata.get("email_verified") else None,
        )

    async def _get_user_from_database(self, user_id: str) -> UserResponse:
        """Fetch user data from Supabase Auth for tokens without identity claims."""
        try:
            result = supabase_client.service_client.auth.admin.get_user_by_id(user_id)
        except Exception as e:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=f"Failed to fetch user from database: {str(e)}"
            )

        if not result or not result.user:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="User not found"
            )

        user = result.user
        user_metadata = user.user_metadata or {}
        return UserResponse(
            id=user.id,
            email=user.email,
            full_name=user_metadata.get("full_name"),
            created_at=str(user.created_at) if user.created_at else datetime.now(timezone.utc).isoformat(),
            email_confirmed_at=str(user.email_confirmed_at) if user.email_confirmed_at else None,
        )

    async def invalidate_user(self, user_id: str) -> None:
        """Drop a cached identity (e.g. after logout)."""
        redis_client = await self.get_redis()
        if redis_client:
            try:
                await redis_client.delete(f"user:{user_id}")
            except Exception as e:
                logger.warning(f"Redis cache delete failed: {e}")


# Global auth service instance
auth_service = AuthService()
