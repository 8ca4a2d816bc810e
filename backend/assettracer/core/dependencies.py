"""
FastAPI dependencies for authentication and organization resolution.

Session tokens are read from the httpOnly session cookie first, then from the
Authorization Bearer header.
"""
import logging
from typing import Optional
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from .config import settings
from ..services.auth_service import auth_service
from ..services.persistence import persistence
from ..schemas.auth import UserResponse, OrganizationContext


logger = logging.getLogger(__name__)

# HTTP Bearer token scheme (fallback for API clients)
security = HTTPBearer(auto_error=False)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> UserResponse:
    """
    Dependency to get the current authenticated user.

    Args:
        request: FastAPI request object for reading cookies
        credentials: Optional HTTP Bearer token credentials

    Returns:
        UserResponse: Current user information

    Raises:
        HTTPException: If authentication fails
    """
    token = request.cookies.get(settings.session_cookie_name)

    if not token and credentials:
        token = credentials.credentials

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return await auth_service.get_current_user(token)
    except HTTPException:
        raise
    except Exception as e:
        logger.warning(f"Credential validation failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_current_organization(
    current_user: UserResponse = Depends(get_current_user),
) -> OrganizationContext:
    """
    Resolve the organization the current user belongs to.

    Only users.organization_id counts. Token metadata is never consulted:
    persistence runs with the service role, so this lookup is what keeps one
    organization's rows away from another's users.

    Raises:
        HTTPException: 403 if the user has no users row or no organization
    """
    organization_id = await persistence.get_user_organization_id(current_user.id)

    if not organization_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is not associated with an organization.",
        )

    return OrganizationContext(organization_id=organization_id, user=current_user)
