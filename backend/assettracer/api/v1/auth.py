"""
Authentication API routes.

Browser sessions exchange a Supabase JWT for an httpOnly cookie; API clients
may send the same JWT as a Bearer token instead.
"""
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Request, Response
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ...schemas.auth import UserResponse, SessionResponse, OrganizationContext
from ...services.auth_service import auth_service
from ...core.dependencies import get_current_user
from ...core.config import settings
from ...core.security import extract_user_id_from_token
from ...dependencies.tier_check import get_organization_with_tier


router = APIRouter(prefix="/auth", tags=["Authentication"])

bearer_scheme = HTTPBearer(auto_error=False)


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=settings.cookie_httponly,
        # Never send the session over plain HTTP in production
        secure=settings.is_production_environment or settings.cookie_secure,
        samesite=settings.cookie_samesite,
        domain=settings.cookie_domain,
        max_age=settings.access_token_expire_minutes * 60,
        path="/",
    )


@router.post("/session", response_model=SessionResponse)
async def create_session(
    response: Response,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
):
    """
    Exchange a Supabase access token for the AssetTracer session cookie.

    The token is validated against Supabase before the cookie is issued, so a
    forged or expired token never becomes a session.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Bearer token required to create session",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        user = await auth_service.get_current_user(credentials.credentials)
    except HTTPException:
        raise
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    _set_session_cookie(response, credentials.credentials)
    return SessionResponse(message="Session created successfully", user=user)


@router.get("/session", response_model=SessionResponse)
async def get_session(current_user: UserResponse = Depends(get_current_user)):
    return SessionResponse(message="Session active", user=current_user)


@router.delete("/session")
async def delete_session(request: Request, response: Response):
    """Logout. Clears the cookie whether or not a session exists."""
    token = request.cookies.get(settings.session_cookie_name)
    user_id = extract_user_id_from_token(token) if token else None
    if user_id:
        await auth_service.invalidate_user(user_id)

    response.delete_cookie(
        key=settings.session_cookie_name,
        path="/",
        domain=settings.cookie_domain,
    )
    return {"message": "Session deleted successfully"}


@router.get("/me", response_model=OrganizationContext)
async def get_me(org: OrganizationContext = Depends(get_organization_with_tier)):
    """The signed-in user, their organization and its current plan."""
    return org


@router.get("/health")
async def auth_health():
    return {
        "status": "healthy",
        "service": "authentication",
        "auth_methods": ["session_cookie", "bearer"],
    }
