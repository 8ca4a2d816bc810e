"""
Authentication-related Pydantic schemas.
"""
from typing import Optional
from pydantic import BaseModel, Field


class UserResponse(BaseModel):
    """Schema for user data response."""
    id: str = Field(..., description="User unique identifier")
    email: str = Field(..., description="User email address")
    full_name: Optional[str] = Field(None, description="User's full name")
    created_at: str = Field(..., description="Account creation timestamp")
    email_confirmed_at: Optional[str] = Field(None, description="Email confirmation timestamp")


class SessionResponse(BaseModel):
    """Response for session operations."""
    message: str
    user: Optional[UserResponse] = None


class OrganizationContext(BaseModel):
    """The authenticated user together with the organization they act for."""
    organization_id: str
    user: UserResponse
    tier: Optional[str] = Field(None, description="Effective tier, filled in by tier dependencies")
