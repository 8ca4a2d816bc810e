"""
Pydantic schemas for team membership and invitations.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class TeamRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REVOKED = "revoked"
    EXPIRED = "expired"


class TeamMember(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    role: TeamRole = TeamRole.MEMBER
    created_at: Optional[datetime] = None


class InviteRequest(BaseModel):
    email: EmailStr
    role: TeamRole = Field(default=TeamRole.MEMBER)


class Invitation(BaseModel):
    id: str
    organization_id: str
    email: str
    role: TeamRole
    status: InvitationStatus
    invited_by: Optional[str] = None
    expires_at: datetime
    created_at: Optional[datetime] = None


class InviteResponse(BaseModel):
    invitation: Invitation
    invite_link: str
    email_sent: bool


class InvitationDetails(BaseModel):
    """What the accept page shows before the user signs in and accepts."""
    id: str
    email: str
    role: TeamRole
    status: InvitationStatus
    expires_at: datetime
    organization_id: str
    organization_name: Optional[str] = None


class AcceptInviteRequest(BaseModel):
    token: str = Field(..., min_length=1)


class AcceptInviteResponse(BaseModel):
    message: str
    organization_id: str
    organization_name: Optional[str] = None
    role: TeamRole
    already_member: bool = False
