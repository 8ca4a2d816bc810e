"""
Team membership API endpoints.
"""
from typing import List

from fastapi import APIRouter, Depends, Query, status

from ...core.dependencies import get_current_organization, get_current_user
from ...schemas.auth import OrganizationContext, UserResponse
from ...schemas.team import (
    AcceptInviteRequest,
    AcceptInviteResponse,
    Invitation,
    InvitationDetails,
    InviteRequest,
    InviteResponse,
    TeamMember,
)
from ...services.team_service import team_service

router = APIRouter(prefix="/team", tags=["team"])


@router.get("/members", response_model=List[TeamMember])
async def list_members(org: OrganizationContext = Depends(get_current_organization)):
    return await team_service.list_members(org.organization_id)


@router.get("/invitations", response_model=List[Invitation])
async def list_invitations(org: OrganizationContext = Depends(get_current_organization)):
    return await team_service.list_invitations(org.organization_id)


@router.post("/invite", response_model=InviteResponse, status_code=status.HTTP_201_CREATED)
async def invite_member(request: InviteRequest, org: OrganizationContext = Depends(get_current_organization)):
    """
    Invite a user by email.

    Members plus pending invitations count against maxUsers. email_sent is
    false when delivery failed; the returned link still works.
    """
    invitation, link, email_sent = await team_service.invite(
        org.organization_id,
        request,
        invited_by=org.user.id,
        inviter_name=org.user.full_name or org.user.email,
    )
    return InviteResponse(invitation=invitation, invite_link=link, email_sent=email_sent)


@router.delete("/invitations/{invitation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_invitation(invitation_id: str, org: OrganizationContext = Depends(get_current_organization)):
    await team_service.revoke_invitation(org.organization_id, invitation_id)


@router.get("/accept-invite", response_model=InvitationDetails)
async def get_invitation(token: str = Query(..., min_length=1)):
    """Invitation details for the accept page. The token itself is the credential."""
    return await team_service.get_invitation_details(token)


@router.post("/accept-invite", response_model=AcceptInviteResponse)
async def accept_invitation(
    request: AcceptInviteRequest,
    current_user: UserResponse = Depends(get_current_user),
):
    """
    Accept an invitation as the signed-in user.

    404 when the token is unknown or already used, 400 when it has expired.
    """
    return await team_service.accept_invitation(request.token, current_user)
