"""
Team Service - members and invitations.

Seats are counted as members plus pending, unexpired invitations, so an organization
cannot hand out more invitations than its user quota allows.
"""
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from fastapi import HTTPException, status

from ..core.config import settings
from ..core.errors import NotificationError
from ..core.tier_limits import QuotaResource
from ..dependencies.tier_check import create_within_quota
from ..schemas.auth import UserResponse
from ..schemas.team import (
    AcceptInviteResponse,
    Invitation,
    InvitationDetails,
    InvitationStatus,
    InviteRequest,
    TeamMember,
)
from .notification_service import notification_service
from .persistence import persistence


logger = logging.getLogger(__name__)

INVITATION_TTL = timedelta(days=7)


def generate_invite_token() -> str:
    """32 random bytes, hex encoded."""
    return secrets.token_hex(32)


def build_invite_link(token: str) -> str:
    return f"{settings.app_url.rstrip('/')}/accept-invite?token={token}"


def is_expired(invitation: Invitation, now: Optional[datetime] = None) -> bool:
    now = now or datetime.now(timezone.utc)
    expires_at = invitation.expires_at
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at <= now


class TeamService:
    """Team membership for an organization."""

    def __init__(self):
        self.db = persistence

    async def list_members(self, organization_id: str) -> List[TeamMember]:
        rows = await self.db.list(
            "users", organization_id, columns="id, email, name, role, created_at", desc=False
        )
        return [TeamMember(**row) for row in rows]

    async def list_invitations(self, organization_id: str) -> List[Invitation]:
        """Pending invitations that can still be accepted."""
        rows = await self.db.list_pending_invitations(organization_id, datetime.now(timezone.utc))
        return [Invitation(**row) for row in rows]

    async def invite(
        self,
        organization_id: str,
        request: InviteRequest,
        invited_by: str,
        inviter_name: str,
    ) -> Tuple[Invitation, str, bool]:
        """
        Create and email an invitation.

        Returns (invitation, invite_link, email_sent). Email failure does not
        roll back the invitation; the link can be shared manually.
        """
        email = request.email.lower()

        members = await self.db.list("users", organization_id, columns="id, email")
        if any((m.get("email") or "").lower() == email for m in members):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="This user is already a member of your organization"
            )

        pending = await self.list_invitations(organization_id)
        if any(inv.email.lower() == email for inv in pending):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="An invitation has already been sent to this email"
            )

        token = generate_invite_token()
        record = {
            "email": email,
            "role": request.role.value,
            "status": InvitationStatus.PENDING.value,
            "token": token,
            "invited_by": invited_by,
            "expires_at": (datetime.now(timezone.utc) + INVITATION_TTL).isoformat(),
        }

        async def insert():
            return await self.db.insert("team_invitations", organization_id, record)

        row = await create_within_quota(organization_id, QuotaResource.MAX_USERS, insert)
        invitation = Invitation(**row)
        link = build_invite_link(token)

        organization = await self.db.get_organization(organization_id) or {}
        try:
            await notification_service.send_team_invitation(
                to_email=email,
                organization_name=organization.get("name") or "your team",
                inviter_name=inviter_name,
                invite_link=link,
                role=request.role.value,
            )
            email_sent = True
        except NotificationError as e:
            logger.warning(f"Invitation {invitation.id} created but email failed: {e}")
            email_sent = False

        return invitation, link, email_sent

    async def revoke_invitation(self, organization_id: str, invitation_id: str) -> None:
        row = await self.db.update(
            "team_invitations", organization_id, invitation_id,
            {"status": InvitationStatus.REVOKED.value},
        )
        if not row:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Invitation not found"
            )

    async def _find_by_token(self, token: str) -> Invitation:
        row = await self.db.find_unscoped("team_invitations", "token", token)
        if not row:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Invitation not found"
            )
        return Invitation(**row)

    async def _mark_expired(self, invitation: Invitation) -> None:
        await self.db.update(
            "team_invitations", invitation.organization_id, invitation.id,
            {"status": InvitationStatus.EXPIRED.value},
            filters={"status": InvitationStatus.PENDING.value},
        )

    async def get_invitation_details(self, token: str) -> InvitationDetails:
        """Look up an invitation by token. A lapsed pending invitation is marked expired."""
        invitation = await self._find_by_token(token)

        invitation_status = invitation.status
        if invitation_status is InvitationStatus.PENDING and is_expired(invitation):
            await self._mark_expired(invitation)
            invitation_status = InvitationStatus.EXPIRED

        organization = await self.db.get_organization(invitation.organization_id) or {}
        return InvitationDetails(
            id=invitation.id,
            email=invitation.email,
            role=invitation.role,
            status=invitation_status,
            expires_at=invitation.expires_at,
            organization_id=invitation.organization_id,
            organization_name=organization.get("name"),
        )

    async def accept_invitation(self, token: str, user: UserResponse) -> AcceptInviteResponse:
        """
        Join the inviting organization.

        The invitation is claimed with a conditional update, so a token can be
        used once. The signed-in user may differ from the invited address.
        Joining moves the user's row out of any previous organization.
        """
        invitation = await self._find_by_token(token)
        if invitation.status is not InvitationStatus.PENDING:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Invitation not found or already used"
            )

        if is_expired(invitation):
            await self._mark_expired(invitation)
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="This invitation has expired"
            )

        claimed = await self.db.update(
            "team_invitations", invitation.organization_id, invitation.id,
            {
                "status": InvitationStatus.ACCEPTED.value,
                "updated_at": datetime.now(timezone.utc).isoformat(),
            },
            filters={"status": InvitationStatus.PENDING.value},
        )
        if not claimed:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Invitation not found or already used"
            )

        organization_id = invitation.organization_id
        organization = await self.db.get_organization(organization_id) or {}
        existing = await self.db.get_user(user.id)

        if existing and existing.get("organization_id") == organization_id:
            message = "You are already a member of this organization"
            already_member = True
        else:
            try:
                if existing:
                    await self.db.update_user(
                        user.id, {"organization_id": organization_id, "role": invitation.role.value}
                    )
                else:
                    await self.db.create_user({
                        "id": user.id,
                        "email": user.email,
                        "name": user.full_name or user.email.split("@")[0],
                        "organization_id": organization_id,
                        "role": invitation.role.value,
                    })
            except Exception:
                await self.db.update(
                    "team_invitations", organization_id, invitation.id,
                    {"status": InvitationStatus.PENDING.value},
                )
                raise
            message = "Successfully joined the team!"
            already_member = False
            logger.info(f"User {user.id} joined organization {organization_id} via invitation {invitation.id}")

        return AcceptInviteResponse(
            message=message,
            organization_id=organization_id,
            organization_name=organization.get("name"),
            role=invitation.role,
            already_member=already_member,
        )


# Global team service instance
team_service = TeamService()
