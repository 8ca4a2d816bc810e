"""
Tests for team invitations and the user seat quota.
"""
import re
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from assettracer.core.dependencies import get_current_user
from assettracer.core.errors import NotificationError
from assettracer.schemas.auth import UserResponse

from conftest import ORG_ID, OTHER_ORG_ID


@pytest.fixture
def owner(fake_db):
    return fake_db.seed("users", id="user-1", organization_id=ORG_ID, email="owner@acme.example.com", name="Olivia Owner", role="owner")


@pytest.fixture
def mail():
    with patch(
        "assettracer.services.team_service.notification_service.send_team_invitation",
        AsyncMock(return_value=None),
    ) as send:
        yield send


def _invitation(fake_db, email, days=7, status="pending", organization_id=ORG_ID, **fields):
    """Seed an invitation expiring `days` from now (negative for already expired)."""
    return fake_db.seed(
        "team_invitations",
        organization_id=organization_id,
        email=email,
        role=fields.pop("role", "member"),
        status=status,
        token=fields.pop("token", f"token-{email}"),
        expires_at=(datetime.now(timezone.utc) + timedelta(days=days)).isoformat(),
        **fields,
    )


class TestInvite:
    def test_free_plan_has_one_seat(self, client, fake_db, free_org, owner, mail):
        response = client.post("/api/v1/team/invite", json={"email": "new@acme.example.com"})

        assert response.status_code == 403
        body = response.json()
        assert body["resource"] == "maxUsers"
        assert body["limit"] == 1
        assert body["usage"] == 1
        mail.assert_not_awaited()

    def test_invite_on_pro(self, client, fake_db, pro_org, owner, mail):
        response = client.post("/api/v1/team/invite", json={"email": "New.Member@Acme.example.com", "role": "admin"})

        assert response.status_code == 201
        data = response.json()
        assert data["email_sent"] is True
        assert data["invitation"]["email"] == "new.member@acme.example.com"
        assert data["invitation"]["status"] == "pending"
        assert re.fullmatch(r"http://localhost:3000/accept-invite\?token=[0-9a-f]{64}", data["invite_link"])

        kwargs = mail.await_args.kwargs
        assert kwargs["organization_name"] == "Acme Rentals"
        assert kwargs["inviter_name"] == "Olivia Owner"
        assert kwargs["role"] == "admin"

    def test_pending_invitations_take_seats(self, client, fake_db, pro_org, owner, mail):
        for i in range(4):
            fake_db.seed("team_invitations", organization_id=ORG_ID, email=f"p{i}@acme.example.com",
                         role="member", status="pending", expires_at="2099-01-01T00:00:00+00:00")

        response = client.post("/api/v1/team/invite", json={"email": "sixth@acme.example.com"})

        assert response.status_code == 403
        assert response.json()["usage"] == 5

    def test_email_failure_keeps_invitation(self, client, fake_db, pro_org, owner):
        with patch(
            "assettracer.services.team_service.notification_service.send_team_invitation",
            AsyncMock(side_effect=NotificationError("SendGrid down")),
        ):
            response = client.post("/api/v1/team/invite", json={"email": "new@acme.example.com"})

        assert response.status_code == 201
        assert response.json()["email_sent"] is False
        assert len(fake_db.rows("team_invitations", ORG_ID)) == 1

    def test_existing_member(self, client, fake_db, pro_org, owner, mail):
        response = client.post("/api/v1/team/invite", json={"email": "OWNER@acme.example.com"})
        assert response.status_code == 400

    def test_duplicate_pending_invitation(self, client, fake_db, pro_org, owner, mail):
        assert client.post("/api/v1/team/invite", json={"email": "new@acme.example.com"}).status_code == 201
        assert client.post("/api/v1/team/invite", json={"email": "new@acme.example.com"}).status_code == 400

    def test_invalid_email(self, client, pro_org, owner, mail):
        assert client.post("/api/v1/team/invite", json={"email": "nope"}).status_code == 422


class TestMembership:
    def test_list_members(self, client, fake_db, free_org, owner):
        members = client.get("/api/v1/team/members").json()
        assert [m["email"] for m in members] == ["owner@acme.example.com"]

    def test_revoke_frees_seat(self, client, fake_db, pro_org, owner, mail):
        invitation = client.post("/api/v1/team/invite", json={"email": "new@acme.example.com"}).json()["invitation"]

        response = client.delete(f"/api/v1/team/invitations/{invitation['id']}")

        assert response.status_code == 204
        assert client.get("/api/v1/team/invitations").json() == []

    def test_revoke_unknown(self, client, pro_org):
        assert client.delete("/api/v1/team/invitations/missing").status_code == 404


class TestInvitationExpiry:
    def test_expired_invitations_free_their_seats(self, client, fake_db, pro_org, owner, mail):
        for i in range(4):
            _invitation(fake_db, f"old{i}@acme.example.com", days=-30)

        response = client.post("/api/v1/team/invite", json={"email": "fresh@acme.example.com"})

        assert response.status_code == 201

    def test_expired_address_can_be_invited_again(self, client, fake_db, pro_org, owner, mail):
        _invitation(fake_db, "again@acme.example.com", days=-1)

        response = client.post("/api/v1/team/invite", json={"email": "again@acme.example.com"})

        assert response.status_code == 201

    def test_expired_invitations_are_not_listed(self, client, fake_db, pro_org, owner):
        _invitation(fake_db, "live@acme.example.com", days=2)
        _invitation(fake_db, "gone@acme.example.com", days=-2)

        invitations = client.get("/api/v1/team/invitations").json()

        assert [i["email"] for i in invitations] == ["live@acme.example.com"]


@pytest.fixture
def joiner():
    return UserResponse(
        id="user-7",
        email="nia@acme.example.com",
        full_name="Nia New",
        created_at="2026-02-01T00:00:00+00:00",
    )


@pytest.fixture
def joiner_client(app, fake_db, joiner):
    """Signed in as a user who has not joined any organization yet."""
    app.dependency_overrides[get_current_user] = lambda: joiner
    return TestClient(app)


class TestAcceptInvite:
    def test_accept_creates_membership(self, joiner_client, fake_db, pro_org, owner):
        invitation = _invitation(fake_db, "nia@acme.example.com", role="admin", token="tok-1")

        response = joiner_client.post("/api/v1/team/accept-invite", json={"token": "tok-1"})

        assert response.status_code == 200
        data = response.json()
        assert data["organization_id"] == ORG_ID
        assert data["organization_name"] == "Acme Rentals"
        assert data["role"] == "admin"
        assert data["already_member"] is False
        user = next(u for u in fake_db.tables["users"] if u["id"] == "user-7")
        assert user["organization_id"] == ORG_ID
        assert user["role"] == "admin"
        assert user["name"] == "Nia New"
        assert invitation["status"] == "accepted"

    def test_accepted_user_resolves_to_new_organization(self, joiner_client, fake_db, pro_org, owner):
        _invitation(fake_db, "nia@acme.example.com", token="tok-1")
        joiner_client.post("/api/v1/team/accept-invite", json={"token": "tok-1"})

        members = {m["email"] for m in joiner_client.get("/api/v1/team/members").json()}

        assert members == {"owner@acme.example.com", "nia@acme.example.com"}

    def test_accept_moves_user_from_previous_organization(self, joiner_client, fake_db, pro_org, owner):
        fake_db.seed("users", id="user-7", organization_id=OTHER_ORG_ID, email="nia@acme.example.com", role="owner")
        _invitation(fake_db, "nia@acme.example.com", token="tok-1")

        assert joiner_client.post("/api/v1/team/accept-invite", json={"token": "tok-1"}).status_code == 200

        user = next(u for u in fake_db.tables["users"] if u["id"] == "user-7")
        assert user["organization_id"] == ORG_ID
        assert user["role"] == "member"

    def test_already_member(self, joiner_client, fake_db, pro_org, owner):
        fake_db.seed("users", id="user-7", organization_id=ORG_ID, email="nia@acme.example.com", role="member")
        invitation = _invitation(fake_db, "nia@acme.example.com", token="tok-1")

        response = joiner_client.post("/api/v1/team/accept-invite", json={"token": "tok-1"})

        assert response.status_code == 200
        assert response.json()["already_member"] is True
        assert invitation["status"] == "accepted"

    def test_expired_token(self, joiner_client, fake_db, pro_org, owner):
        invitation = _invitation(fake_db, "nia@acme.example.com", days=-1, token="tok-1")

        response = joiner_client.post("/api/v1/team/accept-invite", json={"token": "tok-1"})

        assert response.status_code == 400
        assert response.json()["detail"] == "This invitation has expired"
        assert invitation["status"] == "expired"
        assert not any(u["id"] == "user-7" for u in fake_db.tables["users"])

    def test_token_cannot_be_reused(self, joiner_client, fake_db, pro_org, owner):
        _invitation(fake_db, "nia@acme.example.com", token="tok-1")

        first = joiner_client.post("/api/v1/team/accept-invite", json={"token": "tok-1"})
        second = joiner_client.post("/api/v1/team/accept-invite", json={"token": "tok-1"})

        assert first.status_code == 200
        assert second.status_code == 404

    def test_revoked_token(self, joiner_client, fake_db, pro_org, owner):
        _invitation(fake_db, "nia@acme.example.com", status="revoked", token="tok-1")
        assert joiner_client.post("/api/v1/team/accept-invite", json={"token": "tok-1"}).status_code == 404

    def test_unknown_token(self, joiner_client, fake_db, pro_org):
        assert joiner_client.post("/api/v1/team/accept-invite", json={"token": "nope"}).status_code == 404

    def test_requires_sign_in(self, anon_client, fake_db, pro_org):
        _invitation(fake_db, "nia@acme.example.com", token="tok-1")
        assert anon_client.post("/api/v1/team/accept-invite", json={"token": "tok-1"}).status_code == 401

    def test_invitation_details(self, anon_client, fake_db, pro_org):
        _invitation(fake_db, "nia@acme.example.com", role="admin", token="tok-1")

        response = anon_client.get("/api/v1/team/accept-invite", params={"token": "tok-1"})

        assert response.status_code == 200
        data = response.json()
        assert data["email"] == "nia@acme.example.com"
        assert data["status"] == "pending"
        assert data["organization_name"] == "Acme Rentals"

    def test_invitation_details_mark_expiry(self, anon_client, fake_db, pro_org):
        invitation = _invitation(fake_db, "nia@acme.example.com", days=-3, token="tok-1")

        data = anon_client.get("/api/v1/team/accept-invite", params={"token": "tok-1"}).json()

        assert data["status"] == "expired"
        assert invitation["status"] == "expired"
