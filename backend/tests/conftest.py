"""
Shared fixtures.

Settings are read at import time, so the required environment is set here
before anything from the application is imported.
"""
import os
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-with-enough-length-1234")
os.environ.setdefault("ENVIRONMENT", "test")

import pytest
from fastapi.testclient import TestClient

from assettracer.core.dependencies import get_current_organization, get_current_user
from assettracer.dependencies.rate_limit import reset_rate_limits
from assettracer.schemas.auth import OrganizationContext, UserResponse


ORG_ID = "org-1"
OTHER_ORG_ID = "org-2"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse(value: Any) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class FakePersistence:
    """
    In-memory stand-in for PersistenceGateway with the same coroutine API.

    Rows are plain dicts; inserts get an id and created_at like Supabase
    defaults would give them.
    """

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self.deleted: List[tuple] = []

    # Test helpers

    def seed(self, table: str, **row) -> Dict[str, Any]:
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", _now())
        self.tables[table].append(row)
        return row

    def add_organization(self, organization_id: str = ORG_ID, tier: Optional[str] = "free", **fields) -> Dict[str, Any]:
        return self.seed(
            "organizations",
            id=organization_id,
            name=fields.pop("name", "Acme Rentals"),
            subscription_tier=tier,
            **fields,
        )

    def rows(self, table: str, organization_id: Optional[str] = None) -> List[Dict[str, Any]]:
        return [
            row for row in self.tables[table]
            if organization_id is None or row.get("organization_id") == organization_id
        ]

    def _matching(self, table, organization_id, filters=None, since=None, until=None):
        rows = self.rows(table, organization_id)
        for column, value in (filters or {}).items():
            rows = [row for row in rows if row.get(column) == value]
        if since:
            rows = [row for row in rows if _parse(row.get("created_at")) >= since]
        if until:
            rows = [row for row in rows if _parse(row.get("created_at")) <= until]
        return rows

    # Organizations and membership

    async def get_organization(self, organization_id):
        return next((dict(o) for o in self.tables["organizations"] if o["id"] == organization_id), None)

    async def get_subscription_tier(self, organization_id):
        org = await self.get_organization(organization_id)
        return org.get("subscription_tier") if org else None

    async def update_organization(self, organization_id, changes):
        for org in self.tables["organizations"]:
            if org["id"] == organization_id:
                org.update(changes)
                return dict(org)
        return None

    async def list_organizations(self, columns="*"):
        return [dict(o) for o in self.tables["organizations"]]

    async def find_unscoped(self, table, column, value):
        return next((dict(r) for r in self.tables[table] if r.get(column) == value), None)

    async def get_user_organization_id(self, user_id):
        user = next((u for u in self.tables["users"] if u["id"] == user_id), None)
        return user.get("organization_id") if user else None

    async def get_user(self, user_id):
        return next((dict(u) for u in self.tables["users"] if u["id"] == user_id), None)

    async def create_user(self, record):
        return dict(self.seed("users", **record))

    async def update_user(self, user_id, changes):
        for user in self.tables["users"]:
            if user["id"] == user_id:
                user.update(changes)
                return dict(user)
        return None

    async def list_pending_invitations(self, organization_id, now):
        rows = [
            row for row in self.rows("team_invitations", organization_id)
            if row.get("status") == "pending" and _parse(row.get("expires_at")) > now
        ]
        return [dict(r) for r in rows]

    # Generic org-scoped operations

    async def list(self, table, organization_id, columns="*", filters=None,
                   order_by="created_at", desc=True, since=None, until=None):
        rows = self._matching(table, organization_id, filters, since, until)
        rows = sorted(rows, key=lambda r: (r.get(order_by) is None, str(r.get(order_by) or "")), reverse=desc)
        return [dict(r) for r in rows]

    async def get(self, table, organization_id, record_id):
        return next((dict(r) for r in self.rows(table, organization_id) if r["id"] == record_id), None)

    async def get_many(self, table, organization_id, record_ids, columns="*"):
        return [dict(r) for r in self.rows(table, organization_id) if r["id"] in record_ids]

    async def list_in(self, table, organization_id, column, values, columns="*"):
        return [dict(r) for r in self.rows(table, organization_id) if r.get(column) in values]

    async def insert(self, table, organization_id, record):
        rows = await self.insert_many(table, organization_id, [record])
        return rows[0]

    async def insert_many(self, table, organization_id, records):
        return [dict(self.seed(table, **{**record, "organization_id": organization_id})) for record in records]

    async def update(self, table, organization_id, record_id, changes, filters=None):
        for row in self._matching(table, organization_id, filters):
            if row["id"] == record_id:
                row.update(changes)
                return dict(row)
        return None

    async def delete(self, table, organization_id, record_id):
        before = len(self.tables[table])
        self.tables[table] = [
            r for r in self.tables[table]
            if not (r.get("organization_id") == organization_id and r["id"] == record_id)
        ]
        if len(self.tables[table]) < before:
            self.deleted.append((table, record_id))
            return True
        return False

    async def count(self, table, organization_id, filters=None, since=None):
        return len(self._matching(table, organization_id, filters, since))


PERSISTENCE_TARGETS = (
    "assettracer.dependencies.tier_check.persistence",
    "assettracer.core.dependencies.persistence",
    "assettracer.api.v1.invoices.persistence",
    "assettracer.api.v1.reservations.persistence",
    "assettracer.api.v1.notifications.persistence",
)

SERVICE_TARGETS = (
    "assettracer.services.asset_service.asset_service",
    "assettracer.services.billing_service.billing_service",
    "assettracer.services.reservation_service.reservation_service",
    "assettracer.services.team_service.team_service",
    "assettracer.services.report_service.report_service",
    "assettracer.services.subscription_service.subscription_service",
)


@pytest.fixture(autouse=True)
def clear_rate_limits():
    reset_rate_limits()
    yield
    reset_rate_limits()


@pytest.fixture
def fake_db(monkeypatch):
    """FakePersistence wired into every module that talks to the database."""
    import importlib

    db = FakePersistence()
    for target in PERSISTENCE_TARGETS:
        monkeypatch.setattr(target, db)
    for target in SERVICE_TARGETS:
        module_name, attr = target.rsplit(".", 1)
        service = getattr(importlib.import_module(module_name), attr)
        monkeypatch.setattr(service, "db", db)
    return db


@pytest.fixture
def free_org(fake_db):
    return fake_db.add_organization(ORG_ID, "free")


@pytest.fixture
def pro_org(fake_db):
    return fake_db.add_organization(ORG_ID, "pro")


@pytest.fixture
def business_org(fake_db):
    return fake_db.add_organization(ORG_ID, "business")


@pytest.fixture
def current_user() -> UserResponse:
    return UserResponse(
        id="user-1",
        email="owner@acme.example.com",
        full_name="Olivia Owner",
        created_at="2026-01-01T00:00:00+00:00",
    )


@pytest.fixture
def app():
    from assettracer.main import app as application
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def client(app, fake_db, current_user):
    """TestClient signed in as current_user, acting for ORG_ID."""
    app.dependency_overrides[get_current_user] = lambda: current_user
    app.dependency_overrides[get_current_organization] = lambda: OrganizationContext(
        organization_id=ORG_ID, user=current_user
    )
    return TestClient(app)


@pytest.fixture
def anon_client(app):
    return TestClient(app)
