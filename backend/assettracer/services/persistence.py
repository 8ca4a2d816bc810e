"""
Persistence gateway over Supabase tables.

Every read and write is scoped by organization_id. The service role client
bypasses row level security, so the filter here is the tenant boundary.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..core.supabase_client import supabase_client


logger = logging.getLogger(__name__)


class PersistenceGateway:
    """Organization-scoped CRUD and counting helpers."""

    def __init__(self, client=None):
        self._client = client

    @property
    def supabase(self):
        return self._client or supabase_client.service_client

    # ================================================================
    # Organizations and membership
    # ================================================================

    async def get_organization(self, organization_id: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table("organizations").select("*").eq(
            "id", organization_id
        ).limit(1).execute()
        return result.data[0] if result.data else None

    async def get_subscription_tier(self, organization_id: str) -> Optional[str]:
        """Raw stored tier value. Read on every call, never cached."""
        result = self.supabase.table("organizations").select(
            "subscription_tier"
        ).eq("id", organization_id).limit(1).execute()
        if result.data:
            return result.data[0].get("subscription_tier")
        return None

    async def update_organization(self, organization_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        result = self.supabase.table("organizations").update(changes).eq(
            "id", organization_id
        ).execute()
        return result.data[0] if result.data else None

    async def list_organizations(self, columns: str = "*") -> List[Dict[str, Any]]:
        """All organizations (operator and cron use only)."""
        result = self.supabase.table("organizations").select(columns).execute()
        return result.data or []

    async def find_unscoped(self, table: str, column: str, value: Any) -> Optional[Dict[str, Any]]:
        """
        Look up a row without an organization filter.

        Only for provider callbacks (payment webhooks) that identify a row by
        an opaque token; the caller takes the organization from the row.
        """
        result = self.supabase.table(table).select("*").eq(column, value).limit(1).execute()
        return result.data[0] if result.data else None

    async def get_user_organization_id(self, user_id: str) -> Optional[str]:
        """Organization from the users table. This row is the only source of tenancy."""
        user = await self.get_user(user_id)
        return user.get("organization_id") if user else None

    async def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table("users").select("*").eq("id", user_id).limit(1).execute()
        return result.data[0] if result.data else None

    async def create_user(self, record: Dict[str, Any]) -> Dict[str, Any]:
        result = self.supabase.table("users").insert(record).execute()
        if not result.data:
            raise RuntimeError(f"Insert into users returned no rows for {record.get('id')}")
        return result.data[0]

    async def update_user(self, user_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Update a user across organizations (joining a team moves the row)."""
        result = self.supabase.table("users").update(changes).eq("id", user_id).execute()
        return result.data[0] if result.data else None

    async def list_pending_invitations(self, organization_id: str, now: datetime) -> List[Dict[str, Any]]:
        """Pending invitations that have not yet expired at `now`."""
        result = self.supabase.table("team_invitations").select("*").eq(
            "organization_id", organization_id
        ).eq("status", "pending").gt("expires_at", now.isoformat()).order(
            "created_at", desc=True
        ).execute()
        return result.data or []

    # ================================================================
    # Generic org-scoped operations
    # ================================================================

    async def list(
        self,
        table: str,
        organization_id: str,
        columns: str = "*",
        filters: Optional[Dict[str, Any]] = None,
        order_by: str = "created_at",
        desc: bool = True,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        query = self.supabase.table(table).select(columns).eq("organization_id", organization_id)
        for column, value in (filters or {}).items():
            query = query.eq(column, value)
        if since:
            query = query.gte("created_at", since.isoformat())
        if until:
            query = query.lte("created_at", until.isoformat())
        result = query.order(order_by, desc=desc).execute()
        return result.data or []

    async def get(self, table: str, organization_id: str, record_id: str) -> Optional[Dict[str, Any]]:
        result = self.supabase.table(table).select("*").eq(
            "organization_id", organization_id
        ).eq("id", record_id).limit(1).execute()
        return result.data[0] if result.data else None

    async def get_many(self, table: str, organization_id: str, record_ids: List[str], columns: str = "*") -> List[Dict[str, Any]]:
        if not record_ids:
            return []
        result = self.supabase.table(table).select(columns).eq(
            "organization_id", organization_id
        ).in_("id", record_ids).execute()
        return result.data or []

    async def list_in(
        self,
        table: str,
        organization_id: str,
        column: str,
        values: List[Any],
        columns: str = "*",
    ) -> List[Dict[str, Any]]:
        """Rows whose `column` is one of `values`."""
        if not values:
            return []
        result = self.supabase.table(table).select(columns).eq(
            "organization_id", organization_id
        ).in_(column, values).execute()
        return result.data or []

    async def insert(self, table: str, organization_id: str, record: Dict[str, Any]) -> Dict[str, Any]:
        rows = await self.insert_many(table, organization_id, [record])
        return rows[0]

    async def insert_many(self, table: str, organization_id: str, records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        payload = [{**record, "organization_id": organization_id} for record in records]
        result = self.supabase.table(table).insert(payload).execute()
        if not result.data:
            raise RuntimeError(f"Insert into {table} returned no rows")
        return result.data

    async def update(
        self,
        table: str,
        organization_id: str,
        record_id: str,
        changes: Dict[str, Any],
        filters: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """Update one row. `filters` make the update conditional; None is returned when they do not match."""
        query = self.supabase.table(table).update(changes).eq(
            "organization_id", organization_id
        ).eq("id", record_id)
        for column, value in (filters or {}).items():
            query = query.eq(column, value)
        result = query.execute()
        return result.data[0] if result.data else None

    async def delete(self, table: str, organization_id: str, record_id: str) -> bool:
        result = self.supabase.table(table).delete().eq(
            "organization_id", organization_id
        ).eq("id", record_id).execute()
        return bool(result.data)

    async def count(
        self,
        table: str,
        organization_id: str,
        filters: Optional[Dict[str, Any]] = None,
        since: Optional[datetime] = None,
    ) -> int:
        """Exact row count, optionally limited to rows created at or after `since`."""
        query = self.supabase.table(table).select("id", count="exact").eq(
            "organization_id", organization_id
        )
        for column, value in (filters or {}).items():
            query = query.eq(column, value)
        if since:
            query = query.gte("created_at", since.isoformat())
        result = query.execute()
        if result.count is not None:
            return result.count
        return len(result.data or [])


# Global persistence gateway instance
persistence = PersistenceGateway()
