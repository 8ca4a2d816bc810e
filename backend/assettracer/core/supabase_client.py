"""
Supabase client for the API and the operator CLI.

Only the service role client is used: the backend is the sole writer and
applies the organization filter itself (see services.persistence).
"""
from typing import Optional

from supabase import Client, ClientOptions, create_client

from .config import settings


class SupabaseClient:
    """Lazily created service role client."""

    def __init__(self):
        self._service_client: Optional[Client] = None

    @property
    def service_client(self) -> Client:
        """
        Row level security is bypassed, so every query through this client
        must filter by organization_id itself.
        """
        if self._service_client is None:
            self._service_client = create_client(
                settings.supabase_url,
                settings.supabase_service_role_key,
                options=ClientOptions(
                    postgrest_client_timeout=settings.supabase_timeout_seconds,
                    auto_refresh_token=False,
                    persist_session=False,
                ),
            )
        return self._service_client


# Global Supabase client instance
supabase_client = SupabaseClient()
