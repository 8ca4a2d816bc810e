"""
AssetTracer CLI Configuration

The CLI talks to the same Supabase project as the API, using the service role
key, so it needs the same core environment variables as the backend.
Configuration is loaded from environment variables or a .env file.
"""
import os
from pathlib import Path
from dataclasses import dataclass
from typing import Optional, List

from dotenv import load_dotenv

ENV_FILE = Path.home() / ".assettracer" / ".env"

if ENV_FILE.exists():
    load_dotenv(ENV_FILE)
else:
    load_dotenv()  # Try current directory


@dataclass
class SupabaseConfig:
    """Supabase configuration for database access."""
    url: str
    anon_key: str
    service_role_key: str
    jwt_secret: str

    @classmethod
    def from_env(cls) -> "SupabaseConfig":
        """Load Supabase config from environment variables."""
        return cls(
            url=os.environ.get("SUPABASE_URL", ""),
            anon_key=os.environ.get("SUPABASE_ANON_KEY", ""),
            service_role_key=os.environ.get("SUPABASE_SERVICE_ROLE_KEY", ""),
            jwt_secret=os.environ.get("JWT_SECRET_KEY", ""),
        )


@dataclass
class StripeConfig:
    """Stripe price IDs, needed only to cross-check paid organizations."""
    secret_key: str
    price_pro: str
    price_business: str

    @classmethod
    def from_env(cls) -> "StripeConfig":
        return cls(
            secret_key=os.environ.get("STRIPE_SECRET_KEY", ""),
            price_pro=os.environ.get("STRIPE_PRICE_PRO", ""),
            price_business=os.environ.get("STRIPE_PRICE_BUSINESS", ""),
        )


@dataclass
class Config:
    """Main CLI configuration."""
    supabase: SupabaseConfig
    stripe: StripeConfig

    @classmethod
    def load(cls) -> "Config":
        """Load all configuration from environment."""
        return cls(
            supabase=SupabaseConfig.from_env(),
            stripe=StripeConfig.from_env(),
        )

    def validate(self) -> List[str]:
        """
        Validate configuration and return list of missing fields.

        Stripe settings are optional and only reported by `config`.
        """
        missing = []
        if not self.supabase.url:
            missing.append("SUPABASE_URL")
        if not self.supabase.anon_key:
            missing.append("SUPABASE_ANON_KEY")
        if not self.supabase.service_role_key:
            missing.append("SUPABASE_SERVICE_ROLE_KEY")
        if not self.supabase.jwt_secret:
            missing.append("JWT_SECRET_KEY")
        return missing


# Singleton config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config
