"""
Core configuration settings for the application.
"""
import json
from typing import List, Optional, Dict, Any, Union
from pydantic import Field, ConfigDict, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Supabase Configuration
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_anon_key: str = Field(..., description="Supabase anonymous key")
    supabase_service_role_key: str = Field(..., description="Supabase service role key")
    supabase_timeout_seconds: int = Field(default=10, description="PostgREST request timeout")

    # JWT Configuration
    jwt_secret_key: str = Field(..., description="Supabase JWT secret used to verify session tokens")
    jwt_algorithm: str = Field(default="HS256", description="JWT algorithm")
    access_token_expire_minutes: int = Field(default=90, description="Session cookie lifetime in minutes")

    # Cookie Security Configuration
    cookie_secure: bool = Field(default=False, description="Use secure cookies (HTTPS only) - auto-enabled in production")
    cookie_samesite: str = Field(default="lax", description="SameSite cookie policy")
    cookie_httponly: bool = Field(default=True, description="HttpOnly cookies for XSS protection")
    cookie_domain: Optional[str] = Field(default=None, description="Cookie domain for cross-subdomain auth")
    session_cookie_name: str = Field(default="assettracer_session", description="Session cookie name")

    # FastAPI Configuration
    api_v1_str: str = Field(default="/api/v1", description="API v1 prefix")
    project_name: str = Field(default="assettracer", description="Project name")
    environment: str = Field(default="dev", description="Environment (dev, staging, production)")
    debug: bool = Field(default=False, description="Debug mode - set True only for local development")
    app_url: str = Field(default="http://localhost:3000", description="Public frontend URL used in emails and invite links")

    # CORS Configuration
    allowed_origins: List[str] = Field(
        default=[
            "https://www.asset-tracer.com",
            "https://asset-tracer.com",
        ],
        description="Allowed CORS origins (production)"
    )

    # Additional CORS origin patterns (checked dynamically)
    cors_origin_patterns: List[str] = Field(
        default=[
            r"https://.*\.vercel\.app$",  # Preview deployments
            r"https://.*\.asset-tracer\.com$",
        ],
        description="Regex patterns for allowed CORS origins"
    )

    @field_validator('allowed_origins', 'cors_origin_patterns', mode='before')
    @classmethod
    def parse_string_list(cls, v: Union[str, List[str]]) -> List[str]:
        """Parse list settings from string (JSON) or list."""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except (json.JSONDecodeError, ValueError):
                # If not JSON, split by comma as fallback
                return [item.strip() for item in v.split(',') if item.strip()]
        return v

    @property
    def is_production_environment(self) -> bool:
        """Check if running in production environment."""
        return self.environment in ["production", "prod"]

    @property
    def effective_cors_origins(self) -> List[str]:
        """
        Get CORS origins based on environment.

        - Production: Only configured origins
        - Development: Adds localhost origins for local testing
        """
        origins = list(self.allowed_origins)

        if not self.is_production_environment and self.debug:
            for origin in ["http://localhost:3000", "http://127.0.0.1:3000"]:
                if origin not in origins:
                    origins.append(origin)

        return origins

    # Redis Configuration (user identity cache only, tiers are never cached)
    redis_host: str = Field(default="localhost", description="Redis server host")
    redis_port: int = Field(default=6379, description="Redis server port")
    redis_auth_token: Optional[str] = Field(default=None, description="Redis AUTH token")
    redis_ssl: bool = Field(default=False, description="Use SSL for Redis connection")
    user_cache_ttl_seconds: int = Field(default=300, description="TTL for cached user identities")

    @property
    def redis_connection_kwargs(self) -> Dict[str, Any]:
        """Get Redis connection parameters based on environment."""
        base_config = {
            "host": self.redis_host,
            "port": self.redis_port,
            "decode_responses": True,
            "socket_timeout": 5,
            "socket_connect_timeout": 5,
        }

        if self.redis_auth_token:
            base_config["password"] = self.redis_auth_token

        if self.redis_ssl:
            base_config["ssl"] = True
            base_config["ssl_cert_reqs"] = None

        return base_config

    # Email (SendGrid)
    sendgrid_api_key: Optional[str] = Field(default=None, description="SendGrid API key for transactional email")
    email_from: str = Field(default="notifications@asset-tracer.com", description="Sender address")
    email_from_name: str = Field(default="AssetTracer", description="Sender display name")

    # Stripe (subscription billing)
    stripe_secret_key: Optional[str] = Field(default=None, description="Stripe secret API key")
    stripe_webhook_secret: Optional[str] = Field(default=None, description="Stripe webhook signing secret")
    stripe_price_pro: Optional[str] = Field(default=None, description="Stripe price ID for the pro plan")
    stripe_price_business: Optional[str] = Field(default=None, description="Stripe price ID for the business plan")

    # DPO (invoice payments)
    dpo_company_token: Optional[str] = Field(default=None, description="DPO company token")
    dpo_service_type: str = Field(default="3854", description="DPO service type")
    dpo_api_url: str = Field(default="https://secure.3gdirectpay.com", description="DPO API base URL")
    dpo_webhook_secret: Optional[str] = Field(default=None, description="Shared secret for DPO webhook HMAC")
    dpo_test_mode: bool = Field(default=False, description="Use DPO test mode")

    # Scheduled jobs
    cron_secret: Optional[str] = Field(default=None, description="Bearer secret required by cron endpoints")

    # Rate Limiting Configuration (requests, window seconds) per endpoint type
    rate_limit_auth: int = Field(default=5, description="Auth requests per window")
    rate_limit_auth_window: int = Field(default=900, description="Auth window in seconds")
    rate_limit_public: str = Field(default="100/minute", description="slowapi limit for public endpoints")
    rate_limit_api: int = Field(default=200, description="API requests per minute")
    rate_limit_webhook: int = Field(default=1000, description="Webhook requests per minute")

    model_config = ConfigDict(
        env_file=".env.dev",
        case_sensitive=False,
        extra="ignore"
    )

    def missing_integrations(self) -> List[str]:
        """Names of optional integrations that are not configured."""
        missing = []
        if not self.sendgrid_api_key:
            missing.append("SENDGRID_API_KEY (email delivery disabled)")
        if not self.stripe_secret_key or not self.stripe_webhook_secret:
            missing.append("STRIPE_SECRET_KEY / STRIPE_WEBHOOK_SECRET (subscription checkout disabled)")
        if not self.dpo_company_token:
            missing.append("DPO_COMPANY_TOKEN (invoice payment links disabled)")
        if not self.cron_secret:
            missing.append("CRON_SECRET (scheduled notifications disabled)")
        return missing


# Global settings instance
settings = Settings()
