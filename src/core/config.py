"""Application configuration management using Pydantic Settings."""

from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Required settings will raise validation errors if not provided.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="studyhub-backend", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed CORS origins",
    )

    # Auth redirects
    auth_redirect_url: str = Field(
        default="http://localhost:5173",
        description="Redirect URL after email verification",
    )
    password_reset_redirect_url: str = Field(
        default="http://localhost:5173/reset-password",
        description="Redirect URL embedded in password reset emails",
    )

    # Supabase
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_secret_key: str = Field(..., description="Supabase secret key for backend operations")
    supabase_anon_key: str = Field(default="", description="Supabase publishable key used by the client package")
    supabase_jwt_secret: str = Field(default="", description="Legacy HS256 JWT secret; preferred when set")
    supabase_signing_key_jwk: str = Field(default="", description="Supabase signing key JWK (JSON string) for ES256 verification")
    jwt_audience: str = Field(default="authenticated", description="Expected JWT audience claim")

    # Auth webhook
    auth_webhook_secret: str = Field(default="", description="Shared secret expected in X-Webhook-Secret")

    # Profiles
    profiles_table: str = Field(default="user_profiles", description="Table holding one profile row per identity")
    avatar_url_template: str = Field(
        default="https://api.dicebear.com/7.x/avataaars/svg?seed={email}",
        description="Default avatar URL; {email} is substituted",
    )
    handle_prefix: str = Field(default="user", description="Prefix for synthesized usernames")
    handle_random_range: int = Field(default=10000, gt=0, description="Random range for a synthesized first candidate")
    handle_suffix_limit: int = Field(default=1000, gt=0, description="Max numeric suffix tried before escaping")
    handle_escape_range: int = Field(default=100000, gt=0, description="Random range for the escape and conflict fallback")

    @model_validator(mode="after")
    def check_avatar_template(self) -> "Settings":
        """Reject avatar templates that cannot be keyed by email."""
        if "{email}" not in self.avatar_url_template:
            raise ValueError("avatar_url_template must contain '{email}'")
        return self

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings: Application settings instance.

    Note:
        Settings are cached using lru_cache for performance.
        Call get_settings.cache_clear() to reload settings.
    """
    return Settings()
