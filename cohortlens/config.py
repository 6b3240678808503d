"""
Configuration management using pydantic-settings.
All settings loaded from environment variables (12-factor app).
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Record source (remote paginated graph API)
    source_shop_domain: str = Field(
        default="example.myshopify.com", description="Store domain serving the admin API"
    )
    source_api_version: str = Field(default="2025-01", description="Admin API version")
    source_endpoint: Optional[str] = Field(
        default=None,
        description="Full GraphQL endpoint; overrides shop domain and API version",
    )
    source_access_token: str = Field(default="", description="Source API access token")
    source_timeout_seconds: float = Field(default=30.0, gt=0, description="HTTP timeout")
    source_retry_count: int = Field(
        default=3, ge=1, le=10, description="Attempts for 5xx responses"
    )

    # Engine
    page_size: int = Field(default=250, ge=1, le=250, description="Records per page")
    default_record_cap: int = Field(
        default=10000, ge=1, description="Safety cap on accumulated records"
    )
    collect_timeout_seconds: Optional[float] = Field(
        default=None, gt=0, description="Optional deadline around one pagination loop"
    )
    timezone: str = Field(default="UTC", description="IANA zone used for day boundaries")
    default_date_range: str = Field(default="30days", description="Range token when none given")

    # API
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    api_reload: bool = Field(default=True, description="Enable hot reload")
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="CORS allowed origins (comma-separated)",
    )

    # Logging
    log_level: str = Field(default="info", description="Log level")
    log_format: str = Field(default="json", description="Log format (json|console)")

    # Development
    dev_mode: bool = Field(default=True, description="Development mode")
    debug: bool = Field(default=False, description="Debug mode")
    testing: bool = Field(default=False, description="Testing mode")

    @property
    def graphql_endpoint(self) -> str:
        if self.source_endpoint:
            return self.source_endpoint
        return f"https://{self.source_shop_domain}/admin/api/{self.source_api_version}/graphql.json"

    @field_validator("cors_origins")
    @classmethod
    def parse_cors_origins(cls, v: str) -> List[str]:
        """Parse comma-separated CORS origins."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject zone names the interpreter cannot load."""
        from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to ensure singleton behavior.
    """
    return Settings()
