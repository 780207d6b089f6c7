"""
FeedHarvest Configuration System
================================

Configuration management with environment variables and Pydantic models.
Environment variables (prefix ``FEEDHARVEST_``, nested sections separated by
``__``) override Field defaults.
"""

import os
from pathlib import Path
from typing import List, Optional
from enum import Enum

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from ..utils.exceptions import ConfigurationError, ErrorCode, ValidationError
from ..utils.validators import URLValidator


class LogLevel(str, Enum):
    """Available log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class CMSSettings(BaseModel):
    """Default CMS connection, used when no tenants are configured."""
    base_url: Optional[str] = Field(default=None, description="CMS base URL, e.g. https://cms.example.com")
    access_token: Optional[str] = Field(default=None, description="Bearer token for the crawler API")


class TenantSettings(BaseModel):
    """One CMS tenant the crawler serves."""
    id: str = Field(..., min_length=1, description="Tenant identifier")
    name: Optional[str] = Field(default=None, description="Display name")
    cms_base_url: str = Field(..., description="Tenant CMS base URL")
    access_token: str = Field(..., min_length=1, description="Tenant bearer token")
    enabled: bool = Field(default=True, description="Whether the tenant is crawled")

    @field_validator("cms_base_url")
    @classmethod
    def validate_base_url(cls, v):
        try:
            return URLValidator.normalize_base_url(v, field_name="cms_base_url")
        except ValidationError as e:
            raise ValueError(e.user_message)

    @property
    def display_name(self) -> str:
        return self.name or self.id


class CrawlerSettings(BaseModel):
    """Crawl orchestration settings."""
    max_concurrent_crawls: int = Field(default=3, ge=1, le=50, description="Feeds crawled concurrently")
    feed_cache_ttl_minutes: float = Field(default=5, gt=0, le=1440, description="Feed definition cache TTL")
    request_timeout: int = Field(default=30, ge=1, le=300, description="HTTP request timeout in seconds")
    existing_posts_limit: int = Field(default=100, ge=1, le=1000, description="Existing posts fetched for deduplication")
    crawl_interval_seconds: int = Field(default=300, ge=10, description="Seconds between scheduled crawl ticks")
    queue_poll_interval_seconds: int = Field(default=10, ge=1, description="Seconds between queue polls")
    user_agent: str = Field(default="FeedHarvest/1.0", min_length=1, description="User-Agent for outbound requests")
    proxy_url: Optional[str] = Field(default=None, description="HTTP proxy URL, credentials may be embedded")
    extract_full_content: bool = Field(default=True, description="Fetch article pages for full content")


class AISettings(BaseModel):
    """Primary-reporting classifier settings."""
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    enable_content_analysis: bool = Field(default=True, description="Classify posts as primary reporting")
    model: str = Field(default="gpt-4o-mini", description="OpenAI chat model")
    temperature: float = Field(default=0.3, ge=0.0, le=2.0, description="Sampling temperature")
    max_tokens: int = Field(default=200, ge=50, le=2000, description="Maximum tokens per response")
    max_content_chars: int = Field(default=1500, ge=100, le=20000, description="Content characters sent to the model")

    @property
    def classifier_enabled(self) -> bool:
        return self.enable_content_analysis and bool(self.openai_api_key)


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: LogLevel = Field(default=LogLevel.INFO, description="Global log level")
    file_path: Optional[str] = Field(default="logs/feedharvest.log", description="Log file path")
    max_file_size_mb: int = Field(default=10, ge=1, le=100, description="Max log file size in MB")
    backup_count: int = Field(default=5, ge=1, le=20, description="Number of log backup files")
    structured_logging: bool = Field(default=False, description="Use structured JSON logging")
    console_logging: bool = Field(default=True, description="Enable console logging")


class FeedHarvestSettings(BaseSettings):
    """Main application settings."""

    cms: CMSSettings = Field(default_factory=CMSSettings)
    tenants: List[TenantSettings] = Field(default_factory=list)
    crawler: CrawlerSettings = Field(default_factory=CrawlerSettings)
    ai: AISettings = Field(default_factory=AISettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    app_name: str = Field(default="FeedHarvest", description="Application name")
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "env_nested_delimiter": "__",
        "env_prefix": "FEEDHARVEST_",
    }

    def get_tenants(self) -> List[TenantSettings]:
        """Enabled tenants, falling back to a single tenant built from ``cms``."""
        if self.tenants:
            return [t for t in self.tenants if t.enabled]

        if self.cms.base_url and self.cms.access_token:
            return [
                TenantSettings(
                    id="default",
                    cms_base_url=self.cms.base_url,
                    access_token=self.cms.access_token,
                )
            ]
        return []

    def get_tenant(self, tenant_id: str) -> TenantSettings:
        for tenant in self.get_tenants():
            if tenant.id == tenant_id:
                return tenant
        raise ConfigurationError(
            f"Unknown or disabled tenant: {tenant_id}",
            config_key="tenants",
            error_code=ErrorCode.CONFIG_MISSING,
        )

    def validate_configuration(self) -> None:
        """Validate complete configuration."""
        errors = []

        if not self.tenants:
            if not self.cms.base_url:
                errors.append("FEEDHARVEST_CMS__BASE_URL is required")
            else:
                try:
                    URLValidator.normalize_base_url(self.cms.base_url)
                except ValidationError as e:
                    errors.append(f"Invalid CMS base URL: {e.user_message}")
            if not self.cms.access_token:
                errors.append("FEEDHARVEST_CMS__ACCESS_TOKEN is required")
        elif not any(t.enabled for t in self.tenants):
            errors.append("All configured tenants are disabled")

        if self.crawler.proxy_url:
            try:
                URLValidator.validate_http_url(self.crawler.proxy_url, field_name="proxy_url")
            except ValidationError as e:
                errors.append(f"Invalid proxy URL: {e.user_message}")

        if self.logging.file_path:
            try:
                log_path = Path(self.logging.file_path)
                log_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                errors.append(f"Invalid log file path: {e}")

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                error_code=ErrorCode.CONFIG_MISSING,
            )

    def is_production_mode(self) -> bool:
        """Check if running in production mode."""
        return not self.debug and os.getenv("ENV", "development").lower() == "production"

    def get_effective_log_level(self) -> str:
        """Get effective log level considering debug mode."""
        if self.debug:
            return "DEBUG"
        return self.logging.level.value


def load_settings() -> FeedHarvestSettings:
    """Load settings from environment variables and defaults.

    Returns:
        Loaded and validated settings

    Raises:
        ConfigurationError: If configuration is invalid
    """
    from dotenv import load_dotenv
    load_dotenv()

    try:
        settings = FeedHarvestSettings()
        settings.validate_configuration()
        return settings

    except Exception as e:
        if isinstance(e, ConfigurationError):
            raise
        raise ConfigurationError(
            f"Failed to initialize settings: {e}",
            error_code=ErrorCode.CONFIG_INVALID,
        )


_settings: Optional[FeedHarvestSettings] = None


def get_settings(reload: bool = False) -> FeedHarvestSettings:
    """Get global settings instance (singleton pattern).

    Args:
        reload: Force reload of settings

    Returns:
        Global settings instance
    """
    global _settings

    if _settings is None or reload:
        _settings = load_settings()

    return _settings
