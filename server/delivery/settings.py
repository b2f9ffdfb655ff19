"""
Delivery Core Settings

Configuration management using pydantic settings.
Loads from environment variables with DELIVERY_ prefix.
"""

import os
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import computed_field
from typing import List, Optional


class Settings(BaseSettings):
    """
    Server configuration settings.

    Environment variables:
    - DELIVERY_API_KEYS_RAW: Comma-separated list of service API keys (grant ADMIN)
    - DELIVERY_ALLOWED_ORIGINS_RAW: Comma-separated list of allowed CORS origins
    - DELIVERY_SLACK_TOKEN: Slack bot token used for chat.postMessage
    - DELIVERY_SLACK_USER_CHANNEL: Channel receiving customer-facing order updates
    - DELIVERY_SLACK_OWNER_CHANNEL: Channel receiving store-owner updates
    - DELIVERY_SLACK_BROADCAST_CHANNEL: Channel for announcements to all users
    - DELIVERY_SLACK_TIMEOUT_SECONDS: Timeout for one outbound Slack call (default: 3)
    - DELIVERY_NOTIFY_MAX_RETRIES: Extra delivery attempts after a failure (default: 0)
    - DELIVERY_SEARCH_RATE_LIMIT: Search events per minute per caller (default: 120)
    - DELIVERY_DEBUG: Enable debug mode (default: false)
    - DATABASE_URL: PostgreSQL connection string (in-memory store when unset)
    """

    model_config = SettingsConfigDict(
        env_prefix="DELIVERY_",
        env_file=".env",
        extra="ignore",
    )

    # Raw string fields for comma-separated values
    api_keys_raw: str = ""
    allowed_origins_raw: str = ""

    # Debug mode
    debug: bool = False

    # Slack messaging sink
    slack_token: Optional[str] = None
    slack_user_channel: Optional[str] = None
    slack_owner_channel: Optional[str] = None
    slack_broadcast_channel: Optional[str] = None
    slack_api_url: str = "https://slack.com/api/chat.postMessage"
    slack_timeout_seconds: float = 3.0

    # Delivery is at-most-once unless retries are turned on
    notify_max_retries: int = 0
    notify_retry_backoff_seconds: float = 0.5

    # Search events per minute per API key / client IP
    search_rate_limit: int = 120

    # Popular search listing
    popular_default_limit: int = 10
    popular_max_limit: int = 100

    # Compare-and-swap attempts for a status change before giving up
    transition_max_attempts: int = 3

    @computed_field
    @property
    def api_keys(self) -> List[str]:
        """Parse comma-separated API keys into list."""
        if not self.api_keys_raw:
            return []
        return [v.strip() for v in self.api_keys_raw.split(",") if v.strip()]

    @computed_field
    @property
    def allowed_origins(self) -> List[str]:
        """Parse comma-separated allowed origins into list."""
        if not self.allowed_origins_raw:
            return []
        return [v.strip() for v in self.allowed_origins_raw.split(",") if v.strip()]


# Database URL (read separately since it doesn't have the DELIVERY_ prefix)
DATABASE_URL = os.environ.get("DATABASE_URL", "")

# Global settings instance
settings = Settings()
