"""
teamsync Configuration.

Manages environment variables for the synchronized data-store core.
Uses prefix TEAMSYNC_ to avoid conflicts with other services running
in the same environment.
"""

from functools import lru_cache
from typing import Annotated

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class SyncSettings(BaseSettings):
    """
    Settings loaded from environment variables (or a .env file).

    Sensitive values use SecretStr so they never show up in reprs or logs.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Remote document gateway
    store_base_url: Annotated[
        str,
        Field(
            default="http://127.0.0.1:8080",
            description="Base URL of the remote document gateway",
            validation_alias="TEAMSYNC_STORE_BASE_URL",
        ),
    ] = "http://127.0.0.1:8080"

    store_api_key: Annotated[
        SecretStr,
        Field(
            default=SecretStr(""),
            description="Bearer token for the remote document gateway",
            validation_alias="TEAMSYNC_STORE_API_KEY",
        ),
    ] = SecretStr("")

    http_timeout_seconds: Annotated[
        float,
        Field(
            default=30.0,
            description="HTTP timeout for document gateway requests",
            validation_alias="TEAMSYNC_HTTP_TIMEOUT_SECONDS",
        ),
    ] = 30.0

    # Subscriptions
    poll_interval_seconds: Annotated[
        float,
        Field(
            default=2.0,
            description="Polling period used by HTTP subscriptions",
            validation_alias="TEAMSYNC_POLL_INTERVAL_SECONDS",
        ),
    ] = 2.0

    resubscribe_delay_seconds: Annotated[
        float,
        Field(
            default=5.0,
            description="Delay before a mirror resubscribes after a transient failure",
            validation_alias="TEAMSYNC_RESUBSCRIBE_DELAY_SECONDS",
        ),
    ] = 5.0

    # Session
    signup_guard_seconds: Annotated[
        float,
        Field(
            default=3.0,
            description="How long profile bootstrap stays suppressed after a sign-up",
            validation_alias="TEAMSYNC_SIGNUP_GUARD_SECONDS",
        ),
    ] = 3.0

    # Notifications / audit
    notification_ttl_seconds: Annotated[
        float,
        Field(
            default=3.0,
            description="Lifetime of a user-facing notification",
            validation_alias="TEAMSYNC_NOTIFICATION_TTL_SECONDS",
        ),
    ] = 3.0

    audit_log_limit: Annotated[
        int,
        Field(
            default=500,
            description="Number of most recent audit entries kept in the mirror",
            validation_alias="TEAMSYNC_AUDIT_LOG_LIMIT",
        ),
    ] = 500

    # Server
    server_host: Annotated[
        str,
        Field(
            default="127.0.0.1",
            validation_alias="TEAMSYNC_SERVER_HOST",
        ),
    ] = "127.0.0.1"

    server_port: Annotated[
        int,
        Field(
            default=8000,
            validation_alias="TEAMSYNC_SERVER_PORT",
        ),
    ] = 8000

    # Logging
    log_level: Annotated[
        str,
        Field(
            default="INFO",
            validation_alias="TEAMSYNC_LOG_LEVEL",
        ),
    ] = "INFO"

    log_dir: Annotated[
        str,
        Field(
            default="logs",
            description="Directory for rotating log files",
            validation_alias="TEAMSYNC_LOG_DIR",
        ),
    ] = "logs"

    def is_store_configured(self) -> bool:
        """Check if the document gateway credentials are set."""
        return bool(self.store_base_url and self.store_api_key.get_secret_value())


@lru_cache
def get_settings() -> SyncSettings:
    """
    Get cached settings.

    Uses LRU cache to ensure settings are loaded only once.

    Returns:
        SyncSettings: Settings instance.
    """
    return SyncSettings()
