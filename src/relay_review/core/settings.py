"""Application settings and configuration.

This module defines all configuration options for the Relay Review service.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    This class defines all configuration options for the Relay Review service.
    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Relay Review", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Moderator authentication
    secret_key: str = Field(alias="SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")

    # Database configuration
    database_url: str = Field(default="sqlite:///./relay_review.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Relay and relay management (NIP-86) endpoints
    relay_url: str = Field(default="wss://relay.example.com", alias="RELAY_URL")
    management_url: str | None = Field(default=None, alias="MANAGEMENT_URL")
    management_path: str = Field(default="/management", alias="MANAGEMENT_PATH")
    relay_http_timeout_seconds: float = Field(default=10.0, alias="RELAY_HTTP_TIMEOUT_SECONDS")
    # Relay subscriptions stop collecting after this long if no EOSE arrives
    relay_query_timeout_seconds: float = Field(default=5.0, alias="RELAY_QUERY_TIMEOUT_SECONDS")

    # Media moderation service
    moderation_service_url: str = Field(
        default="https://moderation.example.com",
        alias="MODERATION_SERVICE_URL",
    )

    # Per-fetch budgets for report context aggregation
    thread_fetch_timeout_seconds: float = Field(default=10.0, alias="THREAD_FETCH_TIMEOUT_SECONDS")
    reporter_stats_timeout_seconds: float = Field(
        default=3.0,
        alias="REPORTER_STATS_TIMEOUT_SECONDS",
    )
    user_stats_timeout_seconds: float = Field(default=8.0, alias="USER_STATS_TIMEOUT_SECONDS")
    profile_fetch_timeout_seconds: float = Field(
        default=5.0,
        alias="PROFILE_FETCH_TIMEOUT_SECONDS",
    )

    # Query limits (recent-window sampling, not totals)
    recent_posts_limit: int = Field(default=10, alias="RECENT_POSTS_LIMIT")
    labels_limit: int = Field(default=50, alias="LABELS_LIMIT")
    reports_limit: int = Field(default=50, alias="REPORTS_LIMIT")
    reporter_reports_limit: int = Field(default=100, alias="REPORTER_REPORTS_LIMIT")
    thread_events_limit: int = Field(default=500, alias="THREAD_EVENTS_LIMIT")
    thread_ancestor_depth: int = Field(default=3, alias="THREAD_ANCESTOR_DEPTH")

    # Cache staleness windows
    moderation_status_ttl_seconds: float = Field(
        default=30.0,
        alias="MODERATION_STATUS_TTL_SECONDS",
    )
    media_status_ttl_seconds: float = Field(default=30.0, alias="MEDIA_STATUS_TTL_SECONDS")

    # Ledger policy: actions recorded by automated actors, never by humans
    automated_actions: list[str] = Field(
        default=["auto_hidden", "auto_hide_failed"],
        alias="AUTOMATED_ACTIONS",
    )

    # Automated auto-hide of reported content
    auto_hide_enabled: bool = Field(default=False, alias="AUTO_HIDE_ENABLED")
    auto_hide_categories: list[str] = Field(
        default=["sexual_minors", "csam", "NS-csam"],
        alias="AUTO_HIDE_CATEGORIES",
    )

    # Media enforcement actions that hide content from reviewers
    blocking_media_actions: list[str] = Field(
        default=["PERMANENT_BAN", "AGE_RESTRICTED"],
        alias="BLOCKING_MEDIA_ACTIONS",
    )

    # CORS configuration for the dashboard frontend
    cors_origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides.

        Returns:
            The active database URL (test database if in testing mode, otherwise production)
        """
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url

    @property
    def effective_management_url(self) -> str:
        """Return the NIP-86 management endpoint for the configured relay.

        An explicit ``MANAGEMENT_URL`` wins (useful for plain-HTTP local relays);
        otherwise the websocket relay URL is rewritten to HTTPS and suffixed with
        the management path.
        """
        if self.management_url:
            return self.management_url
        base = self.relay_url
        for scheme in ("wss://", "ws://"):
            if base.startswith(scheme):
                base = "https://" + base[len(scheme):]
                break
        return f"{base.rstrip('/')}{self.management_path}"


settings = Settings()  # type: ignore[call-arg]
