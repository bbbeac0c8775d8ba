from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MS_PER_SECOND = 1000
MS_PER_MINUTE = 60 * MS_PER_SECOND
MS_PER_DAY = 24 * 60 * MS_PER_MINUTE


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Debug mode - enables detailed error responses
    debug: bool = False

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # Facebook webhook settings
    facebook_app_secret: str = ""
    facebook_webhook_verify_token: str = ""
    max_webhook_body_bytes: int = 1024 * 1024  # 1MB

    # Manual sync trigger
    sync_api_token: str = ""

    # Public events API: 100 requests per minute per client
    rate_limit_get_events_max_requests: int = 100
    rate_limit_get_events_window_ms: int = MS_PER_MINUTE

    # Webhook deliveries: 1 delivery per page per second
    rate_limit_webhook_max_requests: int = 1
    rate_limit_webhook_window_ms: int = MS_PER_SECOND

    # Sync endpoint token bucket: 10 calls per day per token
    sync_bucket_capacity: int = 10
    sync_bucket_refill_ms: int = MS_PER_DAY  # time to refill from empty to full

    # Brute force protection for the OAuth callback
    brute_force_max_attempts: int = 5
    brute_force_lockout_ms: int = 15 * MS_PER_MINUTE
    brute_force_window_ms: int | None = 10 * MS_PER_MINUTE

    # Background sweep of stale limiter buckets (0 disables the sweep)
    rate_limit_cleanup_interval_seconds: float = 60.0

    # Use a monotonic clock for limiter arithmetic instead of wall-clock time
    rate_limit_monotonic_clock: bool = False

    @property
    def sync_bucket_refill_rate(self) -> float:
        """Tokens added per millisecond for the sync bucket."""
        return self.sync_bucket_capacity / self.sync_bucket_refill_ms

    @field_validator(
        "rate_limit_get_events_max_requests",
        "rate_limit_get_events_window_ms",
        "rate_limit_webhook_max_requests",
        "rate_limit_webhook_window_ms",
        "sync_bucket_capacity",
        "sync_bucket_refill_ms",
        "brute_force_max_attempts",
        "brute_force_lockout_ms",
    )
    @classmethod
    def validate_rate_limit_positive(cls, v: int) -> int:
        """Validate rate limit values are positive."""
        if v < 1:
            raise ValueError("Rate limit values must be at least 1")
        return v

    @field_validator("brute_force_window_ms")
    @classmethod
    def validate_window_positive(cls, v: int | None) -> int | None:
        """Validate the optional attempt window is positive when set."""
        if v is not None and v < 1:
            raise ValueError("brute_force_window_ms must be at least 1")
        return v

    @field_validator("rate_limit_cleanup_interval_seconds")
    @classmethod
    def validate_cleanup_interval(cls, v: float) -> float:
        """Validate the cleanup interval is not negative."""
        if v < 0:
            raise ValueError("rate_limit_cleanup_interval_seconds must not be negative")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("text", "structured", "json"):
            raise ValueError("log_format must be one of: text, structured, json")
        return v

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
