"""
Healthsync Configuration
========================
All environment variables in one place. Pydantic Settings validates
types at startup so misconfigurations fail fast, not halfway through a sync.

The Settings object is built once in ``create_app()`` and handed to the
orchestrator explicitly. Nothing below caches it globally.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Loaded from environment variables or a .env file."""

    # --- Supabase ---
    supabase_url: str = ""
    supabase_service_key: str = ""  # service_role key for backend writes

    # --- Tidepool (CGM, insulin, activity) ---
    tidepool_email: str = ""
    tidepool_password: str = ""

    # --- Strava (heart rate for running sessions) ---
    strava_client_id: str = ""
    strava_client_secret: str = ""

    # --- GitHub ---
    github_token: str = ""
    github_username: str = ""

    # --- Anthropic Admin API (Claude Code usage report) ---
    anthropic_admin_key: str = ""

    # --- Apple Health ingest ---
    # Shared secret the iOS shortcut sends in x-sync-secret
    apple_health_sync_secret: str = ""

    # --- Sync tuning ---
    # Bound parameters allowed per statement by the storage engine
    storage_param_limit: int = 100
    # Courtesy delay between page requests to rate-limited APIs
    page_delay_seconds: float = 0.5
    http_timeout_seconds: float = 30.0
    # Upper bound for any single source sync inside one invocation
    sync_timeout_seconds: float = 120.0
    # 0 disables the in-process schedule (an external cron can POST instead)
    sync_interval_minutes: int = 0

    # Default windows when the trigger does not pass lookback_days
    glucose_window_hours: int = 2
    insulin_window_hours: int = 6
    activity_window_days: int = 2
    strava_lookback_days: int = 7
    claude_lookback_days: int = 30

    # --- App settings ---
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:4321"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


def get_settings() -> Settings:
    return Settings()
