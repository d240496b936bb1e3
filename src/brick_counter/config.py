"""Brick Counter — configuration loaded from environment."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, loaded from .env or environment variables."""

    # ── Database ──────────────────────────────────────────
    database_url: str = "sqlite+aiosqlite:///./brick_counter.db"

    # ── One-time codes ────────────────────────────────────
    otp_secret: str = ""
    otp_interval_seconds: int = 10
    otp_mask_bits: int = 10
    otp_hash_name: str = "sha256"

    # ── Attempt guard ─────────────────────────────────────
    max_failed_attempts: int = 3
    guard_time_window_minutes: float = 3
    block_duration_minutes: float = 1

    # ── Counter ───────────────────────────────────────────
    counter_cache_ttl_seconds: float = 60
    max_bricks_per_request: int = 3
    response_timestamp: bool = False

    # ── Background maintenance ────────────────────────────
    maintenance_interval_seconds: float = 60
    counter_log_interval_seconds: float = 300

    # ── Client identity ───────────────────────────────────
    # Honour X-Forwarded-For only when a reverse proxy sets it.
    trust_forwarded_for: bool = False

    # ── Admin ─────────────────────────────────────────────
    admin_token: str = ""

    # ── App ───────────────────────────────────────────────
    app_name: str = "Brick Counter"
    debug: bool = False
    host: str = "127.0.0.1"
    port: int = 3000
    server_base_url: str = "http://localhost:3000"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton settings instance
settings = Settings()
