import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # Supabase (identity + admin metadata)
    SUPABASE_URL: Optional[str] = None
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None
    SUPABASE_JWT_SECRET: Optional[str] = None  # HS256 project secret
    SUPABASE_JWKS_URL: Optional[str] = None  # defaults to <SUPABASE_URL>/auth/v1/.well-known/jwks.json
    SUPABASE_AUDIENCE: Optional[str] = "authenticated"
    SUPABASE_TIMEOUT_SECONDS: float = 5.0

    # X-User-Id / X-User-Email header auth (tests, local dev only)
    ALLOW_HEADER_AUTH: bool = False

    # Admin access
    ADMIN_EMAILS: Optional[str] = None  # comma-separated
    ADMIN_EMAIL_PATTERN: Optional[str] = None  # regex, e.g. .*@jobbridge-admin\.com$
    ADMIN_PROBE_TIMEOUT_SECONDS: float = 2.0
    ADMIN_PROBE_GRACE_SECONDS: float = 0.25

    # CORS
    CORS_ORIGINS: str = "http://localhost:5173"  # comma-separated

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
settings = Settings()


def split_csv(value: Optional[str]) -> list[str]:
    """Split a comma-separated setting, dropping blanks."""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("jobbridge")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "DATABASE_URL",
        "SUPABASE_URL",
        "SUPABASE_SERVICE_ROLE_KEY",
    ]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    if not getattr(cfg, "SUPABASE_JWT_SECRET", None) and not getattr(cfg, "SUPABASE_URL", None) and not getattr(cfg, "ALLOW_HEADER_AUTH", False):
        message = "No identity source configured: set SUPABASE_JWT_SECRET or SUPABASE_URL"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
