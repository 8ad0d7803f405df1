import os
from dataclasses import dataclass, field
from typing import Optional

# Optional: load a local .env file if present.
try:
    from dotenv import load_dotenv

    load_dotenv()
except Exception:
    # If python-dotenv isn't installed or .env isn't present, that's fine.
    pass


def _env_bool(name: str, default: Optional[bool] = None) -> Optional[bool]:
    """Parse a boolean environment variable.

    Returns:
      - True/False if the env var is set to a recognizable value
      - default if unset or unrecognized

    Accepted truthy: 1, true, yes, y, on
    Accepted falsy:  0, false, no, n, off
    """

    raw = os.environ.get(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in ("1", "true", "yes", "y", "on"):
        return True
    if v in ("0", "false", "no", "n", "off"):
        return False
    return default


def _env(name: str, default: str | None = None):
    # Read at instantiation time, not import time, so load_config() always reflects the environment.
    return field(default_factory=lambda: os.environ.get(name, default))


def _env_int(name: str, default: int):
    return field(default_factory=lambda: int(os.environ.get(name, str(default))))


def _env_flag(name: str, default: bool):
    return field(default_factory=lambda: _env_bool(name, default) is True)


def _default_dsn() -> str:
    return (
        os.environ.get("VELORA_DATABASE_URL")
        or os.environ.get("DATABASE_URL")
        or os.environ.get("VELORA_DB_PATH", "./data/velora.sqlite")
    )


@dataclass(frozen=True)
class Config:
    """Runtime configuration.

    IMPORTANT: Provide secrets via environment variables or a .env file.
    Do not hardcode secrets in source code.
    """

    # -----------------
    # Core
    # -----------------
    # Preferred: set VELORA_DATABASE_URL (or DATABASE_URL) to use Postgres.
    # Fallback: VELORA_DB_PATH for SQLite.
    DB_DSN: str = field(default_factory=_default_dsn)

    # Where the SPA lives. OAuth redirects land here with ?token=...
    PUBLIC_APP_URL: str = _env("PUBLIC_APP_URL", "http://localhost:5000")

    # If you develop with Vite on :5173 and API on :8000, allow that origin.
    CORS_ALLOW_ORIGINS: str = _env(
        "CORS_ALLOW_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173,http://localhost:5000",
    )

    # -----------------
    # Auth (JWT)
    # -----------------
    # NOTE: In dev, this defaults to a fixed string so you can get started.
    # In production, you MUST set AUTH_JWT_SECRET to a strong random value.
    AUTH_JWT_SECRET: str = _env("AUTH_JWT_SECRET", "dev_change_me")
    # 0 = tokens carry no exp claim (they stay valid until the user is deleted).
    AUTH_TOKEN_EXPIRE_MINUTES: int = _env_int("AUTH_TOKEN_EXPIRE_MINUTES", 0)

    # The account with this email is created/registered with role=admin.
    ADMIN_EMAIL: str = _env("ADMIN_EMAIL", "admin@velora.app")
    # If set, an admin account with ADMIN_EMAIL is bootstrapped on startup when missing.
    ADMIN_BOOTSTRAP_PASSWORD: str | None = _env("ADMIN_BOOTSTRAP_PASSWORD")

    # -----------------
    # OTP (email login codes)
    # -----------------
    OTP_TTL_MINUTES: int = _env_int("OTP_TTL_MINUTES", 10)
    OTP_MAX_ATTEMPTS: int = _env_int("OTP_MAX_ATTEMPTS", 3)

    # -----------------
    # Mail (Brevo transactional email)
    # -----------------
    BREVO_API_KEY: str | None = _env("BREVO_API_KEY")
    MAIL_SENDER_EMAIL: str = _env("MAIL_SENDER_EMAIL", "no-reply@velora.app")
    MAIL_SENDER_NAME: str = _env("MAIL_SENDER_NAME", "Velora")

    # -----------------
    # Google OAuth (optional)
    # -----------------
    # Both id and secret must be set, otherwise the /api/auth/google routes are not mounted.
    GOOGLE_CLIENT_ID: str | None = _env("GOOGLE_CLIENT_ID")
    GOOGLE_CLIENT_SECRET: str | None = _env("GOOGLE_CLIENT_SECRET")
    GOOGLE_DISCOVERY_URL: str = _env(
        "GOOGLE_DISCOVERY_URL",
        "https://accounts.google.com/.well-known/openid-configuration",
    )
    # When unset, the callback URL is built from the incoming request (/api/auth/google/callback).
    GOOGLE_REDIRECT_URL: str | None = _env("GOOGLE_REDIRECT_URL")

    # -----------------
    # Catalog
    # -----------------
    # Tools created from approved submissions stay unapproved unless this is on.
    AUTO_PUBLISH_APPROVED_SUBMISSIONS: bool = _env_flag("AUTO_PUBLISH_APPROVED_SUBMISSIONS", False)
    TRENDING_LIMIT: int = _env_int("TRENDING_LIMIT", 6)

    @property
    def google_oauth_enabled(self) -> bool:
        return bool((self.GOOGLE_CLIENT_ID or "").strip() and (self.GOOGLE_CLIENT_SECRET or "").strip())


def load_config() -> Config:
    return Config()
