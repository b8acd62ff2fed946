"""Environment variable resolution utilities.

Canonical env names, typed parsing and fail-fast validation for production.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}
_VALID_SAMESITE = {"strict", "lax", "none"}


def get_collabora_env() -> str:
    """Get environment name.

    Returns:
        Environment name (lowercase), "local" when COLLABORA_ENV is unset
    """
    return os.getenv("COLLABORA_ENV", "local").strip().lower() or "local"


def is_production_env() -> bool:
    """Return True when running in prod/production."""
    return get_collabora_env() in {"prod", "production"}


def is_debug_enabled() -> bool:
    """Return True when COLLABORA_DEBUG is enabled.

    Debug mode is never honoured in production.
    """
    if is_production_env():
        return False
    return os.getenv("COLLABORA_DEBUG", "0").strip().lower() in _TRUE_VALUES


def _get_int(name: str, default: int, minimum: int = 0) -> int:
    """Read an integer env var, falling back to default on bad input."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(
            "Invalid integer env var, using default",
            extra={"event": "config.invalid_int", "env_var": name, "default": default},
        )
        return default
    if value < minimum:
        return default
    return value


def get_database_url() -> str:
    """Get database URL from environment.

    Required: DATABASE_URL in production. Elsewhere falls back to a local
    SQLite file.

    Raises:
        RuntimeError: If DATABASE_URL is missing in production
    """
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    if is_production_env():
        raise RuntimeError(
            "DATABASE_URL environment variable is required in production "
            "(COLLABORA_ENV=prod/production). Check deployment configuration."
        )
    return "sqlite:///./collabora.db"


def get_session_backend() -> str:
    """Get session store backend name ("memory" or "redis").

    Production defaults to redis; local/dev defaults to memory.

    Raises:
        ValueError: If SESSION_BACKEND has an unknown value
        RuntimeError: If the memory backend is requested in production
    """
    default = "redis" if is_production_env() else "memory"
    backend = os.getenv("SESSION_BACKEND", default).strip().lower() or default
    if backend not in {"memory", "redis"}:
        raise ValueError(f"SESSION_BACKEND must be 'memory' or 'redis', got '{backend}'")
    if backend == "memory" and is_production_env():
        raise RuntimeError(
            "SESSION_BACKEND=memory is not allowed in production: sessions would not "
            "survive restarts nor be shared between workers."
        )
    return backend


@dataclass(frozen=True)
class RedisSettings:
    """Connection settings for the Redis session backend."""

    url: str = "redis://localhost:6379/0"
    password: Optional[str] = None
    key_prefix: str = "collabora:session:"
    socket_timeout: int = 5


def get_redis_settings() -> RedisSettings:
    """Read Redis settings.

    SESSION_REDIS_URL wins over REDIS_URL so sessions can live in their own
    database. REDIS_PASSWORD is only applied when the URL carries none.

    Raises:
        RuntimeError: If no Redis URL is configured in production
    """
    url = os.getenv("SESSION_REDIS_URL") or os.getenv("REDIS_URL")
    if not url:
        if is_production_env():
            raise RuntimeError(
                "REDIS_URL (or SESSION_REDIS_URL) is required in production "
                "when SESSION_BACKEND=redis."
            )
        url = RedisSettings.url
    return RedisSettings(
        url=url,
        password=os.getenv("REDIS_PASSWORD") or None,
        key_prefix=os.getenv("SESSION_REDIS_PREFIX", RedisSettings.key_prefix).strip() or RedisSettings.key_prefix,
        socket_timeout=_get_int("REDIS_SOCKET_TIMEOUT", RedisSettings.socket_timeout, minimum=1),
    )


def get_cors_origins() -> list[str]:
    """Get CORS allowlist. Credentials mode cannot use wildcard origins."""
    cors_origins_env = os.getenv("CORS_ALLOWED_ORIGINS", "")
    if cors_origins_env:
        return [origin.strip() for origin in cors_origins_env.split(",") if origin.strip()]
    return [
        "http://localhost:3000",
        "http://localhost:8000",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:8000",
    ]


def auto_create_tables() -> bool:
    """Return True when tables should be created at startup."""
    default = "0" if is_production_env() else "1"
    return os.getenv("COLLABORA_AUTO_CREATE_TABLES", default).strip().lower() in _TRUE_VALUES


def get_bootstrap_admin() -> Optional[tuple[str, str]]:
    """Return (email, password) of the bootstrap admin, if configured."""
    email = os.getenv("BOOTSTRAP_ADMIN_EMAIL", "").strip()
    password = os.getenv("BOOTSTRAP_ADMIN_PASSWORD", "")
    if email and password:
        return email, password
    return None


def get_bcrypt_rounds() -> int:
    """Get bcrypt cost factor (4..31, default 12)."""
    rounds = _get_int("COLLABORA_BCRYPT_ROUNDS", 12, minimum=4)
    return min(rounds, 31)


@dataclass(frozen=True)
class SessionSettings:
    """Session cookie and lifetime configuration."""

    cookie_name: str = "COLLABORA_SESSID"
    lifetime: int = 86400
    idle_timeout: int = 7200
    regenerate_interval: int = 3600
    cookie_path: str = "/"
    secure: Optional[bool] = None  # None = secure only for HTTPS requests
    samesite: str = "strict"
    csrf_token_ttl: int = 3600


@dataclass(frozen=True)
class LoginPolicy:
    """Brute-force protection settings."""

    max_attempts: int = 5
    lockout_duration: int = 900


def get_session_settings() -> SessionSettings:
    """Build SessionSettings from environment variables."""
    secure_raw = os.getenv("SESSION_SECURE", "auto").strip().lower()
    if secure_raw in _TRUE_VALUES:
        secure: Optional[bool] = True
    elif secure_raw in _FALSE_VALUES:
        secure = False
    else:
        secure = None

    samesite = os.getenv("SESSION_SAMESITE", "strict").strip().lower()
    if samesite not in _VALID_SAMESITE:
        raise ValueError(f"SESSION_SAMESITE must be one of {sorted(_VALID_SAMESITE)}, got '{samesite}'")

    return SessionSettings(
        cookie_name=os.getenv("SESSION_NAME", "COLLABORA_SESSID").strip() or "COLLABORA_SESSID",
        lifetime=_get_int("SESSION_LIFETIME", 86400, minimum=60),
        idle_timeout=_get_int("SESSION_IDLE_TIMEOUT", 7200, minimum=60),
        regenerate_interval=_get_int("SESSION_REGENERATE_INTERVAL", 3600),
        cookie_path=os.getenv("SESSION_COOKIE_PATH", "/").strip() or "/",
        secure=secure,
        samesite=samesite,
        csrf_token_ttl=_get_int("CSRF_TOKEN_TTL", 3600),
    )


def get_login_policy() -> LoginPolicy:
    """Build LoginPolicy from environment variables."""
    return LoginPolicy(
        max_attempts=_get_int("MAX_LOGIN_ATTEMPTS", 5, minimum=1),
        lockout_duration=_get_int("LOCKOUT_DURATION", 900),
    )
