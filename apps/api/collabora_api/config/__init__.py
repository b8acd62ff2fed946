"""Configuration helpers."""

from collabora_api.config.env import (
    LoginPolicy,
    SessionSettings,
    get_collabora_env,
    get_login_policy,
    get_session_settings,
    is_debug_enabled,
    is_production_env,
)

__all__ = [
    "LoginPolicy",
    "SessionSettings",
    "get_collabora_env",
    "get_login_policy",
    "get_session_settings",
    "is_debug_enabled",
    "is_production_env",
]
