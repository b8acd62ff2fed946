"""Session, tenant and permission guard."""

from collabora_api.auth.guard import AuthGuard, LoginResult, SwitchResult
from collabora_api.auth.permissions import Role

__all__ = ["AuthGuard", "LoginResult", "Role", "SwitchResult"]
