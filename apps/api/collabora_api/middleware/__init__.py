"""HTTP middlewares."""

from collabora_api.middleware.logging_redaction import LoggingRedactionMiddleware, get_safe_headers
from collabora_api.middleware.security_headers import SecurityHeadersMiddleware

__all__ = ["LoggingRedactionMiddleware", "SecurityHeadersMiddleware", "get_safe_headers"]
