"""Request context management for observability.

Context variables carry request-scoped identifiers across async boundaries
so that every log line emitted while serving a request can be correlated.
"""

from contextvars import ContextVar

# Request ID - unique per HTTP request
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# Tenant ID - current tenant of the authenticated session
tenant_id_var: ContextVar[str] = ContextVar("tenant_id", default="")

# User ID - authenticated user of the session
user_id_var: ContextVar[str] = ContextVar("user_id", default="")
