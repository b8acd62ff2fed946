"""Activity log writer.

Records authentication events (login.success, login.failed, logout,
tenant.switch) in the activity_logs table. Writing is fail-open: a broken
activity log never blocks a login or a tenant switch.
"""

import hashlib
import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from collabora_api.db.models import ActivityLog
from collabora_api.utils.sanitize import sanitize_obj

logger = logging.getLogger(__name__)

LOGIN_SUCCESS = "login.success"
LOGIN_FAILED = "login.failed"
LOGOUT = "logout"
TENANT_SWITCH = "tenant.switch"


def session_ref(session_id: Optional[str]) -> Optional[str]:
    """Stable, non-reversible reference to a session id."""
    if not session_id:
        return None
    return hashlib.sha256(session_id.encode("utf-8")).hexdigest()[:16]


class ActivityRepository:
    """Append-only access to activity_logs."""

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        action: str,
        user_id: Optional[int] = None,
        tenant_id: Optional[int] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        session_id: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Optional[ActivityLog]:
        """Insert one activity row and commit.

        Returns:
            The stored row, or None if the write failed
        """
        try:
            entry = ActivityLog(
                user_id=user_id,
                tenant_id=tenant_id,
                action=action,
                ip_address=ip_address[:45] if ip_address else None,
                user_agent=user_agent,
                session_ref=session_ref(session_id),
                event_meta=sanitize_obj(metadata) if metadata else None,
            )
            self.db.add(entry)
            self.db.commit()
            return entry
        except Exception as e:
            # Fail-open: don't block auth if activity logging fails
            logger.warning(f"Failed to record activity {action}: {e}", exc_info=True)
            self.db.rollback()
            return None
