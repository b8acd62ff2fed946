"""Per-request session context.

SessionContext binds one request to one server-side session record:
it reads the session cookie, loads the record from the SessionStore,
enforces absolute and idle expiry, rotates the id of long-lived
authenticated sessions, and writes Set-Cookie headers onto the response.

Expiry is checked lazily: an expired record is destroyed the next time
its id is presented, and the request continues as anonymous.
"""

import logging
import time
from typing import Callable, Optional

from fastapi import Response

from collabora_api.auth.session_store import SessionData, SessionStore, new_session_id
from collabora_api.config.env import SessionSettings

logger = logging.getLogger(__name__)


class SessionContext:
    """Explicit session state for one request."""

    def __init__(
        self,
        store: SessionStore,
        settings: SessionSettings,
        cookie_session_id: Optional[str] = None,
        response: Optional[Response] = None,
        secure_request: bool = False,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.settings = settings
        self.cookie_session_id = cookie_session_id or None
        self.response = response
        self.secure_request = secure_request
        self.ip_address = ip_address
        self.user_agent = user_agent
        self.clock = clock
        self.data: Optional[SessionData] = None

    @property
    def session_id(self) -> Optional[str]:
        return self.data.session_id if self.data else None

    def start(self) -> SessionData:
        """Load or create the session. Safe to call repeatedly."""
        if self.data is not None:
            return self.data

        now = self.clock()
        data = self.store.load(self.cookie_session_id) if self.cookie_session_id else None

        if data is not None:
            reason = self._expiry_reason(data, now)
            if reason:
                logger.info(
                    "Session expired",
                    extra={"event": "session.expired", "reason": reason, "user_id": data.user_id},
                )
                self.store.delete(data.session_id)
                self._expire_cookie()
                data = None

        if data is None:
            self.data = SessionData(
                session_id=new_session_id(),
                created_at=now,
                last_activity=now,
                ip_address=self.ip_address,
                user_agent=self.user_agent,
            )
            self.save()
            self._set_cookie()
            return self.data

        self.data = data
        if data.is_authenticated and self._rotation_due(data, now):
            self.regenerate_id()
        data.last_activity = now
        self.save()
        return data

    def _expiry_reason(self, data: SessionData, now: float) -> Optional[str]:
        if now - data.created_at > self.settings.lifetime:
            return "lifetime"
        if now - data.last_activity > self.settings.idle_timeout:
            return "idle"
        return None

    def _rotation_due(self, data: SessionData, now: float) -> bool:
        interval = self.settings.regenerate_interval
        if interval <= 0:
            return False
        last = data.last_regenerated_at or data.created_at
        return now - last >= interval

    def regenerate_id(self) -> str:
        """Move the session to a fresh id and delete the old record.

        Returns:
            The new session id
        """
        data = self.start()
        old_id = data.session_id
        data.session_id = new_session_id()
        data.last_regenerated_at = self.clock()
        self.store.delete(old_id)
        self.save()
        self._set_cookie()
        logger.debug("Session id regenerated", extra={"event": "session.regenerated"})
        return data.session_id

    def save(self) -> None:
        if self.data is None:
            return
        remaining = self.settings.lifetime - int(self.clock() - self.data.created_at)
        self.store.save(self.data, max(remaining, 1))

    def destroy(self) -> None:
        """Delete the record and expire the cookie. Idempotent."""
        if self.data is not None:
            self.store.delete(self.data.session_id)
        elif self.cookie_session_id:
            self.store.delete(self.cookie_session_id)
        self.data = None
        self.cookie_session_id = None
        self._expire_cookie()

    def _cookie_secure(self) -> bool:
        if self.settings.secure is None:
            return self.secure_request
        return self.settings.secure

    def _set_cookie(self) -> None:
        if self.response is None or self.data is None:
            return
        self.response.set_cookie(
            key=self.settings.cookie_name,
            value=self.data.session_id,
            max_age=self.settings.lifetime,
            path=self.settings.cookie_path,
            secure=self._cookie_secure(),
            httponly=True,
            samesite=self.settings.samesite,
        )

    def _expire_cookie(self) -> None:
        if self.response is None:
            return
        self.response.delete_cookie(
            key=self.settings.cookie_name,
            path=self.settings.cookie_path,
            secure=self._cookie_secure(),
            httponly=True,
            samesite=self.settings.samesite,
        )
