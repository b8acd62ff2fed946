"""Repository for users."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import case, func, or_, select
from sqlalchemy.orm import Session

from collabora_api.db.models import User


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize a stored timestamp to aware UTC.

    SQLite returns naive datetimes even for timezone-aware columns.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class UserRepository:
    """User lookups and login bookkeeping. Soft-deleted users are invisible."""

    def __init__(self, db: Session):
        self.db = db

    def create(self, user: User) -> User:
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def get_by_id(self, user_id: int) -> Optional[User]:
        stmt = select(User).where(User.id == user_id, User.deleted_at.is_(None))
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_identifier(self, identifier: str) -> Optional[User]:
        """Find a user by email (case-insensitive) or username."""
        identifier = identifier.strip()
        email_match = func.lower(User.email) == identifier.lower()
        # an email match wins over another user's identical username
        stmt = (
            select(User)
            .where(or_(email_match, User.username == identifier), User.deleted_at.is_(None))
            .order_by(case((email_match, 0), else_=1), User.id)
        )
        return self.db.execute(stmt).scalars().first()

    def is_locked(self, user: User, now: datetime) -> bool:
        locked_until = as_utc(user.locked_until)
        return locked_until is not None and locked_until > now

    def record_failed_login(
        self, user: User, max_attempts: int, lockout_seconds: int, now: datetime
    ) -> bool:
        """Increment the failure counter; lock the account once max_attempts is reached.

        Returns:
            True if this failure locked the account
        """
        user.failed_login_attempts = (user.failed_login_attempts or 0) + 1
        if lockout_seconds > 0 and user.failed_login_attempts >= max_attempts:
            user.locked_until = now + timedelta(seconds=lockout_seconds)
            user.failed_login_attempts = 0
            self.db.commit()
            return True
        self.db.commit()
        return False

    def record_successful_login(self, user: User, ip_address: str, now: datetime) -> None:
        """Reset brute-force counters and stamp last login (caller commits)."""
        user.failed_login_attempts = 0
        user.locked_until = None
        user.last_login_at = now
        user.last_login_ip = ip_address[:45]
