"""SQLAlchemy ORM models for database tables."""

import enum
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, Integer, String, DateTime
from sqlalchemy.sql import func
from .db import Base
from .config import settings


class UserStatus(str, enum.Enum):
    """Account lifecycle states. Mutually exclusive."""

    UNVERIFIED = "unverified"
    ACTIVE = "active"
    BLOCKED = "blocked"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """User model mapped to 'users' table."""

    __tablename__ = "users"
    # Autoincrement without reuse of ids freed by deletes (SQLite AUTOINCREMENT)
    __table_args__ = (
        CheckConstraint("status IN ('unverified', 'active', 'blocked')", name="ck_users_status"),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(settings.USER_NAME_MAX_LENGTH), nullable=False)
    email = Column(String(settings.USER_EMAIL_MAX_LENGTH), nullable=False, unique=True, index=True)
    hashed_password = Column(String(255), nullable=False)
    status = Column(
        String(20),
        nullable=False,
        default=UserStatus.UNVERIFIED.value,
        server_default=UserStatus.UNVERIFIED.value,
    )
    registered_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
    last_login_at = Column(DateTime(timezone=True), nullable=True, index=True)
    verification_token = Column(String(100), nullable=True, index=True)

    @property
    def is_blocked(self) -> bool:
        return self.status == UserStatus.BLOCKED.value

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email} status={self.status}>"
