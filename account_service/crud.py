"""Database CRUD operations for user accounts.

Every function opens its own session and transaction; returned ORM objects
are detached snapshots (the session factory does not expire on commit).
"""

from datetime import datetime

from sqlalchemy import select, update, delete, or_
from sqlalchemy.exc import IntegrityError

from . import db
from .models import User, UserStatus
from .logger import logger
from .config import settings


class DuplicateEmailError(Exception):
    """Raised when an insert violates the unique email constraint."""

    def __init__(self, email: str):
        super().__init__(f"duplicate email: {email}")
        self.email = email


# ==================== Helper Functions ====================

def _chunks(ids: list[int]):
    """Yield (chunk_number, chunk) pairs of at most CHUNK_SIZE ids."""
    for i in range(0, len(ids), settings.CHUNK_SIZE):
        yield (i // settings.CHUNK_SIZE) + 1, ids[i:i + settings.CHUNK_SIZE]


# ==================== Single User Operations ====================


async def insert_user(name: str, email: str, hashed_password: str, verification_token: str) -> User:
    """Insert a new unverified user. Raises DuplicateEmailError on duplicate email.

    Uniqueness is enforced by the database constraint inside the insert
    itself, so concurrent registrations cannot both succeed.
    """
    async with db.async_session() as session:
        try:
            async with session.begin():
                user = User(
                    name=name,
                    email=email,
                    hashed_password=hashed_password,
                    status=UserStatus.UNVERIFIED.value,
                    verification_token=verification_token,
                )
                session.add(user)
            await session.refresh(user) # To update ORM object
            return user
        except IntegrityError as e:
            logger.debug(f"Duplicate email rejected: {email}")
            raise DuplicateEmailError(email) from e


async def select_user_by_email(email: str) -> User | None:
    """Retrieve a user by (already normalized) email address."""
    async with db.async_session() as session:
        result = await session.execute(select(User).where(User.email == email))
        return result.scalars().first()


async def select_user(user_id: int) -> User | None:
    """Retrieve a user by ID."""
    async with db.async_session() as session:
        result = await session.get(User, user_id)
        return result


async def select_user_by_token(token: str) -> User | None:
    """Retrieve the user holding an outstanding verification token."""
    async with db.async_session() as session:
        result = await session.execute(select(User).where(User.verification_token == token))
        return result.scalars().first()


async def select_users_by_ids(ids: list[int]) -> list[User]:
    """Retrieve every existing user among the given ids. Unknown ids are skipped."""
    if not ids:
        return []
    async with db.async_session() as session:
        users: list[User] = []
        for _, chunk in _chunks(ids):
            result = await session.execute(select(User).where(User.id.in_(chunk)))
            users.extend(result.scalars().all())
        return users


async def list_all_users() -> list[User]:
    """List every user, most recent login first.

    Users who never logged in sort last; ties (including never-logged-in
    users) are broken by registration time, newest first, then by id.
    """
    async with db.async_session() as session:
        try:
            stmt = select(User).order_by(
                User.last_login_at.is_(None),
                User.last_login_at.desc(),
                User.registered_at.desc(),
                User.id.desc(),
            )
            result = await session.execute(stmt)
            users = result.scalars().all()
            logger.debug(f"Query executed: returned {len(users)} users")
            return list(users)
        except Exception:
            logger.error("Failed to list users", exc_info=True)
            raise


async def record_login(user_id: int, logged_in_at: datetime) -> bool:
    """Set last_login_at for a user in a single conditional UPDATE.

    The timestamp only ever moves forward. Returns False when the row is
    missing or already holds a later login time.
    """
    async with db.async_session() as session:
        try:
            async with session.begin():
                result = await session.execute(
                    update(User)
                    .where(
                        User.id == user_id,
                        or_(User.last_login_at.is_(None), User.last_login_at < logged_in_at),
                    )
                    .values(last_login_at=logged_in_at)
                    .execution_options(synchronize_session=False)
                )
            return result.rowcount > 0
        except Exception:
            logger.error(f"Failed to record login for user id={user_id}", exc_info=True)
            raise


async def consume_verification_token(token: str) -> User | None:
    """Clear a verification token and activate its unverified owner.

    Runs in one transaction with the row locked. Blocked and active users
    keep their status; the token is cleared either way. Returns the updated
    user, or None when no user holds the token.
    """
    async with db.async_session() as session:
        try:
            async with session.begin():
                result = await session.execute(
                    select(User).where(User.verification_token == token).with_for_update()
                )
                user = result.scalars().first()
                if user is None:
                    return None
                user.verification_token = None
                if user.status == UserStatus.UNVERIFIED.value:
                    user.status = UserStatus.ACTIVE.value
            return user
        except Exception:
            logger.error("Failed to consume verification token", exc_info=True)
            raise


# ==================== Batch Operations ====================

async def update_status(
    ids: list[int],
    status: UserStatus,
    only_from: UserStatus | None = None,
) -> int:
    """Set status for multiple users in a single transaction, processing in chunks.
    All-or-nothing: either every matching row is updated or none is.

    When only_from is given, only rows currently in that status change.
    Missing ids are ignored. Returns the number of rows updated.
    """
    if not ids:
        return 0

    total_chunks = (len(ids) + settings.CHUNK_SIZE - 1) // settings.CHUNK_SIZE
    logger.debug(
        f"Setting status={status.value} for {len(ids)} ids in {total_chunks} chunks (atomic transaction)"
    )

    async with db.async_session() as session:
        try:
            async with session.begin():  # Single transaction for entire batch
                updated = 0
                for chunk_num, chunk in _chunks(ids):
                    stmt = update(User).where(User.id.in_(chunk))
                    if only_from is not None:
                        stmt = stmt.where(User.status == only_from.value)
                    result = await session.execute(
                        stmt.values(status=status.value).execution_options(synchronize_session=False)
                    )
                    updated += result.rowcount
                    logger.debug(f"Chunk {chunk_num}/{total_chunks} staged: {result.rowcount} users")
                # Transaction commits here automatically (or rolls back on error)

            logger.debug(f"Batch status update completed: {updated} users set to {status.value}")
            return updated
        except Exception as e:
            logger.error(f"Batch status update failed: {str(e)} (transaction rolled back)", exc_info=True)
            raise


async def delete_users(ids: list[int]) -> int:
    """Delete multiple users in a single transaction, processing in chunks for memory efficiency.
    All-or-nothing: either all matching users are deleted or none are (atomic operation).
    Returns the number of users deleted.
    """
    if not ids:
        return 0

    total_chunks = (len(ids) + settings.CHUNK_SIZE - 1) // settings.CHUNK_SIZE
    logger.debug(f"Processing {len(ids)} deletions in {total_chunks} chunks of {settings.CHUNK_SIZE} (atomic transaction)")

    async with db.async_session() as session:
        try:
            async with session.begin():  # Single transaction for entire batch
                deleted = 0
                for chunk_num, chunk in _chunks(ids):
                    result = await session.execute(
                        delete(User).where(User.id.in_(chunk)).execution_options(synchronize_session=False)
                    )
                    deleted += result.rowcount
                    logger.debug(f"Chunk {chunk_num}/{total_chunks} staged: {result.rowcount} users")

            logger.debug(f"Batch delete completed: {deleted} users deleted")
            return deleted
        except Exception as e:
            logger.error(f"Batch delete failed: {str(e)} (transaction rolled back)", exc_info=True)
            raise


async def delete_users_by_status(status: UserStatus) -> int:
    """Delete every user currently in the given status. Returns the count."""
    async with db.async_session() as session:
        try:
            async with session.begin():
                result = await session.execute(
                    delete(User).where(User.status == status.value).execution_options(synchronize_session=False)
                )
            logger.debug(f"Deleted {result.rowcount} users with status={status.value}")
            return result.rowcount
        except Exception as e:
            logger.error(f"Delete by status failed: {str(e)} (transaction rolled back)", exc_info=True)
            raise
