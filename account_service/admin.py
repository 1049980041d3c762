"""Admin panel business logic: listing, blocking, unblocking and deleting accounts.

Every operation re-authenticates the caller against the store first, so a
user who was blocked or deleted mid-session is signed out on their next
action.
"""

from fastapi import status
from sqlalchemy.exc import SQLAlchemyError

from .schemas import UserOut, UserListResponse, UserSelection, AdminActionResponse, ErrorCode
from .crud import (
    select_user,
    list_all_users,
    update_status,
    delete_users as crud_delete_users,
    delete_users_by_status,
)
from .errors import api_error, operation_failed, unauthenticated
from .models import User, UserStatus
from .sessions import ClientSession
from .monitoring import record_admin_action
from .utils import dedupe_ids
from .config import settings
from .logger import logger

# ==================== Authentication ====================


async def authenticate(session: ClientSession) -> User:
    """Resolve the session to a current, unblocked user or deny.

    The user is re-read on every call. A missing or blocked user has the
    session cleared before the request is denied.
    """
    user_id = await session.get_user_id()
    if user_id is None:
        raise unauthenticated()

    try:
        user = await select_user(user_id)
    except SQLAlchemyError as e:
        logger.error(f"Error checking user authentication: {str(e)}", exc_info=True)
        raise operation_failed("checking your session") from e

    if user is None or user.is_blocked:
        logger.warning(f"Evicting session for blocked or deleted user: id={user_id}")
        await session.clear()
        raise unauthenticated(
            "Your account has been blocked or deleted. Please contact administrator."
        )

    return user

# ==================== Helper Functions ====================


def _validate_selection(selection: UserSelection, action: str) -> list[int]:
    """Reject empty or oversized selections; return de-duplicated ids."""
    ids = dedupe_ids(selection.ids)
    if not ids:
        raise api_error(
            status.HTTP_400_BAD_REQUEST,
            ErrorCode.VALIDATION_ERROR,
            f"No users selected for {action}.",
        )
    if len(ids) > settings.MAX_BATCH_SIZE:
        logger.warning(
            f"Bulk {action} rejected: size {len(ids)} exceeds maximum {settings.MAX_BATCH_SIZE}"
        )
        raise api_error(
            status.HTTP_400_BAD_REQUEST,
            ErrorCode.BATCH_SIZE_EXCEEDED,
            f"Batch size {len(ids)} exceeds maximum allowed size of {settings.MAX_BATCH_SIZE}",
            {"provided": len(ids), "maximum": settings.MAX_BATCH_SIZE},
        )
    return ids

# ==================== Listing ====================


async def list_users(session: ClientSession) -> UserListResponse:
    """All users, most recent login first; never-logged-in users last."""
    await authenticate(session)

    try:
        users = await list_all_users()
    except SQLAlchemyError as e:
        logger.error(f"Error loading users: {str(e)}", exc_info=True)
        raise operation_failed("loading users") from e

    items = [UserOut.model_validate(u) for u in users]
    return UserListResponse(items=items, total=len(items))

# ==================== Bulk Actions ====================


async def block_users(selection: UserSelection, session: ClientSession) -> AdminActionResponse:
    """Block every selected user. Blocking yourself signs you out."""
    current = await authenticate(session)
    ids = _validate_selection(selection, "blocking")

    try:
        count = await update_status(ids, UserStatus.BLOCKED)
    except SQLAlchemyError as e:
        logger.error(f"Error blocking users: {str(e)}", exc_info=True)
        raise operation_failed("blocking users") from e

    logger.info(f"Blocked {count} user(s) by id={current.id}")
    record_admin_action("block", count)

    if current.id in ids:
        await session.clear()
        return AdminActionResponse(
            count=count,
            message="You have blocked yourself and been logged out.",
            signed_out=True,
        )
    return AdminActionResponse(count=count, message=f"Successfully blocked {count} user(s).")


async def unblock_users(selection: UserSelection, session: ClientSession) -> AdminActionResponse:
    """Return blocked users to active. Users not currently blocked are left alone."""
    current = await authenticate(session)
    ids = _validate_selection(selection, "unblocking")

    try:
        count = await update_status(ids, UserStatus.ACTIVE, only_from=UserStatus.BLOCKED)
    except SQLAlchemyError as e:
        logger.error(f"Error unblocking users: {str(e)}", exc_info=True)
        raise operation_failed("unblocking users") from e

    logger.info(f"Unblocked {count} user(s) by id={current.id}")
    record_admin_action("unblock", count)
    return AdminActionResponse(count=count, message=f"Successfully unblocked {count} user(s).")


async def delete_users(selection: UserSelection, session: ClientSession) -> AdminActionResponse:
    """Permanently delete every selected user. Deleting yourself signs you out."""
    current = await authenticate(session)
    ids = _validate_selection(selection, "deletion")

    try:
        count = await crud_delete_users(ids)
    except SQLAlchemyError as e:
        logger.error(f"Error deleting users: {str(e)}", exc_info=True)
        raise operation_failed("deleting users") from e

    logger.info(f"Deleted {count} user(s) by id={current.id}")
    record_admin_action("delete", count)

    if current.id in ids:
        await session.clear()
        return AdminActionResponse(
            count=count,
            message="You have deleted your account and been logged out.",
            signed_out=True,
        )
    return AdminActionResponse(count=count, message=f"Successfully deleted {count} user(s).")


async def delete_unverified_users(session: ClientSession) -> AdminActionResponse:
    """Delete every unverified account, regardless of selection."""
    current = await authenticate(session)

    try:
        count = await delete_users_by_status(UserStatus.UNVERIFIED)
    except SQLAlchemyError as e:
        logger.error(f"Error deleting unverified users: {str(e)}", exc_info=True)
        raise operation_failed("deleting unverified users") from e

    if count == 0:
        return AdminActionResponse(count=0, message="No unverified users found.", outcome="info")

    logger.info(f"Deleted {count} unverified user(s) by id={current.id}")
    record_admin_action("delete_unverified", count)

    # Unverified users may sign in, so the sweep can remove the caller too
    if current.status == UserStatus.UNVERIFIED.value:
        await session.clear()
        return AdminActionResponse(
            count=count,
            message=f"Deleted {count} unverified user(s), including your own account. You have been logged out.",
            signed_out=True,
        )
    return AdminActionResponse(
        count=count,
        message=f"Successfully deleted {count} unverified user(s).",
    )
