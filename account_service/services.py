"""Account lifecycle business logic: registration, login, email verification, logout.

State machine: register -> unverified -> (verify) active; admins move users
between active and blocked or delete them (see admin.py). Blocked accounts
can never sign in.
"""

from datetime import datetime, timezone

from fastapi import status
from sqlalchemy.exc import SQLAlchemyError

from .schemas import (
    UserOut,
    UserRegister,
    UserLogin,
    RegistrationResponse,
    LoginResponse,
    MessageResponse,
    ErrorCode,
)
from .crud import (
    DuplicateEmailError,
    insert_user,
    select_user_by_email,
    record_login,
    consume_verification_token,
)
from .auth import hash_password, verify_password, burn_password_check, generate_verification_token
from .errors import api_error, operation_failed, LOGIN_REDIRECT
from .notifications import notifier
from .sessions import ClientSession, SessionStoreError
from .monitoring import record_event
from .utils import normalize_email
from .logger import logger

# ==================== Registration ====================


async def register_user(data: UserRegister) -> RegistrationResponse:
    """Create an unverified account and dispatch the verification email.

    The email is sent in the background; its outcome never affects the
    registration result.
    """
    email = normalize_email(data.email)
    logger.info(f"Registering new user: {email}")

    hashed_password = hash_password(data.password)
    token = generate_verification_token()

    try:
        user = await insert_user(data.name, email, hashed_password, token)
    except DuplicateEmailError as e:
        logger.warning(f"Registration failed - email already exists: {email}")
        raise api_error(
            status.HTTP_400_BAD_REQUEST,
            ErrorCode.DUPLICATE_EMAIL,
            "Email already registered.",
            {"email": email},
        ) from e
    except SQLAlchemyError as e:
        logger.error(f"Registration failed for {email}: {str(e)}", exc_info=True)
        raise operation_failed("registering the account") from e

    logger.info(f"User registered successfully: id={user.id} email={user.email}")
    record_event("registered")

    try:
        notifier.send_verification_email(user.email, user.name, token)
    except Exception as e:
        logger.error(f"Could not schedule verification email for {user.email}: {e}", exc_info=True)

    return RegistrationResponse(
        id=user.id,
        message="Registration successful! Verification email sent.",
    )

# ==================== Login / Logout ====================


def _invalid_credentials():
    record_event("login_failed")
    return api_error(
        status.HTTP_401_UNAUTHORIZED,
        ErrorCode.INVALID_CREDENTIALS,
        "Invalid email or password.",
    )


async def authenticate_user(data: UserLogin, session: ClientSession) -> LoginResponse:
    """Check credentials, record the login time and bind the session to the user.

    Unknown email and wrong password produce the same error. Block status is
    only revealed once the password has been verified. Unverified accounts
    may sign in.
    """
    email = normalize_email(data.email)
    logger.info(f"Authentication attempt for user: {email}")

    try:
        user = await select_user_by_email(email)
    except SQLAlchemyError as e:
        logger.error(f"Login lookup failed for {email}: {str(e)}", exc_info=True)
        raise operation_failed("signing in") from e

    if not user:
        burn_password_check(data.password)
        logger.warning(f"Authentication failed - user not found: {email}")
        raise _invalid_credentials()

    if not verify_password(data.password, user.hashed_password):
        logger.warning(f"Authentication failed - invalid password for user: {email}")
        raise _invalid_credentials()

    if user.is_blocked:
        logger.warning(f"Authentication failed - user is blocked: {email}")
        record_event("login_blocked")
        raise api_error(
            status.HTTP_403_FORBIDDEN,
            ErrorCode.ACCOUNT_BLOCKED,
            "Your account has been blocked. Please contact an administrator.",
        )

    try:
        await session.set_user_id(user.id)
    except SessionStoreError as e:
        logger.error(f"Login failed for {email}: {str(e)}", exc_info=True)
        raise operation_failed("signing in") from e

    # Only a login that holds a session moves last_login_at
    logged_in_at = datetime.now(timezone.utc)
    try:
        await record_login(user.id, logged_in_at)
    except SQLAlchemyError as e:
        logger.error(f"Login failed for {email}: {str(e)}", exc_info=True)
        await session.clear()
        raise operation_failed("signing in") from e

    user.last_login_at = logged_in_at
    logger.info(f"Authentication successful for user: {email} (id={user.id})")
    record_event("login")

    return LoginResponse(
        message="Login successful.",
        user=UserOut.model_validate(user),
    )


async def logout_user(session: ClientSession) -> MessageResponse:
    """Clear the client's session scope. Always succeeds."""
    user_id = await session.get_user_id()
    await session.clear()
    if user_id is not None:
        logger.info(f"User signed out: id={user_id}")
    return MessageResponse(message="You have been signed out.")

# ==================== Email Verification ====================


async def verify_email(token: str | None) -> MessageResponse:
    """Consume a verification token, activating the account if still unverified."""
    invalid = api_error(
        status.HTTP_400_BAD_REQUEST,
        ErrorCode.INVALID_TOKEN,
        "Invalid or expired verification link.",
        {"redirect": LOGIN_REDIRECT},
    )
    if not token or not token.strip():
        raise invalid

    try:
        user = await consume_verification_token(token.strip())
    except SQLAlchemyError as e:
        logger.error(f"Email verification failed: {str(e)}", exc_info=True)
        raise operation_failed("verifying the email address") from e

    if user is None:
        logger.warning("Email verification failed - unknown or used token")
        raise invalid

    logger.info(f"Email verified: id={user.id} email={user.email} status={user.status}")
    record_event("verified")
    return MessageResponse(message="Email verified successfully. You can now sign in.")
