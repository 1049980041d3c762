# API route definitions (HTTP layer)
# Defines ENDPOINTS

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from .schemas import (
    UserOut,
    UserListResponse,
    UserRegister,
    UserLogin,
    UserSelection,
    RegistrationResponse,
    LoginResponse,
    MessageResponse,
    AdminActionResponse,
)
from .models import User
from .dependencies import get_session, get_current_user
from .sessions import ClientSession, session_store
from . import services, admin
from . import db
from .config import settings


router = APIRouter()

@router.get("/")
def root():
    return {"app": settings.APP_NAME, "env": settings.APP_ENV}


@router.get("/health")
async def health_check():
    """Health check endpoint for load balancers and monitoring.

    Returns:
        - 200 OK if service and database are healthy ("degraded" if sessions are down)
        - 503 Service Unavailable if database is unreachable
    """
    health_status = {
        "status": "healthy",
        "service": settings.APP_NAME,
        "environment": settings.APP_ENV,
    }

    if await db.check_db_connection():
        health_status["database"] = "connected"
    else:
        health_status["status"] = "unhealthy"
        health_status["database"] = "disconnected"
        raise HTTPException(status_code=503, detail=health_status)

    # Without a session store nobody can sign in, but public routes still work
    if await session_store.health_check():
        health_status["sessions"] = "connected"
    else:
        health_status["status"] = "degraded"
        health_status["sessions"] = "disconnected"

    return health_status


@router.get("/favicon.ico", include_in_schema=False)
async def favicon():
    return Response(status_code=204)


# ============================================================================
# Account Endpoints
# ============================================================================

@router.post("/auth/register", response_model=RegistrationResponse, status_code=201)
async def register(user: UserRegister):
    """Register a new account and send the verification email.

    Raises:
        400: Email already registered
        422: Missing or malformed fields
    """
    return await services.register_user(user)


@router.post("/auth/login", response_model=LoginResponse)
async def login(credentials: UserLogin, session: ClientSession = Depends(get_session)):
    """Sign in with email and password; sets the session cookie.

    Raises:
        401: Invalid email or password
        403: Account is blocked
    """
    return await services.authenticate_user(credentials, session)


@router.get("/auth/verify", response_model=MessageResponse)
async def verify(token: str | None = None):
    """Target of the link in the verification email."""
    return await services.verify_email(token)


@router.post("/auth/logout", response_model=MessageResponse)
async def logout(session: ClientSession = Depends(get_session)):
    return await services.logout_user(session)


@router.get("/auth/me", response_model=UserOut)
async def get_me(current_user: User = Depends(get_current_user)):
    """Get the currently authenticated user's profile.

    Raises:
        401: No session, or the account was blocked or deleted
    """
    return UserOut.model_validate(current_user)


# ============================================================================
# Admin Endpoints
# ============================================================================

@router.get("/admin/users", response_model=UserListResponse)
async def list_users(session: ClientSession = Depends(get_session)):
    return await admin.list_users(session)


@router.post("/admin/users/block", response_model=AdminActionResponse)
async def block_users(selection: UserSelection, session: ClientSession = Depends(get_session)):
    return await admin.block_users(selection, session)


@router.post("/admin/users/unblock", response_model=AdminActionResponse)
async def unblock_users(selection: UserSelection, session: ClientSession = Depends(get_session)):
    return await admin.unblock_users(selection, session)


@router.post("/admin/users/delete", response_model=AdminActionResponse)
async def delete_users(selection: UserSelection, session: ClientSession = Depends(get_session)):
    return await admin.delete_users(selection, session)


@router.post("/admin/users/delete-unverified", response_model=AdminActionResponse)
async def delete_unverified_users(session: ClientSession = Depends(get_session)):
    return await admin.delete_unverified_users(session)
