"""FastAPI dependencies for session access and authentication."""

from fastapi import Depends, Request
from .admin import authenticate
from .models import User
from .sessions import ClientSession, session_store


# ==================== Session Dependencies ====================

def get_session(request: Request) -> ClientSession:
    """Return the ClientSession the session middleware bound to this request."""
    session = getattr(request.state, "session", None)
    if session is None:
        # Middleware not installed (e.g. a bare router in tests)
        session = ClientSession(session_store)
        request.state.session = session
    return session


async def get_current_user(session: ClientSession = Depends(get_session)) -> User:
    """Get the authenticated, unblocked user. Raises 401 and clears the session otherwise."""
    return await authenticate(session)
