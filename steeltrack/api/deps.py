"""
API Dependencies
Common dependencies for API endpoints
"""
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from steeltrack.core.database import get_db
from steeltrack.core.exceptions import AuthenticationError
from steeltrack.core.security import AccessContext, decode_access_token, session_registry

# Security scheme
security = HTTPBearer()

__all__ = ["get_db", "get_current_session", "get_access_context", "CurrentSession"]


@dataclass
class CurrentSession:
    session_id: str
    context: AccessContext


def get_current_session(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> CurrentSession:
    """
    Resolve the bearer token to an open session.
    """
    try:
        payload = decode_access_token(credentials.credentials)
        session_id = payload.get("sid")
        if not session_id:
            raise AuthenticationError("Session token carries no session id")
        context = session_registry.get(session_id)
    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )
    return CurrentSession(session_id=session_id, context=context)


def get_access_context(session: CurrentSession = Depends(get_current_session)) -> AccessContext:
    """Access context of the current session"""
    return session.context
