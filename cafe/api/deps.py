# cafe/api/deps.py
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from cafe.domain.errors import AuthenticationError
from cafe.services.session_service import SessionService

bearer = HTTPBearer(auto_error=False)


def get_session_service() -> SessionService:
    return SessionService()


def require_admin(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    sessions: SessionService = Depends(get_session_service),
) -> str:
    """Sprawdza token sesji przy kazdym wywolaniu, zwraca email admina."""
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing session token")
    try:
        return sessions.validate(credentials.credentials)
    except AuthenticationError as e:
        raise HTTPException(status_code=401, detail=str(e))
