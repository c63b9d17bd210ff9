"""Shared API dependencies."""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlmodel import Session, select

from tradedesk.database import get_session
from tradedesk.engine.runtime import Runtime
from tradedesk.models.user import User
from tradedesk.services.auth import decode_access_token

bearer_scheme = HTTPBearer()


def user_from_token(token: str, session: Session) -> User | None:
    username = decode_access_token(token)
    if username is None:
        return None
    user = session.exec(select(User).where(User.username == username)).first()
    if user is None or not user.is_active:
        return None
    return user


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    session: Session = Depends(get_session),
) -> User:
    """Validate JWT and return the current user."""
    user = user_from_token(credentials.credentials, session)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin only")
    return user


def get_runtime(request: Request) -> Runtime:
    """Settlement components created in the app lifespan."""
    return request.app.state.runtime
