"""FastAPI dependencies backed by the application context."""

from typing import Generator, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from .auth import AuthenticatedUser, is_admin, parse_bearer
from .context import AppContext
from .errors import ForbiddenError, UnauthorizedError


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_db(context: AppContext = Depends(get_context)) -> Generator[Session, None, None]:
    """Dependency to get database session."""
    db = context.session()
    try:
        yield db
    finally:
        db.close()


async def get_optional_user(
    authorization: Optional[str] = Header(default=None),
    context: AppContext = Depends(get_context),
) -> Optional[AuthenticatedUser]:
    """The caller, if a bearer token was sent; a bad token is still a 401."""
    if not authorization:
        return None
    token = parse_bearer(authorization)
    user = await context.auth.get_user(token) if token else None
    if user is None:
        raise UnauthorizedError("Unauthorized. Valid user token required.")
    return user


async def get_current_user(
    user: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> AuthenticatedUser:
    if user is None:
        raise UnauthorizedError("Unauthorized. Please sign in.")
    return user


def require_admin(
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AuthenticatedUser:
    if not is_admin(db, user.id):
        raise ForbiddenError("Unauthorized. Admin access required.")
    return user
