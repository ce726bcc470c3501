# storefront/dependencies.py

import logging
from typing import Iterator
from contextlib import contextmanager

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from jose import JWTError, jwt

from storefront.core.config import settings
from storefront.core.milestones import MilestoneTable
from storefront.db.session import SessionLocal
from storefront.models.user import User

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=True)

# --- DB session ---

def get_db() -> Iterator[Session]:
    """FastAPI dependency: one session per request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

@contextmanager
def get_db_context() -> Iterator[Session]:
    """Same session lifecycle for code running outside a request (scripts, workers)."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

# --- Milestone table ---

def get_milestone_table(request: Request) -> MilestoneTable:
    """The table parsed at startup, see storefront.main.lifespan."""
    return request.app.state.milestones

# --- Auth ---

def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: Session = Depends(get_db)
) -> User:
    """
    Requires a valid bearer token issued by the auth service.
    `sub` carries the user id; we only resolve the row.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(credentials.credentials, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        user_id = payload.get("sub")
        if user_id is None:
            logger.warning("Token payload is missing 'sub' (user_id).")
            raise credentials_exception
        user_id = int(user_id)
    except (JWTError, ValueError) as e:
        logger.warning(f"Rejected bearer token: {e}")
        raise credentials_exception

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        logger.warning(f"User with ID {user_id} from token not found in DB.")
        raise credentials_exception

    # Used by the rate limiter key function
    request.state.user = user
    logger.debug(f"Authenticated user ID: {user.id}")
    return user


def get_admin_user(current_user: User = Depends(get_current_user)) -> User:
    """Admin endpoints: the user's email must be listed in ADMIN_EMAILS."""
    if current_user.email.lower() not in settings.ADMIN_EMAILS:
        logger.warning(f"Permission denied for user {current_user.id} ({current_user.email}): not an admin.")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have permission to access this resource."
        )
    return current_user
