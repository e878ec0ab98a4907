"""Bearer-token authentication for the coordinator API."""

import hashlib
import logging
import secrets
from typing import Optional, Tuple

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from taskqueue.database import get_db
from taskqueue.models.user import User, UserRole

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def hash_token(token: str) -> str:
    """Hash an API token using SHA256."""
    return hashlib.sha256(token.encode()).hexdigest()


def create_user(
    db: Session, username: str, role: UserRole = UserRole.USER, token: Optional[str] = None
) -> Tuple[User, str]:
    """
    Create an API user.

    Returns:
        The user row and its plaintext token, which is not stored
    """
    token = token or secrets.token_urlsafe(32)
    user = User(username=username, token_hash=hash_token(token), role=UserRole(role).value)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user, token


def ensure_admin(db: Session, token: str, username: str = "admin") -> User:
    """Create the bootstrap admin for token unless a user with that token exists."""
    existing = db.query(User).filter(User.token_hash == hash_token(token)).first()
    if existing:
        return existing

    user, _ = create_user(db, username, UserRole.ADMIN, token=token)
    logger.info(f"Created bootstrap admin user '{username}'")
    return user


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the bearer token to an active user."""
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = db.query(User).filter(User.token_hash == hash_token(credentials.credentials)).first()
    if not user:
        raise HTTPException(
            status_code=401,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(status_code=403, detail="User is disabled")

    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != UserRole.ADMIN.value:
        raise HTTPException(status_code=403, detail="Admin role required")
    return user


def owner_scope(user: User) -> Optional[int]:
    """Owner id to filter by; admins see everything."""
    if user.role == UserRole.ADMIN.value:
        return None
    return user.id
