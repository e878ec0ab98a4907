"""User administration routes."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from taskqueue.database import get_db
from taskqueue.models.user import User
from taskqueue.schemas.user import UserCreate, UserCreated
from taskqueue.services.auth import create_user, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


@router.post("", response_model=UserCreated)
def create_api_user(
    data: UserCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Create an API user. The token is returned once and never stored in clear."""
    if db.query(User).filter(User.username == data.username).first():
        raise HTTPException(status_code=400, detail="Username already exists")

    try:
        user, token = create_user(db, data.username, data.role)
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=400, detail="Username already exists")

    logger.info(f"User {user.username} created by {admin.username}")
    return UserCreated(id=user.id, username=user.username, role=user.role, api_token=token)
