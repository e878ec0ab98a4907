"""API user model."""

import enum

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from taskqueue.database import Base, utcnow


class UserRole(str, enum.Enum):
    USER = "User"
    ADMIN = "Admin"


class User(Base):
    """An API caller identified by a bearer token."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(100), nullable=False, unique=True)
    token_hash = Column(String(64), nullable=False, unique=True)  # SHA-256 of the API token
    role = Column(String(20), nullable=False, default=UserRole.USER.value)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
