"""User-related Pydantic schemas."""

from pydantic import BaseModel, Field

from taskqueue.models.user import UserRole


class UserCreate(BaseModel):
    """Schema for creating an API user."""

    username: str = Field(..., min_length=1, max_length=100)
    role: UserRole = UserRole.USER


class UserCreated(BaseModel):
    """Response after creating a user. The token is only ever shown here."""

    id: int
    username: str
    role: UserRole
    api_token: str
