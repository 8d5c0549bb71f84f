"""User model - task owner."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from taskhub.models.enums import Role


class User(BaseModel):
    """Registered user. Owns zero or more tasks."""

    id: UUID
    email: str
    name: str
    password_hash: str = Field(repr=False)
    role: Role = Role.USER
    refresh_token_hash: Optional[str] = Field(default=None, repr=False)

    created_at: datetime
    updated_at: datetime
