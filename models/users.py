import uuid
from datetime import datetime
from typing import Any, Dict

import pydantic
from pydantic import BaseModel, EmailStr, Field

from models.dynamodb import (RefreshTokenItem, UserItem, parse_timestamp,
                             refresh_token_key, user_key)


class UserBase(BaseModel):
    """Base model for user data."""

    user_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=100)
    password_hash: str
    is_admin: bool = False
    failed_login_attempts: int = Field(0, ge=0)
    lockout_until: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @pydantic.field_validator("email")
    def normalise_email(cls, v):
        return v.strip().lower()

    def is_locked(self, now: datetime) -> bool:
        return self.lockout_until is not None and self.lockout_until > now

    def to_dynamodb_item(self) -> UserItem:
        """Convert to DynamoDB item format."""
        return UserItem(
            **user_key(self.user_id),
            user_id=self.user_id,
            email=self.email,
            name=self.name,
            password_hash=self.password_hash,
            is_admin=self.is_admin,
            failed_login_attempts=self.failed_login_attempts,
            lockout_until=(
                self.lockout_until.isoformat() if self.lockout_until else None
            ),
            created_at=self.created_at.isoformat(),
            updated_at=self.updated_at.isoformat(),
        )

    @classmethod
    def from_dynamodb_item(cls, item: Dict[str, Any]) -> "UserBase":
        """Create a UserBase instance from a DynamoDB item."""
        if not item:
            return None

        return cls(
            user_id=item["user_id"],
            email=item["email"],
            name=item["name"],
            password_hash=item["password_hash"],
            is_admin=item.get("is_admin", False),
            failed_login_attempts=int(item.get("failed_login_attempts", 0)),
            lockout_until=parse_timestamp(item.get("lockout_until")),
            created_at=parse_timestamp(item.get("created_at")),
            updated_at=parse_timestamp(item.get("updated_at")),
        )

    def to_principal(self) -> "Principal":
        return Principal(
            id=self.user_id, email=self.email, name=self.name, is_admin=self.is_admin
        )


class Principal(BaseModel):
    """The authenticated caller, as resolved by the authorizer."""

    id: str
    email: str
    name: str
    is_admin: bool = False


class UserProfile(BaseModel):
    """Public view of a user (never includes credentials)."""

    id: str
    email: str
    name: str
    is_admin: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_user(cls, user: UserBase) -> "UserProfile":
        return cls(
            id=user.user_id,
            email=user.email,
            name=user.name,
            is_admin=user.is_admin,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)
    remember_me: bool = False


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class UserUpdate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class PasswordChange(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=1)


class PasswordReset(BaseModel):
    new_password: str = Field(..., min_length=1)


class RefreshToken(BaseModel):
    """
    Server-side record of an issued refresh token.

    The token itself is a signed JWT carrying token_id as its "jti"; only a
    SHA-256 hash of it is kept so a leaked table does not leak sessions.
    """

    token_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    token_hash: str
    is_revoked: bool = False
    expires_at: datetime
    created_at: datetime

    def is_usable(self, now: datetime) -> bool:
        return not self.is_revoked and self.expires_at > now

    def to_dynamodb_item(self) -> RefreshTokenItem:
        created_at = self.created_at.isoformat()
        return RefreshTokenItem(
            **refresh_token_key(self.user_id, self.token_id),
            token_id=self.token_id,
            user_id=self.user_id,
            token_hash=self.token_hash,
            is_revoked=self.is_revoked,
            expires_at=self.expires_at.isoformat(),
            created_at=created_at,
            GSI1PK=f"USER#{self.user_id}",
            GSI1SK=f"REFRESH#{created_at}#{self.token_id}",
        )

    @classmethod
    def from_dynamodb_item(cls, item: Dict[str, Any]) -> "RefreshToken":
        if not item:
            return None

        return cls(
            token_id=item["token_id"],
            user_id=item["user_id"],
            token_hash=item["token_hash"],
            is_revoked=item.get("is_revoked", False),
            expires_at=parse_timestamp(item["expires_at"]),
            created_at=parse_timestamp(item["created_at"]),
        )
