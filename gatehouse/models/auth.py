"""Auth request models with validation."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

MIN_PASSWORD_LENGTH = 8


def _password_not_blank(v: str) -> str:
    """Reject passwords that are empty or whitespace only."""
    if not v.strip():
        raise ValueError("Password cannot be empty or whitespace only")
    return v


class CamelModel(BaseModel):
    """Request body accepting camelCase keys (snake_case also allowed)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LoginRequest(CamelModel):
    """Login credentials.

    Attributes:
        email: Account email address
        password: Account password (not policy-checked on login)
    """

    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=1)


class PasswordResetRequest(CamelModel):
    """Request a password reset email."""

    email: str = Field(..., min_length=3, max_length=320)


class PasswordResetBody(CamelModel):
    """Consume a password reset token.

    Attributes:
        token: Reset token from the emailed link
        password: New password
        confirm_password: Must equal ``password``
    """

    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)
    confirm_password: str

    @field_validator("password")
    @classmethod
    def password_not_empty(cls, v: str) -> str:
        """Ensure password is not empty or whitespace only."""
        return _password_not_blank(v)


class UpdatePasswordRequest(CamelModel):
    """Change the password of the logged-in user."""

    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)
    confirm_new_password: str

    @field_validator("new_password")
    @classmethod
    def password_not_empty(cls, v: str) -> str:
        """Ensure password is not empty or whitespace only."""
        return _password_not_blank(v)


class CreateAccessTokenRequest(CamelModel):
    """Create a named static access token."""

    name: str = Field(..., min_length=1, max_length=255)


class SetupRequest(CamelModel):
    """Initial admin account setup request.

    Attributes:
        email: Admin email address
        password: Admin password (min 8 chars)
        first_name: Optional given name
        last_name: Optional family name
    """

    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)
    first_name: Optional[str] = Field(default=None, max_length=255)
    last_name: Optional[str] = Field(default=None, max_length=255)

    @field_validator("email")
    @classmethod
    def email_has_at_sign(cls, v: str) -> str:
        """Minimal shape check; delivery proves the rest."""
        if "@" not in v:
            raise ValueError("Email must contain '@'")
        return v.strip()

    @field_validator("password")
    @classmethod
    def password_not_empty(cls, v: str) -> str:
        """Ensure password is not empty or whitespace only."""
        return _password_not_blank(v)
