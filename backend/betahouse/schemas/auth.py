"""Pydantic schemas for authentication endpoints.

Includes login/signup request bodies, token responses, the public account
and session representations, and the decoded token claims. JSON keys are
camelCase on the wire (``refreshToken``, ``requires2FA``).
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase JSON keys."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class SignupRequest(CamelModel):
    """Request body for creating a new account."""

    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    name: Optional[str] = Field(default=None, max_length=120)
    phone: Optional[str] = Field(default=None, max_length=32)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class LoginRequest(CamelModel):
    email: EmailStr
    password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class EmailRequest(CamelModel):
    """Body carrying only an email (resend verification, forgot password)."""

    email: EmailStr

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class TwoFactorVerifyRequest(CamelModel):
    """Second login step: the account id returned by login plus the code."""

    user_id: int
    code: str = Field(min_length=1, max_length=12)


class TwoFactorResendRequest(CamelModel):
    user_id: int


class TwoFactorCodeRequest(CamelModel):
    """Code submitted by an authenticated caller confirming 2FA setup."""

    code: str = Field(min_length=1, max_length=12)


class RefreshTokenRequest(CamelModel):
    """Request body for refreshing the access token using a refresh token."""

    refresh_token: str


class ResetPasswordRequest(CamelModel):
    password: str = Field(min_length=8, max_length=128)


class PhoneUpdateRequest(CamelModel):
    phone: str = Field(min_length=5, max_length=32)


class AccountOut(CamelModel):
    """Public account representation returned by the API."""

    id: int
    email: str
    name: Optional[str] = None
    phone: Optional[str] = None
    role: str
    is_email_verified: bool
    is_phone_verified: bool
    two_factor_enabled: bool
    created_at: Optional[datetime] = None


class TokenPair(CamelModel):
    """Response issued after a completed login, signup or 2FA step."""

    token: str
    refresh_token: str
    user: AccountOut


class TwoFactorRequired(CamelModel):
    """Login response for accounts with two-factor enabled; carries no token."""

    requires_2fa: bool = Field(default=True, alias="requires2FA")
    user_id: int
    email: str


class RefreshedTokens(CamelModel):
    token: str
    refresh_token: str


class SessionOut(CamelModel):
    """A device session as listed to its owner."""

    id: int
    ip_address: Optional[str] = None
    device: Optional[str] = None
    location: Optional[dict[str, Any]] = None
    last_active: Optional[datetime] = None
    created_at: Optional[datetime] = None
    current: bool = False


class SessionList(CamelModel):
    sessions: list[SessionOut]


class MessageResponse(CamelModel):
    message: str


class RevokedSessions(MessageResponse):
    revoked: int


class TwoFactorStatus(CamelModel):
    two_factor_enabled: bool


class TwoFactorToggle(MessageResponse):
    two_factor_enabled: bool


class MeResponse(CamelModel):
    user: AccountOut


class PhoneUpdated(MessageResponse):
    user: AccountOut


class TokenClaims(BaseModel):
    """Data extracted from a decoded access token.

    Attributes:
        account_id: Subject of the token.
        session_id: Device session the token is bound to, if any.
        token_type: Either "access" or "refresh".
        exp: Expiry as a unix timestamp.
    """

    account_id: int
    session_id: Optional[int] = None
    token_type: str = "access"
    exp: int
