"""Authentication models: accounts, device sessions and two-factor challenges.

Accounts hold credentials and verification flags; a device session binds an
account to a device/IP pair and its current refresh token; a two-factor
challenge is a short-lived emailed code gating token issuance.
"""

import enum

from core.timeutil import utcnow
from db.session import Base
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import relationship


class Role(str, enum.Enum):
    user = "user"
    agent = "agent"
    admin = "admin"


class Account(Base):
    """Database model representing a user, agent or admin identity.

    Attributes:
        id: Primary key.
        email: Unique, lower-cased login email.
        phone: Optional unique phone number.
        name: Display name.
        hashed_password: Password hash; absent for federated-login accounts.
        role: One of `user`, `agent`, `admin`.
        is_email_verified: Set once the verification token is redeemed.
        is_phone_verified: Set when a phone number is confirmed.
        two_factor_enabled: Whether login requires an emailed code.
        verification_token: Active email-verification token, if any.
        reset_password_token: Active password reset token, if any.
        reset_password_expires: Expiry of the reset token.
        created_at: Account creation timestamp.
    """

    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    phone = Column(String(32), nullable=True, unique=True)
    name = Column(String(120), nullable=True)
    hashed_password = Column(String, nullable=True)
    role = Column(String(16), nullable=False, default=Role.user.value)
    is_email_verified = Column(Boolean, nullable=False, default=False)
    is_phone_verified = Column(Boolean, nullable=False, default=False)
    two_factor_enabled = Column(Boolean, nullable=False, default=False)
    verification_token = Column(String(64), nullable=True, unique=True)
    reset_password_token = Column(String(64), nullable=True, index=True)
    reset_password_expires = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    sessions = relationship(
        "DeviceSession",
        back_populates="account",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class DeviceSession(Base):
    """One login session per account and device/IP pairing.

    The refresh token is the lookup key for rotation and revocation, so it
    is unique across all sessions.

    Attributes:
        id: Primary key; embedded as `sid` in access tokens.
        account_id: Owning account.
        refresh_token: Current refresh token for this device.
        ip_address: Client IP the session was created from.
        device: User-agent descriptor (browser/OS).
        location: Best-effort geolocation of the IP, or None.
        last_active: Bumped on every login and refresh from this device.
        created_at: Session creation timestamp.
    """

    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(
        Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    refresh_token = Column(String, unique=True, nullable=False, index=True)
    ip_address = Column(String(64), nullable=True)
    device = Column(String(255), nullable=True)
    location = Column(JSON, nullable=True)
    last_active = Column(DateTime(timezone=True), default=utcnow)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    account = relationship("Account", back_populates="sessions")


class TwoFactorChallenge(Base):
    """Emailed one-time code; at most one live challenge per account.

    Attributes:
        id: Primary key.
        account_id: Owning account.
        code: Six decimal digits.
        method: Delivery channel, currently always `email`.
        expires_at: Code is rejected after this instant.
        verified: Reserved for audit; verified challenges are deleted.
        attempts: Wrong guesses made against this code.
        created_at: Issuance timestamp.
    """

    __tablename__ = "two_factor_challenges"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(
        Integer,
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    code = Column(String(6), nullable=False)
    method = Column(String(16), nullable=False, default="email")
    expires_at = Column(DateTime(timezone=True), nullable=False)
    verified = Column(Boolean, nullable=False, default=False)
    attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow)
