"""Account lifecycle: signup, login, email verification and password reset.

This module orchestrates the credential store, session registry, token
service, two-factor flow and notification dispatcher for the auth routes.
No step here opens a multi-row transaction; each write commits on its own.
"""

import uuid
from dataclasses import dataclass
from datetime import timedelta

from config.config import settings
from core.errors import Conflict, InvalidOrExpired, NotFound, Unauthorized, ValidationError
from core.logging import logger
from core.security import (
    RequestContext,
    generate_opaque_token,
    get_password_hash,
    verify_password,
)
from core.timeutil import as_utc, utcnow
from models.auth import Account
from schemas.auth import SignupRequest, TokenClaims
from schemas.notifications import AccountRef, NotificationCategory
from services.email import Mailer
from services.notifications import NotificationDispatcher
from services.sessions import SessionRegistry
from services.tokens import TokenService
from services.two_factor import TwoFactorService
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

WELCOME_TITLE = "Welcome to BetaHouse"
VERIFY_EMAIL_TITLE = "Verify Your Email"
EMAIL_VERIFIED_TITLE = "Email Verified"


@dataclass
class IssuedTokens:
    """Tokens handed to a client after a completed login."""

    token: str
    refresh_token: str
    account: Account
    session_id: int


@dataclass
class TwoFactorPending:
    """Login paused until the emailed code is verified; no token issued."""

    account_id: int
    email: str


class AccountService:
    def __init__(
        self,
        db: AsyncSession,
        tokens: TokenService,
        sessions: SessionRegistry,
        two_factor: TwoFactorService,
        notifications: NotificationDispatcher,
        mailer: Mailer,
    ):
        self.db = db
        self.tokens = tokens
        self.sessions = sessions
        self.two_factor = two_factor
        self.notifications = notifications
        self.mailer = mailer

    async def get_by_email(self, email: str) -> Account | None:
        result = await self.db.execute(
            select(Account).filter(Account.email == email.strip().lower())
        )
        return result.scalars().first()

    async def _phone_taken(self, phone: str, exclude_id: int | None = None) -> bool:
        query = select(Account.id).filter(Account.phone == phone)
        if exclude_id is not None:
            query = query.filter(Account.id != exclude_id)
        return (await self.db.execute(query)).first() is not None

    async def _signup_collision(self, email: str, phone: str | None) -> str | None:
        """Return the message for whichever unique field is already taken."""
        if await self.get_by_email(email) is not None:
            return "Email already exists"
        if phone and await self._phone_taken(phone):
            return "Phone number already exists"
        return None

    async def issue_tokens(self, account: Account, context: RequestContext) -> IssuedTokens:
        """Create or reuse the device session and issue a token pair."""
        refresh_token = self.tokens.issue_refresh_token(account.id)
        session = await self.sessions.upsert_session(account, refresh_token, context)
        token = self.tokens.issue_access_token(account.id, session.id)
        return IssuedTokens(token, refresh_token, account, session.id)

    async def signup(self, data: SignupRequest, context: RequestContext) -> IssuedTokens:
        """Create an account, email its verification link and log it in.

        Raises:
            ValidationError: 400 if the email or phone number is already
                registered.
        """
        taken = await self._signup_collision(data.email, data.phone)
        if taken:
            raise ValidationError(taken)

        verification_token = uuid.uuid4().hex
        account = Account(
            email=data.email,
            phone=data.phone or None,
            name=data.name,
            hashed_password=get_password_hash(data.password),
            verification_token=verification_token,
            is_email_verified=False,
        )
        self.db.add(account)
        try:
            await self.db.commit()
        except IntegrityError:
            # NOTE: A concurrent signup won the unique constraint race.
            await self.db.rollback()
            taken = await self._signup_collision(data.email, data.phone)
            raise ValidationError(taken or "Account already exists")
        logger.info("Created account id={} email={}", account.id, account.email)

        sent = await self.mailer.send_verification(account.email, account.name, verification_token)
        if not sent.ok:
            logger.warning("Verification email degraded account_id={}: {}", account.id, sent.error)

        issued = await self.issue_tokens(account, context)

        await self.notifications.notify(
            account.id,
            NotificationCategory.system,
            f"Welcome {account.name or 'User'}! We're excited to have you onboard.",
            title=WELCOME_TITLE,
        )
        await self.notifications.notify(
            account.id,
            NotificationCategory.system,
            "Please verify your email to unlock all features on BetaHouse.",
            title=VERIFY_EMAIL_TITLE,
        )
        return issued

    async def login(
        self, email: str, password: str, context: RequestContext
    ) -> IssuedTokens | TwoFactorPending:
        """Check credentials and either issue tokens or start a 2FA challenge.

        Raises:
            Unauthorized: If the email is unknown or the password is wrong.
        """
        account = await self.get_by_email(email)
        if account is None or not verify_password(password, account.hashed_password):
            logger.warning("Failed login attempt for email={}", email)
            raise Unauthorized("Invalid credentials")

        if account.two_factor_enabled:
            await self.two_factor.issue_challenge(account)
            return TwoFactorPending(account.id, account.email)

        issued = await self.issue_tokens(account, context)
        logger.info("Account id={} logged in", account.id)
        return issued

    async def complete_two_factor_login(
        self, account_id: int, code: str, context: RequestContext
    ) -> IssuedTokens:
        account = await self.two_factor.verify_code(account_id, code)
        issued = await self.issue_tokens(account, context)
        logger.info("Account id={} logged in with 2FA", account.id)
        return issued

    async def verify_email(self, token: str) -> Account:
        """Redeem an email-verification token.

        Raises:
            ValidationError: If the token is unknown or was already redeemed.
        """
        if not token:
            raise ValidationError("Verification token is required")
        result = await self.db.execute(
            select(Account).filter(Account.verification_token == token)
        )
        account = result.scalars().first()
        if account is None:
            raise ValidationError("Invalid or expired token")

        account.is_email_verified = True
        account.verification_token = None
        await self.db.commit()

        await self.notifications.delete_unread(
            account.id, NotificationCategory.system, VERIFY_EMAIL_TITLE
        )
        await self.notifications.notify(
            account.id,
            NotificationCategory.system,
            "Your email has been verified. You now have full access to all features.",
            title=EMAIL_VERIFIED_TITLE,
        )
        logger.info("Email verified for account_id={}", account.id)
        return account

    async def resend_verification(self, email: str) -> None:
        account = await self.get_by_email(email)
        if account is None:
            raise NotFound("User not found")
        if account.is_email_verified:
            raise ValidationError("Email already verified")

        account.verification_token = uuid.uuid4().hex
        await self.db.commit()
        sent = await self.mailer.send_verification(
            account.email, account.name, account.verification_token
        )
        if not sent.ok:
            logger.warning("Verification email degraded account_id={}: {}", account.id, sent.error)

    async def forgot_password(self, email: str) -> None:
        """Email a reset link; unknown addresses are ignored silently."""
        account = await self.get_by_email(email)
        if account is None:
            logger.info("Password reset requested for unknown email")
            return

        account.reset_password_token = generate_opaque_token()
        account.reset_password_expires = utcnow() + timedelta(
            minutes=settings.PASSWORD_RESET_TTL_MINUTES
        )
        await self.db.commit()
        sent = await self.mailer.send_password_reset(
            account.email, account.name, account.reset_password_token
        )
        if not sent.ok:
            logger.warning("Reset email degraded account_id={}: {}", account.id, sent.error)

    async def reset_password(self, token: str, password: str) -> int:
        """Set a new password and log every device out.

        Returns:
            int: Number of sessions revoked.

        Raises:
            InvalidOrExpired: If the reset token is unknown or has expired.
        """
        result = await self.db.execute(
            select(Account).filter(Account.reset_password_token == token)
        )
        account = result.scalars().first()
        if (
            account is None
            or account.reset_password_expires is None
            or as_utc(account.reset_password_expires) < utcnow()
        ):
            raise InvalidOrExpired("Invalid or expired token")

        account.hashed_password = get_password_hash(password)
        account.reset_password_token = None
        account.reset_password_expires = None
        await self.db.commit()

        revoked = await self.sessions.revoke_all_sessions(account.id)
        logger.info("Password reset for account_id={}, revoked {} session(s)", account.id, revoked)
        return revoked

    async def update_phone(self, account: Account, phone: str) -> Account:
        if await self._phone_taken(phone, exclude_id=account.id):
            raise Conflict("Phone number already exists")
        account.phone = phone
        account.is_phone_verified = True
        await self.db.commit()

        await self.notifications.notify(
            account.id,
            NotificationCategory.profile_updated,
            "Your phone number was updated.",
            related=AccountRef(id=str(account.id)),
            title="Profile Updated",
        )
        return account

    async def logout(self, access_token: str, claims: TokenClaims) -> None:
        """Invalidate the access token and, if bound, its device session."""
        await self.tokens.revoke(access_token)
        if claims.session_id is None:
            return

        session = await self.sessions.get(claims.session_id)
        if session is not None and session.account_id == claims.account_id:
            await self.sessions.revoke_session(session.id, claims.account_id)
        logger.info("Account id={} logged out", claims.account_id)
