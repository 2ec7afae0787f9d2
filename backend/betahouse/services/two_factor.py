"""Emailed two-factor challenges.

States per account: no challenge -> pending -> verified (deleted) or
expired/superseded. Issuing a challenge deletes every earlier one, so an
account never has more than one live code. Wrong guesses are counted and
the code is burned after ``TWO_FACTOR_MAX_ATTEMPTS``.
"""

from datetime import timedelta

from config.config import settings
from core.errors import InvalidOrExpired, NotFound, ValidationError
from core.logging import logger
from core.security import TWO_FACTOR_CODE_LENGTH, codes_match, generate_numeric_code
from core.timeutil import as_utc, utcnow
from models.auth import Account, TwoFactorChallenge
from services.email import Mailer
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession


def generate_code() -> str:
    return generate_numeric_code(TWO_FACTOR_CODE_LENGTH)


class TwoFactorService:
    def __init__(self, db: AsyncSession, mailer: Mailer):
        self.db = db
        self.mailer = mailer

    async def _clear(self, account_id: int) -> None:
        await self.db.execute(
            delete(TwoFactorChallenge).where(TwoFactorChallenge.account_id == account_id)
        )

    async def issue_challenge(self, account: Account) -> TwoFactorChallenge:
        """Replace any live challenge with a fresh code and email it.

        Args:
            account: Account the code is bound to.

        Returns:
            TwoFactorChallenge: The stored challenge.
        """
        code = generate_code()
        await self._clear(account.id)
        challenge = TwoFactorChallenge(
            account_id=account.id,
            code=code,
            method="email",
            expires_at=utcnow() + timedelta(minutes=settings.TWO_FACTOR_CODE_TTL_MINUTES),
        )
        self.db.add(challenge)
        await self.db.commit()
        logger.info("Issued 2FA challenge for account_id={}", account.id)

        sent = await self.mailer.send_two_factor_code(account.email, code)
        if not sent.ok:
            logger.warning(
                "2FA code email degraded for account_id={}: {}", account.id, sent.error
            )
        return challenge

    async def verify_code(self, account_id: int, code: str) -> Account:
        """Consume the live challenge if `code` matches.

        Returns:
            Account: The account the challenge belonged to.

        Raises:
            InvalidOrExpired: If there is no live challenge, it has expired,
                or the code does not match.
        """
        result = await self.db.execute(
            select(TwoFactorChallenge)
            .filter(TwoFactorChallenge.account_id == account_id)
            .order_by(TwoFactorChallenge.id.desc())
        )
        challenge = result.scalars().first()
        if challenge is None:
            raise InvalidOrExpired()

        if utcnow() > as_utc(challenge.expires_at):
            await self._clear(account_id)
            await self.db.commit()
            logger.info("Expired 2FA challenge for account_id={}", account_id)
            raise InvalidOrExpired()

        if not codes_match(challenge.code, code):
            challenge.attempts += 1
            if challenge.attempts >= settings.TWO_FACTOR_MAX_ATTEMPTS:
                await self._clear(account_id)
                logger.warning(
                    "2FA challenge burned after {} failed attempts account_id={}",
                    challenge.attempts,
                    account_id,
                )
            await self.db.commit()
            raise InvalidOrExpired()

        # Single-use: remove every challenge for the account
        await self._clear(account_id)
        await self.db.commit()
        logger.info("2FA challenge verified for account_id={}", account_id)
        account = await self.db.get(Account, account_id)
        if account is None:
            raise NotFound("User not found")
        return account

    async def resend(self, account_id: int) -> None:
        """Issue a new code for a pending login.

        Raises:
            NotFound: If the account does not exist.
            ValidationError: If two-factor is not enabled for the account.
        """
        account = await self.db.get(Account, account_id)
        if account is None:
            raise NotFound("User not found")
        if not account.two_factor_enabled:
            raise ValidationError("Two-factor authentication is not enabled")
        await self.issue_challenge(account)

    async def start_setup(self, account: Account) -> None:
        await self.issue_challenge(account)

    async def confirm_setup(self, account: Account, code: str) -> None:
        await self.verify_code(account.id, code)
        account.two_factor_enabled = True
        await self.db.commit()
        logger.info("Two-factor enabled for account_id={}", account.id)

    def status(self, account: Account) -> bool:
        return bool(account.two_factor_enabled)

    async def disable(self, account: Account) -> None:
        account.two_factor_enabled = False
        await self._clear(account.id)
        await self.db.commit()
        logger.info("Two-factor disabled for account_id={}", account.id)
