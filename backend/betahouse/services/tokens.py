"""Access/refresh token issuance, verification, revocation and refresh.

TOKEN FLOW:

1. LOGIN / SIGNUP / 2FA VERIFY:
   - A refresh token (7 days, signed with JWT_REFRESH_SECRET) is issued and
     stored on the device session row.
   - An access token (minutes, signed with JWT_SECRET) is issued carrying
     the account id and the session id (`sid`).

2. API REQUESTS:
   - The access token must verify, be unexpired and not be blacklisted.

3. REFRESH (/auth/refresh-token):
   - The refresh token must not be blacklisted, must match a session row
     exactly, and must verify against the refresh secret.
   - A new access token bound to the same session is issued. With rotation
     enabled the refresh token is replaced on the row and the old one is
     blacklisted.

4. REVOCATION:
   - Tokens are blacklisted in Redis until their own expiry.
"""

import secrets
from datetime import timedelta

import jwt
from config.config import settings
from core.errors import InvalidSession, Unauthorized
from core.logging import logger
from core.result import Ok, Result
from core.timeutil import utcnow
from jwt.exceptions import InvalidTokenError
from models.auth import DeviceSession
from redis.asyncio import Redis
from schemas.auth import TokenClaims
from services.revocation import RevokedTokenStore
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession


def _encode(claims: dict, secret: str, lifetime: timedelta) -> str:
    now = utcnow()
    to_encode = claims.copy()
    to_encode.update(
        {
            "iat": now,
            "exp": now + lifetime,
            # NOTE: A random jti keeps two tokens issued in the same second distinct.
            "jti": secrets.token_urlsafe(16),
        }
    )
    return jwt.encode(to_encode, secret, algorithm=settings.JWT_ALGORITHM)


def _decode(token: str, secret: str, expected_type: str) -> TokenClaims:
    """Verify signature, expiry and token type; raise `Unauthorized` otherwise."""

    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token has expired")
    except InvalidTokenError:
        raise Unauthorized("Invalid token")

    if payload.get("token_type") != expected_type:
        raise Unauthorized("Invalid token type")
    try:
        return TokenClaims(
            account_id=int(payload["sub"]),
            session_id=payload.get("sid"),
            token_type=expected_type,
            exp=int(payload["exp"]),
        )
    except (TypeError, ValueError):
        raise Unauthorized("Invalid token")


def token_expiry(token: str) -> int | None:
    """Read the `exp` claim without verifying the signature or the expiry."""

    try:
        payload = jwt.decode(token, options={"verify_signature": False})
    except InvalidTokenError:
        return None
    exp = payload.get("exp")
    return int(exp) if exp is not None else None


class TokenService:
    """Issues and checks tokens; refresh consults the session table."""

    def __init__(self, db: AsyncSession, cache: Redis, rotate: bool | None = None):
        self.db = db
        self.revoked = RevokedTokenStore(cache)
        self.rotate = settings.REFRESH_TOKEN_ROTATION if rotate is None else rotate

    def issue_access_token(self, account_id: int, session_id: int | None = None) -> str:
        claims = {"sub": str(account_id), "token_type": "access"}
        if session_id is not None:
            claims["sid"] = session_id
        return _encode(
            claims,
            settings.JWT_SECRET,
            timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        )

    def issue_refresh_token(self, account_id: int) -> str:
        return _encode(
            {"sub": str(account_id), "token_type": "refresh"},
            settings.JWT_REFRESH_SECRET,
            timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        )

    async def verify(self, token: str) -> TokenClaims:
        """Validate an access token.

        Raises:
            Unauthorized: If the token is malformed, expired, of the wrong
                type, or blacklisted.
        """
        claims = _decode(token, settings.JWT_SECRET, "access")
        if await self.is_revoked(token):
            logger.warning("Rejected blacklisted access token account_id={}", claims.account_id)
            raise Unauthorized("Token has been revoked")
        return claims

    async def is_revoked(self, token: str) -> bool:
        return await self.revoked.contains(token)

    async def revoke(self, token: str) -> Result[bool]:
        """Blacklist `token` for the rest of its lifetime.

        Returns:
            Result[bool]: see :meth:`RevokedTokenStore.add`; undecodable
                tokens yield ``Ok(False)``.
        """
        exp = token_expiry(token)
        if exp is None:
            logger.warning("Skipping revocation of undecodable token")
            return Ok(False)
        return await self.revoked.add(token, exp)

    async def refresh(self, refresh_token: str) -> tuple[str, str]:
        """Exchange a refresh token for a new access token.

        Args:
            refresh_token: The refresh token held by the client.

        Returns:
            tuple[str, str]: (access_token, refresh_token). The second item
                is a new token when rotation is enabled, otherwise the input.

        Raises:
            Unauthorized: If the token is blacklisted or fails verification.
            InvalidSession: If no session holds this refresh token.
        """
        if await self.is_revoked(refresh_token):
            raise Unauthorized("Refresh token has been revoked")

        result = await self.db.execute(
            select(DeviceSession).filter(DeviceSession.refresh_token == refresh_token)
        )
        session = result.scalars().first()
        if session is None:
            raise InvalidSession()

        claims = _decode(refresh_token, settings.JWT_REFRESH_SECRET, "refresh")
        if claims.account_id != session.account_id:
            raise InvalidSession()

        access_token = self.issue_access_token(session.account_id, session.id)
        session.last_active = utcnow()

        if not self.rotate:
            await self.db.commit()
            return access_token, refresh_token

        new_refresh_token = self.issue_refresh_token(session.account_id)
        session.refresh_token = new_refresh_token
        await self.db.commit()
        # NOTE: Blacklist after the row points at the new token; a failure
        # here leaves the old token without a session, which refresh rejects.
        await self.revoke(refresh_token)
        logger.info("Rotated refresh token session_id={}", session.id)
        return access_token, new_refresh_token
