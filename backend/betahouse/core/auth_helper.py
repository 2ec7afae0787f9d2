"""Request-bound authentication helpers.

Resolves the caller from a Bearer access token, enforces roles, and
extracts the client details recorded on device sessions.
"""

from dataclasses import dataclass
from typing import Annotated

from core.dependencies import get_token_service
from core.errors import Forbidden, Unauthorized
from core.logging import logger
from core.security import RequestContext
from db.session import get_db
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from models.auth import Account, Role
from schemas.auth import TokenClaims
from services.tokens import TokenService
from sqlalchemy.ext.asyncio import AsyncSession

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthContext:
    """The authenticated caller.

    Attributes:
        account: Account loaded for the token subject.
        claims: Decoded access token claims.
        token: The raw access token (needed to blacklist it on logout).
    """

    account: Account
    claims: TokenClaims
    token: str

    @property
    def session_id(self) -> int | None:
        return self.claims.session_id


async def get_current_auth(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    tokens: TokenService = Depends(get_token_service),
    db: AsyncSession = Depends(get_db),
) -> AuthContext:
    """Validate the Bearer access token and load its account.

    Raises:
        Unauthorized: If the header is missing, the token is invalid, expired
            or blacklisted, or the account no longer exists.
    """
    if credentials is None or not credentials.credentials:
        raise Unauthorized("No token provided")

    token = credentials.credentials.strip()
    claims = await tokens.verify(token)
    account = await db.get(Account, claims.account_id)
    if account is None:
        logger.warning("Token subject account_id={} no longer exists", claims.account_id)
        raise Unauthorized("User not found")
    return AuthContext(account=account, claims=claims, token=token)


async def get_current_account(
    auth: Annotated[AuthContext, Depends(get_current_auth)],
) -> Account:
    return auth.account


def require_roles(*roles: Role):
    """Build a dependency that admits only accounts holding one of `roles`.

    Usage:
        admin: Account = Depends(require_roles(Role.admin))
    """

    allowed = {Role(role).value for role in roles}

    async def checker(
        account: Annotated[Account, Depends(get_current_account)],
    ) -> Account:
        if account.role not in allowed:
            logger.warning(
                "Access denied account_id={} role={} required={}",
                account.id,
                account.role,
                sorted(allowed),
            )
            raise Forbidden("Access denied")
        return account

    return checker


def get_device_info(request: Request) -> str:
    """Extract device information (user-agent) from a request.

    Returns:
        str: Truncated user-agent string (max 255 characters).
    """

    user_agent = request.headers.get("user-agent", "Unknown")
    return user_agent[:255]


def get_client_ip(request: Request) -> str:
    """Determine the client's IP address from the request.

    Prefers the `X-Forwarded-For` header when present (typical when the app
    is behind a proxy/load-balancer), otherwise falls back to the direct
    client address exposed by the ASGI server.
    """

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "Unknown"


def get_request_context(request: Request) -> RequestContext:
    return RequestContext(ip_address=get_client_ip(request), device=get_device_info(request))
