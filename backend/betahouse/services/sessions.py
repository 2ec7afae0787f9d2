"""Per-device session registry.

A session binds an account to a (device, IP) pair and holds that device's
current refresh token. Revocation always blacklists the refresh token before
deleting the row, so an interrupted revoke leaves at worst an orphaned row
whose token is already unusable.
"""

from core.errors import NotFound
from core.logging import logger
from core.result import Ok
from core.security import RequestContext
from core.timeutil import utcnow
from models.auth import Account, DeviceSession
from services.geolocation import Geolocator
from services.tokens import TokenService
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession


class SessionRegistry:
    def __init__(self, db: AsyncSession, tokens: TokenService, geolocator: Geolocator):
        self.db = db
        self.tokens = tokens
        self.geolocator = geolocator

    async def upsert_session(
        self, account: Account, refresh_token: str, context: RequestContext
    ) -> DeviceSession:
        """Record a login from `context`, reusing the row for a known device.

        Args:
            account: The authenticated account.
            refresh_token: Freshly issued refresh token for this device.
            context: Client IP and user-agent of the request.

        Returns:
            DeviceSession: The created or updated session.
        """
        result = await self.db.execute(
            select(DeviceSession).filter(
                DeviceSession.account_id == account.id,
                DeviceSession.device == context.device,
                DeviceSession.ip_address == context.ip_address,
            )
        )
        session = result.scalars().first()

        if session is not None:
            session.refresh_token = refresh_token
            session.last_active = utcnow()
            await self.db.commit()
            logger.info("Reused session id={} for account_id={}", session.id, account.id)
            return session

        # NOTE: Geolocation is best-effort and must never block the login path.
        located = await self.geolocator.lookup(context.ip_address)
        location = located.value if isinstance(located, Ok) else None

        session = DeviceSession(
            account_id=account.id,
            refresh_token=refresh_token,
            ip_address=context.ip_address,
            device=context.device,
            location=location,
        )
        self.db.add(session)
        await self.db.commit()
        logger.info(
            "Created session id={} for account_id={} ip={}",
            session.id,
            account.id,
            context.ip_address,
        )
        return session

    async def get(self, session_id: int) -> DeviceSession | None:
        return await self.db.get(DeviceSession, session_id)

    async def list_sessions(self, account_id: int) -> list[DeviceSession]:
        result = await self.db.execute(
            select(DeviceSession)
            .filter(DeviceSession.account_id == account_id)
            .order_by(DeviceSession.last_active.desc(), DeviceSession.id.desc())
        )
        return list(result.scalars().all())

    async def revoke_session(self, session_id: int, account_id: int) -> None:
        """Revoke one of the caller's sessions.

        Raises:
            NotFound: If the session does not exist or belongs to someone else.
        """
        result = await self.db.execute(
            select(DeviceSession).filter(
                DeviceSession.id == session_id,
                DeviceSession.account_id == account_id,
            )
        )
        session = result.scalars().first()
        if session is None:
            raise NotFound("Session not found")

        await self.tokens.revoke(session.refresh_token)
        await self.db.delete(session)
        await self.db.commit()
        logger.info("Revoked session id={} account_id={}", session_id, account_id)

    async def revoke_all_other_sessions(
        self, account_id: int, current_session_id: int | None
    ) -> int:
        """Log out every device except the caller's current one.

        Returns:
            int: Number of sessions revoked.
        """
        query = select(DeviceSession).filter(DeviceSession.account_id == account_id)
        if current_session_id is not None:
            query = query.filter(DeviceSession.id != current_session_id)
        return await self._revoke_matching(query)

    async def revoke_all_sessions(self, account_id: int) -> int:
        """Log out every device, e.g. after a password reset."""
        return await self._revoke_matching(
            select(DeviceSession).filter(DeviceSession.account_id == account_id)
        )

    async def _revoke_matching(self, query) -> int:
        result = await self.db.execute(query)
        sessions = list(result.scalars().all())
        for session in sessions:
            await self.tokens.revoke(session.refresh_token)

        ids = [session.id for session in sessions]
        if ids:
            await self.db.execute(delete(DeviceSession).where(DeviceSession.id.in_(ids)))
            await self.db.commit()
        logger.info("Revoked {} session(s)", len(ids))
        return len(ids)
