"""FastAPI dependency providers wiring services to the DB, cache and providers.

FastAPI caches each dependency per request, so every service built for one
request shares the same database session.
"""

from db.cache import get_cache
from db.session import get_db
from fastapi import Depends
from redis.asyncio import Redis
from services.accounts import AccountService
from services.email import Mailer, get_mailer
from services.geolocation import Geolocator, get_geolocator
from services.notifications import NotificationDispatcher
from services.presence import PresenceRegistry, get_presence
from services.sessions import SessionRegistry
from services.tokens import TokenService
from services.two_factor import TwoFactorService
from sqlalchemy.ext.asyncio import AsyncSession


def get_token_service(
    db: AsyncSession = Depends(get_db),
    cache: Redis = Depends(get_cache),
) -> TokenService:
    return TokenService(db, cache)


def get_session_registry(
    db: AsyncSession = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
    geolocator: Geolocator = Depends(get_geolocator),
) -> SessionRegistry:
    return SessionRegistry(db, tokens, geolocator)


def get_two_factor_service(
    db: AsyncSession = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
) -> TwoFactorService:
    return TwoFactorService(db, mailer)


def get_notification_dispatcher(
    db: AsyncSession = Depends(get_db),
    cache: Redis = Depends(get_cache),
    mailer: Mailer = Depends(get_mailer),
    presence: PresenceRegistry = Depends(get_presence),
) -> NotificationDispatcher:
    return NotificationDispatcher(db, cache, mailer, presence)


def get_account_service(
    db: AsyncSession = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
    sessions: SessionRegistry = Depends(get_session_registry),
    two_factor: TwoFactorService = Depends(get_two_factor_service),
    notifications: NotificationDispatcher = Depends(get_notification_dispatcher),
    mailer: Mailer = Depends(get_mailer),
) -> AccountService:
    return AccountService(db, tokens, sessions, two_factor, notifications, mailer)
