"""Application settings loaded from environment for the BetaHouse backend.

This module defines the :class:`Settings` model (based on Pydantic's
``BaseSettings``) and instantiates ``settings`` which is imported across
the application to access configuration values.

Notable fields include the database and Redis URLs, the two JWT signing
secrets, two-factor timing and the outbound email/geolocation providers.
"""

from pathlib import Path

from pydantic_settings import BaseSettings

BACKEND_DIR = Path(__file__).resolve().parent.parent.parent
ENV_FILE = BACKEND_DIR / ".env"


class Settings(BaseSettings):
    """Environment-backed application settings.

    Attributes:
        APP_NAME: Display name used in emails and the landing response.
        DATABASE_URL_ASYNC: Async database URL for SQLAlchemy.
        DB_ECHO: Echo SQL statements to the log.
        REDIS_URL: Redis server holding revoked tokens and cached notifications.

        JWT_SECRET: Signing secret for access tokens.
        JWT_REFRESH_SECRET: Separate signing secret for refresh tokens.
        JWT_ALGORITHM: JWT signing algorithm.
        ACCESS_TOKEN_EXPIRE_MINUTES: Access token lifetime in minutes.
        REFRESH_TOKEN_EXPIRE_DAYS: Refresh token lifetime in days.
        REFRESH_TOKEN_ROTATION: Issue a new refresh token on every refresh.

        TWO_FACTOR_CODE_TTL_MINUTES: Lifetime of an emailed two-factor code.
        TWO_FACTOR_MAX_ATTEMPTS: Wrong guesses tolerated before a code is burned.
        PASSWORD_RESET_TTL_MINUTES: Lifetime of a password reset token.
        NOTIFICATION_CACHE_TTL_SECONDS: TTL of cached notification entries.

        MAILGUN_API_KEY: Mailgun API key; email is skipped when empty.
        MAILGUN_DOMAIN: Mailgun sending domain.
        MAILGUN_BASE_URL: Mailgun API base URL (US or EU region).
        MAIL_FROM_EMAIL: Sender address.
        MAIL_FROM_NAME: Sender display name.
        FRONTEND_URL: Base URL used to build links in emails.

        IPINFO_TOKEN: Token for the ipinfo.io geolocation API.
        HTTP_TIMEOUT_SECONDS: Timeout for outbound provider calls.
        CORS_ORIGINS: Origins allowed by the CORS middleware.
    """

    APP_NAME: str = "BetaHouse"

    DATABASE_URL_ASYNC: str
    DB_ECHO: bool = False
    REDIS_URL: str

    JWT_SECRET: str
    JWT_REFRESH_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    REFRESH_TOKEN_ROTATION: bool = True

    TWO_FACTOR_CODE_TTL_MINUTES: int = 5
    TWO_FACTOR_MAX_ATTEMPTS: int = 5
    PASSWORD_RESET_TTL_MINUTES: int = 60
    NOTIFICATION_CACHE_TTL_SECONDS: int = 24 * 60 * 60

    MAILGUN_API_KEY: str = ""
    MAILGUN_DOMAIN: str = ""
    MAILGUN_BASE_URL: str = "https://api.mailgun.net"
    MAIL_FROM_EMAIL: str = "noreply@betahouse.local"
    MAIL_FROM_NAME: str = "BetaHouse"
    FRONTEND_URL: str = "http://localhost:3000"

    IPINFO_TOKEN: str = ""
    HTTP_TIMEOUT_SECONDS: float = 10.0

    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    class Config:
        env_file = str(ENV_FILE)
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
