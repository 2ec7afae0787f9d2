"""Authentication routes: signup, login, refresh, logout and device sessions.

Endpoints:
    - POST /auth/signup: Create an account (returns access + refresh tokens)
    - GET /auth/verify-email: Redeem an email-verification token
    - POST /auth/resend-verification: Email a new verification link
    - POST /auth/login: Login, or start a two-factor challenge
    - POST /auth/refresh-token: Exchange a refresh token for a new access token
    - POST /auth/logout: Blacklist the access token and drop its session
    - GET /auth/me, PUT /auth/phone: Current account
    - POST /auth/forgot-password, POST /auth/reset-password/{token}
    - GET /auth/sessions, DELETE /auth/sessions/{id},
      POST /auth/sessions/logout-others: Device session management
"""

from typing import Annotated, Union

from core.auth_helper import (
    AuthContext,
    get_current_account,
    get_current_auth,
    get_request_context,
)
from core.dependencies import (
    get_account_service,
    get_session_registry,
    get_token_service,
)
from core.logging import logger
from core.security import RequestContext
from fastapi import APIRouter, Depends, Query
from models.auth import Account
from schemas.auth import (
    AccountOut,
    EmailRequest,
    LoginRequest,
    MeResponse,
    MessageResponse,
    PhoneUpdated,
    PhoneUpdateRequest,
    RefreshedTokens,
    RefreshTokenRequest,
    ResetPasswordRequest,
    RevokedSessions,
    SessionList,
    SessionOut,
    SignupRequest,
    TokenPair,
    TwoFactorRequired,
)
from services.accounts import AccountService, IssuedTokens, TwoFactorPending
from services.sessions import SessionRegistry
from services.tokens import TokenService

router = APIRouter(prefix="/auth", tags=["auth"])


def token_pair(issued: IssuedTokens) -> TokenPair:
    return TokenPair(
        token=issued.token,
        refresh_token=issued.refresh_token,
        user=AccountOut.model_validate(issued.account),
    )


@router.post("/signup", response_model=TokenPair)
async def signup(
    body: SignupRequest,
    context: Annotated[RequestContext, Depends(get_request_context)],
    accounts: AccountService = Depends(get_account_service),
):
    """Create an account and log it in on the calling device.

    Raises:
        ValidationError: 400 if the email or phone is already registered.
    """
    issued = await accounts.signup(body, context)
    return token_pair(issued)


@router.get("/verify-email", response_model=MessageResponse)
async def verify_email(
    token: Annotated[str, Query(min_length=1)],
    accounts: AccountService = Depends(get_account_service),
):
    await accounts.verify_email(token)
    return MessageResponse(message="Email verified successfully")


@router.post("/resend-verification", response_model=MessageResponse)
async def resend_verification(
    body: EmailRequest,
    accounts: AccountService = Depends(get_account_service),
):
    await accounts.resend_verification(body.email)
    return MessageResponse(message="Verification email sent")


@router.post("/login", response_model=Union[TokenPair, TwoFactorRequired])
async def login(
    body: LoginRequest,
    context: Annotated[RequestContext, Depends(get_request_context)],
    accounts: AccountService = Depends(get_account_service),
):
    """Authenticate with email and password.

    Returns:
        TokenPair when two-factor is disabled; otherwise TwoFactorRequired
        carrying the account id for the `/auth/2fa/verify` step.
    """
    outcome = await accounts.login(body.email, body.password, context)
    if isinstance(outcome, TwoFactorPending):
        return TwoFactorRequired(user_id=outcome.account_id, email=outcome.email)
    return token_pair(outcome)


@router.post("/refresh-token", response_model=RefreshedTokens)
async def refresh_access_token(
    body: RefreshTokenRequest,
    tokens: TokenService = Depends(get_token_service),
):
    """Exchange a refresh token for a new access token bound to its session."""
    access_token, refresh_token = await tokens.refresh(body.refresh_token)
    return RefreshedTokens(token=access_token, refresh_token=refresh_token)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    auth: Annotated[AuthContext, Depends(get_current_auth)],
    accounts: AccountService = Depends(get_account_service),
):
    await accounts.logout(auth.token, auth.claims)
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=MeResponse)
async def read_me(account: Annotated[Account, Depends(get_current_account)]):
    return MeResponse(user=AccountOut.model_validate(account))


@router.put("/phone", response_model=PhoneUpdated)
async def update_phone(
    body: PhoneUpdateRequest,
    account: Annotated[Account, Depends(get_current_account)],
    accounts: AccountService = Depends(get_account_service),
):
    account = await accounts.update_phone(account, body.phone)
    return PhoneUpdated(message="Phone verified", user=AccountOut.model_validate(account))


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    body: EmailRequest,
    accounts: AccountService = Depends(get_account_service),
):
    # NOTE: Same answer for known and unknown emails to avoid account probing.
    await accounts.forgot_password(body.email)
    return MessageResponse(message="If the email exists, a reset link has been sent")


@router.post("/reset-password/{token}", response_model=MessageResponse)
async def reset_password(
    token: str,
    body: ResetPasswordRequest,
    accounts: AccountService = Depends(get_account_service),
):
    await accounts.reset_password(token, body.password)
    return MessageResponse(message="Password has been reset")


@router.get("/sessions", response_model=SessionList)
async def list_sessions(
    auth: Annotated[AuthContext, Depends(get_current_auth)],
    sessions: SessionRegistry = Depends(get_session_registry),
):
    """Return the caller's device sessions, flagging the current one."""
    rows = await sessions.list_sessions(auth.account.id)
    items = []
    for row in rows:
        item = SessionOut.model_validate(row)
        item.current = row.id == auth.session_id
        items.append(item)
    return SessionList(sessions=items)


@router.delete("/sessions/{session_id}", response_model=MessageResponse)
async def revoke_session(
    session_id: int,
    auth: Annotated[AuthContext, Depends(get_current_auth)],
    sessions: SessionRegistry = Depends(get_session_registry),
):
    await sessions.revoke_session(session_id, auth.account.id)
    return MessageResponse(message="Session revoked")


@router.post("/sessions/logout-others", response_model=RevokedSessions)
async def logout_other_sessions(
    auth: Annotated[AuthContext, Depends(get_current_auth)],
    sessions: SessionRegistry = Depends(get_session_registry),
):
    """Revoke every session except the one the caller's token is bound to."""
    revoked = await sessions.revoke_all_other_sessions(auth.account.id, auth.session_id)
    logger.info("Account id={} logged out {} other session(s)", auth.account.id, revoked)
    return RevokedSessions(message="All other sessions revoked", revoked=revoked)
