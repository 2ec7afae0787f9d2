"""Two-factor routes: completing a paused login and managing the setting."""

from typing import Annotated

from api.routes.auth import token_pair
from core.auth_helper import get_current_account, get_request_context
from core.dependencies import get_account_service, get_two_factor_service
from core.security import RequestContext
from fastapi import APIRouter, Depends
from models.auth import Account
from schemas.auth import (
    MessageResponse,
    TokenPair,
    TwoFactorCodeRequest,
    TwoFactorResendRequest,
    TwoFactorStatus,
    TwoFactorToggle,
    TwoFactorVerifyRequest,
)
from services.accounts import AccountService
from services.two_factor import TwoFactorService

router = APIRouter(prefix="/auth/2fa", tags=["two-factor"])


@router.post("/verify", response_model=TokenPair)
async def verify_login_code(
    body: TwoFactorVerifyRequest,
    context: Annotated[RequestContext, Depends(get_request_context)],
    accounts: AccountService = Depends(get_account_service),
):
    """Second login step: trade the emailed code for tokens.

    Raises:
        InvalidOrExpired: 400 if the code is wrong, expired or already used.
    """
    issued = await accounts.complete_two_factor_login(body.user_id, body.code, context)
    return token_pair(issued)


@router.post("/resend", response_model=MessageResponse)
async def resend_login_code(
    body: TwoFactorResendRequest,
    two_factor: TwoFactorService = Depends(get_two_factor_service),
):
    await two_factor.resend(body.user_id)
    return MessageResponse(message="2FA code resent successfully")


@router.post("/setup", response_model=MessageResponse)
async def start_setup(
    account: Annotated[Account, Depends(get_current_account)],
    two_factor: TwoFactorService = Depends(get_two_factor_service),
):
    await two_factor.start_setup(account)
    return MessageResponse(message="2FA code sent to your email")


@router.post("/setup/verify", response_model=TwoFactorToggle)
async def confirm_setup(
    body: TwoFactorCodeRequest,
    account: Annotated[Account, Depends(get_current_account)],
    two_factor: TwoFactorService = Depends(get_two_factor_service),
):
    await two_factor.confirm_setup(account, body.code)
    return TwoFactorToggle(
        message="Two-factor authentication enabled", two_factor_enabled=True
    )


@router.post("/disable", response_model=TwoFactorToggle)
async def disable(
    account: Annotated[Account, Depends(get_current_account)],
    two_factor: TwoFactorService = Depends(get_two_factor_service),
):
    await two_factor.disable(account)
    return TwoFactorToggle(
        message="Two-factor authentication disabled", two_factor_enabled=False
    )


@router.get("/status", response_model=TwoFactorStatus)
async def status(
    account: Annotated[Account, Depends(get_current_account)],
    two_factor: TwoFactorService = Depends(get_two_factor_service),
):
    return TwoFactorStatus(two_factor_enabled=two_factor.status(account))
