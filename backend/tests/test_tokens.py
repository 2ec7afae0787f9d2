import time

import pytest
from config.config import settings
from core.errors import InvalidSession, Unauthorized
from core.logging import logger
from models.auth import Account, DeviceSession
from services.revocation import RevokedTokenStore
from services.tokens import TokenService, token_expiry


@pytest.fixture
async def account(db):
    account = Account(email="tok@example.com", hashed_password="x")
    db.add(account)
    await db.commit()
    return account


async def make_session(db, tokens, account) -> DeviceSession:
    session = DeviceSession(
        account_id=account.id,
        refresh_token=tokens.issue_refresh_token(account.id),
        ip_address="127.0.0.1",
        device="pytest",
    )
    db.add(session)
    await db.commit()
    return session


async def test_access_token_carries_account_and_session(db, cache):
    tokens = TokenService(db, cache)
    claims = await tokens.verify(tokens.issue_access_token(7, session_id=3))
    assert claims.account_id == 7
    assert claims.session_id == 3
    assert claims.token_type == "access"


async def test_refresh_token_is_not_an_access_token(db, cache):
    tokens = TokenService(db, cache)
    with pytest.raises(Unauthorized):
        await tokens.verify(tokens.issue_refresh_token(7))


async def test_expired_access_token_rejected(db, cache, monkeypatch):
    monkeypatch.setattr(settings, "ACCESS_TOKEN_EXPIRE_MINUTES", -1)
    tokens = TokenService(db, cache)
    with pytest.raises(Unauthorized, match="expired"):
        await tokens.verify(tokens.issue_access_token(7))


async def test_revoked_token_rejected_and_ttl_bounded_by_expiry(db, cache):
    tokens = TokenService(db, cache)
    token = tokens.issue_access_token(7)

    result = await tokens.revoke(token)
    assert result.ok and result.value is True

    ttl = await cache.ttl(RevokedTokenStore.key(token))
    assert 0 < ttl <= token_expiry(token) - time.time() + 1

    with pytest.raises(Unauthorized, match="revoked"):
        await tokens.verify(token)


async def test_revoking_expired_token_stores_nothing(cache):
    store = RevokedTokenStore(cache)
    result = await store.add("stale", int(time.time()) - 10)
    assert result.ok and result.value is False
    assert cache.store == {}


async def test_revocation_reports_cache_outage(cache):
    cache.down = True
    store = RevokedTokenStore(cache)
    result = await store.add("token", int(time.time()) + 60)
    assert not result.ok
    assert result.error.provider == "redis"
    assert await store.contains("token") is False


async def test_outage_warning_is_formatted_with_the_error(cache):
    messages = []
    sink = logger.add(messages.append, level="WARNING", format="{message}")
    try:
        cache.down = True
        await RevokedTokenStore(cache).add("token", int(time.time()) + 60)
    finally:
        logger.remove(sink)

    assert any("Could not blacklist token: cache is down" in m for m in messages)
    assert not any("%s" in m for m in messages)


async def test_refresh_rotates_and_blacklists_old_token(db, cache, account):
    tokens = TokenService(db, cache, rotate=True)
    session = await make_session(db, tokens, account)
    old_refresh = session.refresh_token

    access, new_refresh = await tokens.refresh(old_refresh)

    assert new_refresh != old_refresh
    assert (await tokens.verify(access)).session_id == session.id
    await db.refresh(session)
    assert session.refresh_token == new_refresh
    with pytest.raises(Unauthorized):
        await tokens.refresh(old_refresh)


async def test_refresh_without_rotation_keeps_token(db, cache, account):
    tokens = TokenService(db, cache, rotate=False)
    session = await make_session(db, tokens, account)

    _, refresh_token = await tokens.refresh(session.refresh_token)
    assert refresh_token == session.refresh_token


async def test_refresh_requires_a_session_row(db, cache, account):
    tokens = TokenService(db, cache)
    with pytest.raises(InvalidSession):
        await tokens.refresh(tokens.issue_refresh_token(account.id))
