import re
from datetime import timedelta

import pytest
from config.config import settings
from conftest import bearer, fetch_account, login, signup
from core.timeutil import utcnow
from models.auth import DeviceSession, TwoFactorChallenge
from sqlalchemy import func, select, update


def latest_code(mailer, email="ada@example.com") -> str:
    message = [m for m in mailer.to(email) if "2FA" in m["subject"]][-1]
    return re.search(r"\b(\d{6})\b", message["text"]).group(1)


async def enable_two_factor(client, mailer, token) -> None:
    response = await client.post("/auth/2fa/setup", headers=bearer(token))
    assert response.status_code == 200
    response = await client.post(
        "/auth/2fa/setup/verify", json={"code": latest_code(mailer)}, headers=bearer(token)
    )
    assert response.status_code == 200
    assert response.json()["twoFactorEnabled"] is True


@pytest.fixture
async def two_factor_account(client, mailer):
    body = await signup(client)
    await enable_two_factor(client, mailer, body["token"])
    return body


async def count_sessions(session_factory) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(DeviceSession))


async def test_status_reflects_setup(client, mailer):
    body = await signup(client)
    status = await client.get("/auth/2fa/status", headers=bearer(body["token"]))
    assert status.json() == {"twoFactorEnabled": False}

    await enable_two_factor(client, mailer, body["token"])
    status = await client.get("/auth/2fa/status", headers=bearer(body["token"]))
    assert status.json() == {"twoFactorEnabled": True}


async def test_login_pauses_for_code(client, two_factor_account):
    response = await login(client)
    assert response.status_code == 200
    body = response.json()
    assert body["requires2FA"] is True
    assert body["userId"] == two_factor_account["user"]["id"]
    assert "token" not in body


async def test_code_verification_issues_tokens_once(
    client, mailer, session_factory, two_factor_account
):
    user_id = two_factor_account["user"]["id"]
    before = await count_sessions(session_factory)

    await login(client, user_agent="Laptop")
    code = latest_code(mailer)

    wrong = "000000" if code != "000000" else "111111"
    response = await client.post("/auth/2fa/verify", json={"userId": user_id, "code": wrong})
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid or expired code"

    response = await client.post(
        "/auth/2fa/verify", json={"userId": user_id, "code": code}, headers={"User-Agent": "Laptop"}
    )
    assert response.status_code == 200
    assert response.json()["token"]
    assert await count_sessions(session_factory) == before + 1

    replay = await client.post("/auth/2fa/verify", json={"userId": user_id, "code": code})
    assert replay.status_code == 400


async def test_new_challenge_supersedes_previous(
    client, mailer, session_factory, two_factor_account
):
    user_id = two_factor_account["user"]["id"]
    await login(client)
    first = latest_code(mailer)
    response = await client.post("/auth/2fa/resend", json={"userId": user_id})
    assert response.status_code == 200
    second = latest_code(mailer)

    async with session_factory() as session:
        challenges = await session.scalar(
            select(func.count())
            .select_from(TwoFactorChallenge)
            .filter(TwoFactorChallenge.account_id == user_id)
        )
    assert challenges == 1

    if first != second:
        stale = await client.post("/auth/2fa/verify", json={"userId": user_id, "code": first})
        assert stale.status_code == 400
    fresh = await client.post("/auth/2fa/verify", json={"userId": user_id, "code": second})
    assert fresh.status_code == 200


async def test_expired_code_rejected(client, mailer, session_factory, two_factor_account):
    user_id = two_factor_account["user"]["id"]
    await login(client)
    code = latest_code(mailer)

    async with session_factory() as session:
        await session.execute(
            update(TwoFactorChallenge)
            .where(TwoFactorChallenge.account_id == user_id)
            .values(expires_at=utcnow() - timedelta(seconds=1))
        )
        await session.commit()

    response = await client.post("/auth/2fa/verify", json={"userId": user_id, "code": code})
    assert response.status_code == 400


async def test_code_burned_after_repeated_failures(
    client, mailer, monkeypatch, two_factor_account
):
    monkeypatch.setattr(settings, "TWO_FACTOR_MAX_ATTEMPTS", 3)
    user_id = two_factor_account["user"]["id"]
    await login(client)
    code = latest_code(mailer)
    wrong = "000000" if code != "000000" else "111111"

    for _ in range(3):
        response = await client.post("/auth/2fa/verify", json={"userId": user_id, "code": wrong})
        assert response.status_code == 400

    response = await client.post("/auth/2fa/verify", json={"userId": user_id, "code": code})
    assert response.status_code == 400


async def test_resend_requires_two_factor_enabled(client):
    body = await signup(client)
    response = await client.post("/auth/2fa/resend", json={"userId": body["user"]["id"]})
    assert response.status_code == 400

    missing = await client.post("/auth/2fa/resend", json={"userId": 9999})
    assert missing.status_code == 404


async def test_disable_restores_password_only_login(
    client, session_factory, two_factor_account
):
    response = await client.post("/auth/2fa/disable", headers=bearer(two_factor_account["token"]))
    assert response.status_code == 200
    assert response.json()["twoFactorEnabled"] is False

    account = await fetch_account(session_factory, "ada@example.com")
    assert account.two_factor_enabled is False
    assert "token" in (await login(client)).json()


async def test_code_email_failure_still_creates_challenge(
    client, mailer, session_factory, two_factor_account
):
    mailer.fail = True
    response = await login(client)
    assert response.json()["requires2FA"] is True

    async with session_factory() as session:
        challenges = await session.scalar(select(func.count()).select_from(TwoFactorChallenge))
    assert challenges == 1
