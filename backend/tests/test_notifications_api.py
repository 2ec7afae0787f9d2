import pytest
from conftest import RecordingMailer, bearer, fetch_account, signup, update_account
from models.notifications import Notification
from schemas.notifications import MessageRef, NotificationCategory
from services.notifications import NotificationCache, NotificationDispatcher
from sqlalchemy import func, select


class FakeConnection:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.frames: list[dict] = []

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("socket closed")
        self.frames.append(data)


@pytest.fixture
async def ada(client):
    return await signup(client)


@pytest.fixture
async def admin(client, session_factory):
    body = await signup(client, email="admin@example.com")
    await update_account(session_factory, "admin@example.com", role="admin")
    return body


async def test_signup_creates_welcome_and_verify_notifications(client, ada):
    response = await client.get("/notifications", headers=bearer(ada["token"]))
    assert response.status_code == 200
    page = response.json()
    assert page["total"] == 2
    titles = {n["title"] for n in page["notifications"]}
    assert titles == {"Welcome to BetaHouse", "Verify Your Email"}
    assert all(n["category"] == "system" and n["read"] is False for n in page["notifications"])


async def test_verifying_email_swaps_reminder_for_confirmation(client, session_factory, ada):
    account = await fetch_account(session_factory, "ada@example.com")
    await client.get("/auth/verify-email", params={"token": account.verification_token})

    page = (await client.get("/notifications", headers=bearer(ada["token"]))).json()
    titles = {n["title"] for n in page["notifications"]}
    assert titles == {"Welcome to BetaHouse", "Email Verified"}


async def test_pagination_is_newest_first(db, cache, mailer, presence, client, ada):
    dispatcher = NotificationDispatcher(db, cache, mailer, presence)
    for index in range(5):
        await dispatcher.notify(ada["user"]["id"], NotificationCategory.message, f"msg {index}")

    first = (await client.get("/notifications?page=1&limit=3", headers=bearer(ada["token"]))).json()
    second = (await client.get("/notifications?page=3&limit=3", headers=bearer(ada["token"]))).json()

    assert first["total"] == 7
    assert first["pages"] == 3
    assert [n["content"] for n in first["notifications"]] == ["msg 4", "msg 3", "msg 2"]
    assert second["page"] == 3
    assert len(second["notifications"]) == 1


async def test_listing_falls_back_to_database_when_cache_down(client, cache, ada):
    cache.down = True
    response = await client.get("/notifications", headers=bearer(ada["token"]))
    assert response.status_code == 200
    assert response.json()["total"] == 2


async def test_listing_reads_database_when_cache_incomplete(client, cache, ada):
    for key in [k for k in cache.store if k.startswith("notifications:")][:1]:
        del cache.store[key]

    page = (await client.get("/notifications", headers=bearer(ada["token"]))).json()
    assert page["total"] == 2
    assert len(page["notifications"]) == 2


async def test_mark_read_and_read_all(client, cache, ada):
    page = (await client.get("/notifications", headers=bearer(ada["token"]))).json()
    first_id = page["notifications"][0]["id"]

    response = await client.patch(f"/notifications/{first_id}/read", headers=bearer(ada["token"]))
    assert response.status_code == 200

    response = await client.patch("/notifications/read-all", headers=bearer(ada["token"]))
    assert response.status_code == 200
    assert response.json()["updated"] == 1

    page = (await client.get("/notifications", headers=bearer(ada["token"]))).json()
    assert all(n["read"] for n in page["notifications"])

    cached = await NotificationCache(cache).all_for(ada["user"]["id"])
    assert cached and all(n.read for n in cached)


async def test_delete_removes_row_and_cache_entry(client, cache, session_factory, ada):
    page = (await client.get("/notifications", headers=bearer(ada["token"]))).json()
    target = page["notifications"][0]["id"]

    response = await client.delete(f"/notifications/{target}", headers=bearer(ada["token"]))
    assert response.status_code == 200
    assert NotificationCache.key(ada["user"]["id"], target) not in cache.store

    async with session_factory() as session:
        remaining = await session.scalar(select(func.count()).select_from(Notification))
    assert remaining == 1


async def test_cannot_touch_another_accounts_notification(client, ada):
    bob = await signup(client, email="bob@example.com")
    page = (await client.get("/notifications", headers=bearer(ada["token"]))).json()
    target = page["notifications"][0]["id"]

    assert (
        await client.patch(f"/notifications/{target}/read", headers=bearer(bob["token"]))
    ).status_code == 404
    assert (
        await client.delete(f"/notifications/{target}", headers=bearer(bob["token"]))
    ).status_code == 404


async def test_notification_persists_when_email_fails(db, cache, presence, client, ada):
    dispatcher = NotificationDispatcher(db, cache, RecordingMailer(fail=True), presence)
    await dispatcher.notify(ada["user"]["id"], NotificationCategory.property, "Price dropped")

    page = (await client.get("/notifications", headers=bearer(ada["token"]))).json()
    assert page["total"] == 3
    assert page["notifications"][0]["content"] == "Price dropped"


async def test_online_recipient_receives_live_push(db, cache, mailer, presence, ada):
    connection = FakeConnection()
    presence.register(ada["user"]["id"], connection)
    dispatcher = NotificationDispatcher(db, cache, mailer, presence)

    notification = await dispatcher.notify(
        ada["user"]["id"],
        NotificationCategory.message,
        "New message from an agent",
        related=MessageRef(id="m-42"),
        title="New Message",
    )

    assert len(connection.frames) == 1
    frame = connection.frames[0]
    assert frame["event"] == "notification"
    assert frame["data"]["id"] == notification.id
    assert frame["data"]["related"] == {"kind": "message", "id": "m-42"}
    assert mailer.to("ada@example.com")[-1]["subject"] == "New Message"


async def test_failed_push_drops_stale_connection(db, cache, mailer, presence, ada):
    presence.register(ada["user"]["id"], FakeConnection(fail=True))
    dispatcher = NotificationDispatcher(db, cache, mailer, presence)

    await dispatcher.notify(ada["user"]["id"], NotificationCategory.system, "hello")
    assert not presence.is_online(ada["user"]["id"])


async def test_admin_test_endpoint_requires_admin(client, ada):
    response = await client.post(
        "/notifications/test",
        json={"userId": ada["user"]["id"], "content": "hi"},
        headers=bearer(ada["token"]),
    )
    assert response.status_code == 403
    assert response.json() == {"message": "Access denied"}


async def test_admin_can_send_test_notification(client, presence, admin, ada):
    connection = FakeConnection()
    presence.register(ada["user"]["id"], connection)

    response = await client.post(
        "/notifications/test",
        json={
            "userId": ada["user"]["id"],
            "content": "Your listing was approved",
            "title": "Listing",
            "category": "property",
            "related": {"kind": "property", "id": "p-1"},
        },
        headers=bearer(admin["token"]),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["delivered"] is True
    assert body["notification"]["category"] == "property"
    assert body["notification"]["related"] == {"kind": "property", "id": "p-1"}
    assert connection.frames[0]["data"]["content"] == "Your listing was approved"


async def test_admin_test_endpoint_unknown_recipient(client, admin):
    response = await client.post(
        "/notifications/test",
        json={"userId": 9999, "content": "hi"},
        headers=bearer(admin["token"]),
    )
    assert response.status_code == 404


async def test_admin_test_endpoint_rejects_unknown_related_kind(client, admin, ada):
    response = await client.post(
        "/notifications/test",
        json={
            "userId": ada["user"]["id"],
            "content": "hi",
            "related": {"kind": "spaceship", "id": "1"},
        },
        headers=bearer(admin["token"]),
    )
    assert response.status_code == 400
