"""Notification dispatch, read-through cache and read-state updates.

Dispatch steps, each allowed to fail without undoing the others:

1. Persist the row (source of truth; failures propagate).
2. Cache the serialized notification in Redis.
3. Push it over the recipient's live websocket, if they are online.
4. Email a copy to the recipient.
"""

import math

from config.config import settings
from core.errors import DownstreamDegraded, NotFound
from core.logging import logger
from core.result import Err, Ok, Result
from core.timeutil import as_utc
from models.auth import Account
from models.notifications import Notification
from redis.asyncio import Redis
from redis.exceptions import RedisError
from schemas.notifications import (
    NotificationCategory,
    NotificationOut,
    RelatedRef,
    related_to_columns,
)
from services.email import Mailer
from services.presence import PresenceRegistry
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession


class NotificationCache:
    """Per-notification Redis entries keyed `notifications:<account>:<id>`."""

    provider = "redis"

    def __init__(self, cache: Redis, ttl: int = settings.NOTIFICATION_CACHE_TTL_SECONDS):
        self.cache = cache
        self.ttl = ttl

    @staticmethod
    def key(account_id: int, notification_id: int) -> str:
        return f"notifications:{account_id}:{notification_id}"

    async def put(self, account_id: int, notification: NotificationOut) -> Result[bool]:
        try:
            await self.cache.set(
                self.key(account_id, notification.id),
                notification.model_dump_json(),
                ex=self.ttl,
            )
        except RedisError as exc:
            logger.warning("Notification cache write failed: {}", exc)
            return Err(DownstreamDegraded(self.provider, str(exc)))
        return Ok(True)

    async def remove(self, account_id: int, *notification_ids: int) -> Result[bool]:
        if not notification_ids:
            return Ok(False)
        try:
            await self.cache.delete(*(self.key(account_id, nid) for nid in notification_ids))
        except RedisError as exc:
            logger.warning("Notification cache delete failed: {}", exc)
            return Err(DownstreamDegraded(self.provider, str(exc)))
        return Ok(True)

    async def all_for(self, account_id: int) -> list[NotificationOut] | None:
        """Return every cached notification for the account.

        Returns:
            list[NotificationOut] | None: None when the cache is unreachable.
        """
        try:
            keys = [
                key
                async for key in self.cache.scan_iter(
                    match=f"notifications:{account_id}:*", count=100
                )
            ]
            raw = await self.cache.mget(keys) if keys else []
        except RedisError as exc:
            logger.warning("Notification cache read failed: {}", exc)
            return None
        return [NotificationOut.model_validate_json(item) for item in raw if item]


class NotificationDispatcher:
    def __init__(
        self,
        db: AsyncSession,
        cache: Redis,
        mailer: Mailer,
        presence: PresenceRegistry,
    ):
        self.db = db
        self.cache = NotificationCache(cache)
        self.mailer = mailer
        self.presence = presence

    async def notify(
        self,
        recipient_id: int,
        category: NotificationCategory,
        content: str,
        related: RelatedRef | None = None,
        title: str | None = None,
    ) -> Notification:
        """Persist a notification and fan it out over the side channels.

        Args:
            recipient_id: Account receiving the notification.
            category: Notification category.
            content: Free-text body.
            related: Optional typed reference to the entity it concerns.
            title: Optional heading, used as the email subject.

        Returns:
            Notification: The stored row.
        """
        category = NotificationCategory(category)
        related_type, related_id = related_to_columns(related)
        notification = Notification(
            account_id=recipient_id,
            category=category.value,
            title=title,
            content=content,
            related_type=related_type,
            related_id=related_id,
            read=False,
        )
        self.db.add(notification)
        await self.db.commit()

        out = NotificationOut.from_row(notification)
        await self.cache.put(recipient_id, out)

        pushed = await self.presence.push(
            recipient_id,
            {"event": "notification", "data": out.model_dump(mode="json", by_alias=True)},
        )

        recipient = await self.db.get(Account, recipient_id)
        emailed: Result = Err(DownstreamDegraded("mailgun", "recipient has no email"))
        if recipient is not None and recipient.email:
            subject = title or category.value.replace("_", " ").upper()
            emailed = await self.mailer.send_notification(
                recipient.email, subject, content, title=title
            )

        logger.info(
            "Notification id={} category={} to account_id={} pushed={} emailed={}",
            notification.id,
            category.value,
            recipient_id,
            pushed.ok,
            emailed.ok,
        )
        return notification

    async def list_for(self, account_id: int, page: int = 1, limit: int = 10) -> dict:
        """Return one page of the account's notifications, newest first.

        The cache answers when it holds exactly as many entries as the
        database; otherwise the page is read from the database and written
        back to the cache.
        """
        total = await self.db.scalar(
            select(func.count()).select_from(Notification).filter(
                Notification.account_id == account_id
            )
        )
        total = total or 0
        offset = (page - 1) * limit

        cached = await self.cache.all_for(account_id)
        if cached is not None and total and len(cached) == total:
            cached.sort(key=lambda n: (as_utc(n.created_at), n.id), reverse=True)
            items = cached[offset : offset + limit]
            logger.debug("Served notifications for account_id={} from cache", account_id)
        else:
            result = await self.db.execute(
                select(Notification)
                .filter(Notification.account_id == account_id)
                .order_by(Notification.created_at.desc(), Notification.id.desc())
                .offset(offset)
                .limit(limit)
            )
            items = [NotificationOut.from_row(row) for row in result.scalars().all()]
            for item in items:
                await self.cache.put(account_id, item)

        return {
            "notifications": items,
            "total": total,
            "page": page,
            "pages": math.ceil(total / limit) if total else 0,
        }

    async def _owned(self, account_id: int, notification_id: int) -> Notification:
        result = await self.db.execute(
            select(Notification).filter(
                Notification.id == notification_id,
                Notification.account_id == account_id,
            )
        )
        notification = result.scalars().first()
        if notification is None:
            raise NotFound("Notification not found")
        return notification

    async def mark_read(self, account_id: int, notification_id: int) -> Notification:
        notification = await self._owned(account_id, notification_id)
        notification.read = True
        await self.db.commit()
        await self.cache.put(account_id, NotificationOut.from_row(notification))
        return notification

    async def mark_all_read(self, account_id: int) -> int:
        result = await self.db.execute(
            update(Notification)
            .where(Notification.account_id == account_id, Notification.read.is_(False))
            .values(read=True)
        )
        await self.db.commit()

        cached = await self.cache.all_for(account_id) or []
        for item in cached:
            if not item.read:
                await self.cache.put(account_id, item.model_copy(update={"read": True}))
        return result.rowcount or 0

    async def delete(self, account_id: int, notification_id: int) -> None:
        notification = await self._owned(account_id, notification_id)
        await self.db.delete(notification)
        await self.db.commit()
        await self.cache.remove(account_id, notification_id)

    async def delete_unread(self, account_id: int, category: NotificationCategory, title: str) -> int:
        """Remove unread notifications with the given category and title."""
        result = await self.db.execute(
            select(Notification.id).filter(
                Notification.account_id == account_id,
                Notification.category == NotificationCategory(category).value,
                Notification.title == title,
                Notification.read.is_(False),
            )
        )
        ids = list(result.scalars().all())
        if ids:
            await self.db.execute(delete(Notification).where(Notification.id.in_(ids)))
            await self.db.commit()
            await self.cache.remove(account_id, *ids)
        return len(ids)
