"""Notification records delivered to accounts.

Rows are immutable after creation except for the `read` flag.
"""

from core.timeutil import utcnow
from db.session import Base
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text


class Notification(Base):
    """A durable notification for one recipient.

    Attributes:
        id: Primary key.
        account_id: Recipient account.
        category: One of the `NotificationCategory` values.
        title: Optional short heading, also used as the email subject.
        content: Free-text body.
        related_type: Kind tag of the related entity, if any.
        related_id: Identifier of the related entity, if any.
        read: Whether the recipient has read it.
        created_at: Creation timestamp.
    """

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(
        Integer,
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    category = Column(String(32), nullable=False)
    title = Column(String(200), nullable=True)
    content = Column(Text, nullable=False)
    related_type = Column(String(32), nullable=True)
    related_id = Column(String(64), nullable=True)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
