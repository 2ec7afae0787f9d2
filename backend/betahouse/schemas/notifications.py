"""Schemas for notifications and the entities they point at.

A notification's related entity is a discriminated union keyed by ``kind``
so adding a new category forces a matching reference type, instead of
pairing an untyped identifier with a free-form string tag.
"""

import enum
from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter
from schemas.auth import CamelModel


class NotificationCategory(str, enum.Enum):
    message = "message"
    property = "property"
    system = "system"
    kyc_submitted = "kyc_submitted"
    kyc_approved = "kyc_approved"
    kyc_rejected = "kyc_rejected"
    profile_updated = "profile_updated"
    agent_review = "agent_review"


class PropertyRef(BaseModel):
    kind: Literal["property"] = "property"
    id: str


class MessageRef(BaseModel):
    kind: Literal["message"] = "message"
    id: str


class AgentApplicationRef(BaseModel):
    kind: Literal["agent_application"] = "agent_application"
    id: str


class KycRef(BaseModel):
    kind: Literal["kyc"] = "kyc"
    id: str


class AgentReviewRef(BaseModel):
    kind: Literal["agent_review"] = "agent_review"
    id: str


class AccountRef(BaseModel):
    kind: Literal["account"] = "account"
    id: str


RelatedRef = Annotated[
    Union[
        PropertyRef,
        MessageRef,
        AgentApplicationRef,
        KycRef,
        AgentReviewRef,
        AccountRef,
    ],
    Field(discriminator="kind"),
]

_related_adapter = TypeAdapter(RelatedRef)


def related_to_columns(related: Optional[RelatedRef]) -> tuple[str | None, str | None]:
    """Split a reference into the `(related_type, related_id)` columns."""

    if related is None:
        return None, None
    return related.kind, related.id


def related_from_columns(
    related_type: str | None, related_id: str | None
) -> Optional[RelatedRef]:
    """Rebuild a typed reference from its stored columns."""

    if related_type is None or related_id is None:
        return None
    return _related_adapter.validate_python({"kind": related_type, "id": related_id})


class NotificationOut(CamelModel):
    """A notification as returned to its recipient and pushed live."""

    id: int
    category: NotificationCategory
    title: Optional[str] = None
    content: str
    related: Optional[RelatedRef] = None
    read: bool = False
    created_at: datetime

    @classmethod
    def from_row(cls, row) -> "NotificationOut":
        return cls(
            id=row.id,
            category=row.category,
            title=row.title,
            content=row.content,
            related=related_from_columns(row.related_type, row.related_id),
            read=bool(row.read),
            created_at=row.created_at,
        )


class NotificationPage(CamelModel):
    notifications: list[NotificationOut]
    total: int
    page: int
    pages: int


class MarkAllRead(CamelModel):
    message: str
    updated: int


class AdminNotificationRequest(CamelModel):
    """Admin request to send an ad-hoc notification to an account."""

    user_id: int
    content: str = Field(min_length=1, max_length=2000)
    title: Optional[str] = Field(default=None, max_length=200)
    category: NotificationCategory = NotificationCategory.system
    related: Optional[RelatedRef] = None


class AdminNotificationResponse(CamelModel):
    notification: NotificationOut
    delivered: bool
