"""Unified entity models shared by the normalizer, adapters and orchestrator.

Field names are snake_case in Python and serialize to camelCase
(``startTime``, ``parentId``) when dumped with ``by_alias=True``.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

DEFAULT_LOOKBACK = timedelta(days=7)

# Key under which adapters attach the source container to raw records.
CONTAINER_KEY = "_container"


class UnifiedModel(BaseModel):
    """Base for unified entities: camelCase aliases, construction by field name."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_response(self, include_metadata: bool = False) -> dict[str, Any]:
        """Serialize for API responses.

        Args:
            include_metadata: Keep the provider metadata bag

        Returns:
            JSON-compatible dict with camelCase keys
        """
        exclude = None if include_metadata else {"metadata"}
        return self.model_dump(by_alias=True, mode="json", exclude_none=True, exclude=exclude)


class EntityKind(str, Enum):
    """Kinds of unified data a caller can ask for."""

    MESSAGES = "messages"
    MEETINGS = "meetings"
    ACTIVITIES = "activities"
    ALL = "all"


class Person(UnifiedModel):
    """Author, organizer, participant or activity user."""

    id: str = "unknown"
    name: str = "unknown"
    email: Optional[str] = None
    avatar: Optional[str] = None


class ChannelRef(UnifiedModel):
    id: str
    name: str


class ThreadRef(UnifiedModel):
    id: str
    parent_id: Optional[str] = None


class Reaction(UnifiedModel):
    emoji: str
    count: int = 0
    users: list[str] = Field(default_factory=list)


class Attachment(UnifiedModel):
    type: str = "file"
    url: str = ""
    name: str = ""


class Recording(UnifiedModel):
    available: bool = False
    url: Optional[str] = None
    duration: Optional[int] = None


class UnifiedMessage(UnifiedModel):
    """A chat message from any provider.

    Attributes:
        id: Provider message identifier
        service: Provider identifier
        timestamp: Send time (UTC)
        author: Sender; never missing, falls back to "unknown"
        channel: Container the message was posted in
        thread: Thread reference for replies
        content: Message text
        reactions: Emoji reactions
        attachments: Files attached to the message
        metadata: Provider-specific extras, stripped unless requested
    """

    id: str
    service: str
    timestamp: datetime
    author: Person
    channel: Optional[ChannelRef] = None
    thread: Optional[ThreadRef] = None
    content: str = ""
    reactions: list[Reaction] = Field(default_factory=list)
    attachments: list[Attachment] = Field(default_factory=list)
    metadata: Optional[dict[str, Any]] = None


class UnifiedMeeting(UnifiedModel):
    """A scheduled online meeting from a calendar provider.

    Attributes:
        id: Provider event identifier
        service: Provider identifier
        title: Meeting subject
        start_time: Start (UTC)
        end_time: End (UTC)
        duration: Length in whole minutes
        organizer: Organizer; never missing, falls back to "unknown"
        participants: Invited attendees
        recording: Recording availability, when the provider reports it
        metadata: Provider-specific extras, stripped unless requested
    """

    id: str
    service: str
    title: str = "(no title)"
    start_time: datetime
    end_time: datetime
    duration: int = 0
    organizer: Person
    participants: list[Person] = Field(default_factory=list)
    recording: Optional[Recording] = None
    metadata: Optional[dict[str, Any]] = None

    @property
    def timestamp(self) -> datetime:
        """Sort key shared with messages and activities."""
        return self.start_time


class ActivityType(str, Enum):
    MESSAGE = "message"
    MEETING = "meeting"


class UnifiedActivity(UnifiedModel):
    """Projection of a message or meeting onto a common activity feed entry."""

    id: str
    service: str
    type: ActivityType
    timestamp: datetime
    user: Person
    details: dict[str, Any] = Field(default_factory=dict)
    metadata: Optional[dict[str, Any]] = None


class DataIntegrationOptions(BaseModel):
    """Query options for an aggregation request.

    Attributes:
        date_from: Start of the window (default: seven days before date_to)
        date_to: End of the window (default: now)
        limit: Maximum number of entities returned
        include_metadata: Keep provider metadata in the response
        channels: Restrict message scans to these container ids
    """

    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    limit: int = Field(default=100, ge=1, le=1000)
    include_metadata: bool = False
    channels: Optional[list[str]] = None

    @model_validator(mode="after")
    def validate_window(self) -> "DataIntegrationOptions":
        """Ensure date_from does not come after date_to."""
        if self.date_from and self.date_to and _utc(self.date_from) > _utc(self.date_to):
            raise ValueError("dateFrom must not be later than dateTo")
        return self

    def resolved(self, now: Optional[datetime] = None) -> "DataIntegrationOptions":
        """Return a copy with the date window filled in and converted to UTC."""
        date_to = _utc(self.date_to) if self.date_to else (now or datetime.now(timezone.utc))
        date_from = _utc(self.date_from) if self.date_from else date_to - DEFAULT_LOOKBACK
        return self.model_copy(update={"date_from": date_from, "date_to": date_to})

    def with_limit(self, limit: int) -> "DataIntegrationOptions":
        return self.model_copy(update={"limit": limit})

    def contains(self, moment: datetime) -> bool:
        """Check whether a UTC moment falls in the (resolved) window."""
        if self.date_from and moment < _utc(self.date_from):
            return False
        if self.date_to and moment > _utc(self.date_to):
            return False
        return True


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
