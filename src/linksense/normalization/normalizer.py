"""Mapping of raw provider records onto the unified entity models.

Each (provider, kind) pair has one mapping function. Timestamps from every
provider (epoch seconds, epoch milliseconds, ISO-8601) end up as
timezone-aware UTC datetimes. Identity fields fall back to "unknown" so an
author or organizer is never missing.
"""

import math
import re
from datetime import date, datetime, timezone
from typing import Any, Callable, Iterable, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from linksense.errors import NormalizationError
from linksense.normalization.models import (
    CONTAINER_KEY,
    ActivityType,
    Attachment,
    ChannelRef,
    Person,
    Reaction,
    Recording,
    ThreadRef,
    UnifiedActivity,
    UnifiedMeeting,
    UnifiedMessage,
)
from linksense.observability.logging import get_logger
from linksense.observability.metrics import get_metrics_collector

logger = get_logger(__name__)

UNKNOWN = "unknown"

# Above this an epoch value can only be milliseconds (year 5138 in seconds).
_EPOCH_MILLIS_THRESHOLD = 100_000_000_000

_FRACTION = re.compile(r"\.(\d+)")

UnifiedEntity = Union[UnifiedMessage, UnifiedMeeting]
Mapper = Callable[[dict[str, Any]], Optional[UnifiedEntity]]


# Timestamps -------------------------------------------------------------


def parse_timestamp(value: Any) -> datetime:
    """Convert a provider timestamp to an aware UTC datetime.

    Accepts epoch seconds or milliseconds (as numbers or numeric strings,
    e.g. Slack's ``"1712345678.000200"``), ISO-8601 strings with or without
    offset (``Z`` included), and date-only strings for all-day events.
    Naive values are taken as UTC.

    Raises:
        ValueError: If the value is empty or unparseable
    """
    if value is None or value == "":
        raise ValueError("timestamp is missing")
    if isinstance(value, bool):
        raise ValueError(f"unparseable timestamp: {value!r}")

    if isinstance(value, (int, float)):
        try:
            seconds = float(value)
        except OverflowError as e:
            raise ValueError(f"epoch timestamp out of range: {value!r}") from e
        return _from_epoch(seconds)

    if isinstance(value, str):
        text = value.strip()
        try:
            return _from_epoch(float(text))
        except ValueError:
            pass

        # Graph sends seven fractional digits; fromisoformat wants six
        text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        if len(text) == 10:
            parsed_date = date.fromisoformat(text)
            return datetime(
                parsed_date.year, parsed_date.month, parsed_date.day, tzinfo=timezone.utc
            )
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)

    raise ValueError(f"unparseable timestamp: {value!r}")


def _from_epoch(seconds: float) -> datetime:
    if not math.isfinite(seconds):
        raise ValueError(f"non-finite epoch timestamp: {seconds!r}")
    if abs(seconds) >= _EPOCH_MILLIS_THRESHOLD:
        seconds /= 1000
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError) as e:
        raise ValueError(f"epoch timestamp out of range: {seconds!r}") from e


def parse_graph_datetime(value: Optional[dict[str, Any]]) -> datetime:
    """Convert a Microsoft Graph ``{dateTime, timeZone}`` pair to UTC.

    Graph dateTime strings carry no offset; the zone is in a sibling field.
    Zones that are not IANA names (e.g. Windows zone names) are taken as UTC.
    """
    if not value or not value.get("dateTime"):
        raise ValueError("dateTime is missing")
    parsed = parse_timestamp(value["dateTime"])
    zone_name = value.get("timeZone")
    if not zone_name or zone_name.upper() in ("UTC", "Z", "ETC/UTC"):
        return parsed
    if "+" in value["dateTime"][10:] or value["dateTime"].endswith("Z"):
        return parsed
    try:
        zone = ZoneInfo(zone_name)
    except (ZoneInfoNotFoundError, ValueError):
        return parsed
    return parsed.replace(tzinfo=None).replace(tzinfo=zone).astimezone(timezone.utc)


def duration_minutes(start: datetime, end: datetime) -> int:
    return max(0, round((end - start).total_seconds() / 60))


# Shared helpers ---------------------------------------------------------


def _first(*values: Any) -> Optional[Any]:
    for value in values:
        if value not in (None, ""):
            return value
    return None


def _text(value: Any) -> Optional[str]:
    return None if value in (None, "") else str(value)


def _channel(
    raw: dict[str, Any], fallback_id: Any = None, fallback_name: Any = None
) -> Optional[ChannelRef]:
    container = raw.get(CONTAINER_KEY) or {}
    channel_id = _first(container.get("id"), fallback_id)
    if channel_id is None:
        return None
    return ChannelRef(
        id=str(channel_id),
        name=str(_first(container.get("name"), fallback_name, channel_id)),
    )


def _metadata(raw: dict[str, Any], **extras: Any) -> dict[str, Any]:
    original = {k: v for k, v in raw.items() if k != CONTAINER_KEY}
    metadata: dict[str, Any] = {"originalData": original}
    metadata.update({k: v for k, v in extras.items() if v is not None})
    return metadata


def _graph_reaction_users(reaction: dict[str, Any]) -> list[str]:
    user_id = ((reaction.get("user") or {}).get("user") or {}).get("id")
    return [user_id] if user_id else []


def _require(provider: str, raw: dict[str, Any], value: Any, field: str) -> Any:
    if value in (None, ""):
        raise NormalizationError(provider, f"missing {field}", record_id=_text(raw.get("id")))
    return value


# Messages ---------------------------------------------------------------


def normalize_slack_message(raw: dict[str, Any]) -> UnifiedMessage:
    ts = _require("slack", raw, raw.get("ts"), "ts")
    profile = raw.get("user_profile") or {}
    thread_ts = raw.get("thread_ts")
    return UnifiedMessage(
        id=str(ts),
        service="slack",
        timestamp=parse_timestamp(ts),
        author=Person(
            id=str(_first(raw.get("user"), raw.get("bot_id"), UNKNOWN)),
            name=str(
                _first(
                    profile.get("display_name"),
                    profile.get("real_name"),
                    raw.get("username"),
                    UNKNOWN,
                )
            ),
            email=profile.get("email"),
            avatar=profile.get("image_72"),
        ),
        channel=_channel(raw, raw.get("channel"), raw.get("channel_name")),
        thread=(
            ThreadRef(id=str(thread_ts), parent_id=str(thread_ts) if thread_ts != ts else None)
            if thread_ts
            else None
        ),
        content=raw.get("text") or "",
        reactions=[
            Reaction(
                emoji=reaction.get("name") or "",
                count=reaction.get("count") or 0,
                users=list(reaction.get("users") or []),
            )
            for reaction in raw.get("reactions") or []
        ],
        attachments=[
            Attachment(
                type=file.get("mimetype") or UNKNOWN,
                url=_first(file.get("url_private"), file.get("permalink"), "") or "",
                name=file.get("name") or "Untitled",
            )
            for file in raw.get("files") or []
        ],
        metadata=_metadata(raw, messageType=raw.get("type"), subtype=raw.get("subtype")),
    )


def normalize_discord_message(raw: dict[str, Any]) -> UnifiedMessage:
    message_id = _require("discord", raw, raw.get("id"), "id")
    author = raw.get("author") or {}
    author_id = _text(author.get("id"))
    reference = raw.get("message_reference") or {}
    container = raw.get(CONTAINER_KEY) or {}
    return UnifiedMessage(
        id=str(message_id),
        service="discord",
        timestamp=parse_timestamp(_require("discord", raw, raw.get("timestamp"), "timestamp")),
        author=Person(
            id=author_id or UNKNOWN,
            name=str(_first(author.get("global_name"), author.get("username"), UNKNOWN)),
            avatar=(
                f"https://cdn.discordapp.com/avatars/{author_id}/{author['avatar']}.png"
                if author_id and author.get("avatar")
                else None
            ),
        ),
        channel=_channel(raw, raw.get("channel_id"), raw.get("channel_name")),
        thread=(
            ThreadRef(id=str(message_id), parent_id=str(reference["message_id"]))
            if reference.get("message_id")
            else None
        ),
        content=raw.get("content") or "",
        reactions=[
            Reaction(
                emoji=(reaction.get("emoji") or {}).get("name") or "",
                count=reaction.get("count") or 0,
            )
            for reaction in raw.get("reactions") or []
        ],
        attachments=[
            Attachment(
                type=attachment.get("content_type") or UNKNOWN,
                url=attachment.get("url") or "",
                name=attachment.get("filename") or "Untitled",
            )
            for attachment in raw.get("attachments") or []
        ],
        metadata=_metadata(
            raw,
            messageType=raw.get("type"),
            guildId=_first(raw.get("guild_id"), container.get("parent_id")),
            guildName=container.get("parent_name"),
        ),
    )


def normalize_teams_message(raw: dict[str, Any]) -> UnifiedMessage:
    message_id = _require("teams", raw, raw.get("id"), "id")
    user = (raw.get("from") or {}).get("user") or {}
    container = raw.get(CONTAINER_KEY) or {}
    channel_identity = raw.get("channelIdentity") or {}
    return UnifiedMessage(
        id=str(message_id),
        service="teams",
        timestamp=parse_timestamp(
            _require("teams", raw, raw.get("createdDateTime"), "createdDateTime")
        ),
        author=Person(
            id=str(_first(user.get("id"), UNKNOWN)),
            name=str(_first(user.get("displayName"), UNKNOWN)),
            email=user.get("userPrincipalName"),
        ),
        channel=_channel(raw, channel_identity.get("channelId"), raw.get("channelName")),
        thread=(
            ThreadRef(id=str(message_id), parent_id=str(raw["replyToId"]))
            if raw.get("replyToId")
            else None
        ),
        content=(raw.get("body") or {}).get("content") or "",
        reactions=[
            Reaction(
                emoji=reaction.get("reactionType") or "",
                count=1,
                users=_graph_reaction_users(reaction),
            )
            for reaction in raw.get("reactions") or []
        ],
        attachments=[
            Attachment(
                type=attachment.get("contentType") or UNKNOWN,
                url=attachment.get("contentUrl") or "",
                name=attachment.get("name") or "Untitled",
            )
            for attachment in raw.get("attachments") or []
        ],
        metadata=_metadata(
            raw,
            messageType=raw.get("messageType"),
            teamId=_first(channel_identity.get("teamId"), container.get("parent_id")),
            teamName=container.get("parent_name"),
            importance=raw.get("importance"),
        ),
    )


def normalize_chatwork_message(raw: dict[str, Any]) -> UnifiedMessage:
    message_id = _require("chatwork", raw, raw.get("message_id"), "message_id")
    account = raw.get("account") or {}
    return UnifiedMessage(
        id=str(message_id),
        service="chatwork",
        timestamp=parse_timestamp(_require("chatwork", raw, raw.get("send_time"), "send_time")),
        author=Person(
            id=str(_first(account.get("account_id"), UNKNOWN)),
            name=str(_first(account.get("name"), UNKNOWN)),
            avatar=account.get("avatar_image_url"),
        ),
        channel=_channel(raw, raw.get("room_id"), raw.get("room_name")),
        content=raw.get("body") or "",
        metadata=_metadata(raw, updateTime=raw.get("update_time")),
    )


def normalize_line_works_message(raw: dict[str, Any]) -> UnifiedMessage:
    message_id = _require("line-works", raw, _first(raw.get("messageId"), raw.get("id")), "id")
    created_by = raw.get("createdBy") or {}
    content = raw.get("content") or {}
    return UnifiedMessage(
        id=str(message_id),
        service="line-works",
        timestamp=parse_timestamp(
            _require("line-works", raw, raw.get("createdTime"), "createdTime")
        ),
        author=Person(
            id=str(_first(created_by.get("userId"), UNKNOWN)),
            name=str(_first(created_by.get("displayName"), created_by.get("userName"), UNKNOWN)),
            avatar=created_by.get("profileImageUrl"),
        ),
        channel=_channel(raw, raw.get("channelId"), "LINE WORKS Channel"),
        content=(content.get("text") if isinstance(content, dict) else str(content)) or "",
        metadata=_metadata(raw, messageType=raw.get("type")),
    )


# Meetings ---------------------------------------------------------------


def is_google_meeting(raw: dict[str, Any]) -> bool:
    """Only events with conference data, a hangout link or a Meet location count."""
    return bool(
        raw.get("conferenceData")
        or raw.get("hangoutLink")
        or "meet.google.com" in (raw.get("location") or "")
    )


def is_teams_meeting(raw: dict[str, Any]) -> bool:
    """Only events with an online meeting or a Teams join link count."""
    return bool(
        raw.get("onlineMeeting")
        or raw.get("isOnlineMeeting")
        or "teams.microsoft.com" in (raw.get("onlineMeetingUrl") or "")
        or "teams.microsoft.com" in (raw.get("webLink") or "")
    )


def _google_person(entry: Optional[dict[str, Any]]) -> Person:
    entry = entry or {}
    email = entry.get("email")
    return Person(
        id=str(_first(email, entry.get("id"), UNKNOWN)),
        name=str(_first(entry.get("displayName"), email, UNKNOWN)),
        email=email,
    )


def normalize_google_meeting(raw: dict[str, Any]) -> Optional[UnifiedMeeting]:
    if not is_google_meeting(raw):
        return None
    event_id = _require("google-meet", raw, raw.get("id"), "id")
    start_raw = raw.get("start") or {}
    end_raw = raw.get("end") or {}
    start_value = _first(start_raw.get("dateTime"), start_raw.get("date"))
    start = parse_timestamp(_require("google-meet", raw, start_value, "start"))
    end_value = _first(end_raw.get("dateTime"), end_raw.get("date"))
    end = parse_timestamp(end_value) if end_value else start

    entry_points = (raw.get("conferenceData") or {}).get("entryPoints") or []
    meet_url = _first(
        raw.get("hangoutLink"),
        *(e.get("uri") for e in entry_points if e.get("entryPointType") == "video"),
    )
    return UnifiedMeeting(
        id=str(event_id),
        service="google-meet",
        title=raw.get("summary") or "Untitled Meeting",
        start_time=start,
        end_time=end,
        duration=duration_minutes(start, end),
        organizer=_google_person(raw.get("organizer")),
        participants=[_google_person(a) for a in raw.get("attendees") or []],
        recording=Recording(available=False),
        metadata=_metadata(
            raw,
            location=raw.get("location"),
            meetUrl=meet_url,
            conferenceData=raw.get("conferenceData"),
        ),
    )


def _graph_person(entry: Optional[dict[str, Any]]) -> Person:
    address = (entry or {}).get("emailAddress") or {}
    email = address.get("address")
    return Person(
        id=str(_first(email, UNKNOWN)),
        name=str(_first(address.get("name"), email, UNKNOWN)),
        email=email,
    )


def normalize_teams_meeting(raw: dict[str, Any]) -> Optional[UnifiedMeeting]:
    if not is_teams_meeting(raw):
        return None
    event_id = _require("teams", raw, raw.get("id"), "id")
    start = parse_graph_datetime(_require("teams", raw, raw.get("start"), "start"))
    end = parse_graph_datetime(raw["end"]) if (raw.get("end") or {}).get("dateTime") else start
    online = raw.get("onlineMeeting") or {}
    return UnifiedMeeting(
        id=str(event_id),
        service="teams",
        title=raw.get("subject") or "Untitled Meeting",
        start_time=start,
        end_time=end,
        duration=duration_minutes(start, end),
        organizer=_graph_person(raw.get("organizer")),
        participants=[_graph_person(a) for a in raw.get("attendees") or []],
        recording=Recording(available=False),
        metadata=_metadata(
            raw,
            joinUrl=_first(online.get("joinUrl"), raw.get("onlineMeetingUrl")),
            onlineMeeting=raw.get("onlineMeeting"),
        ),
    )


_MAPPERS: dict[tuple[str, str], Mapper] = {
    ("slack", "messages"): normalize_slack_message,
    ("discord", "messages"): normalize_discord_message,
    ("teams", "messages"): normalize_teams_message,
    ("chatwork", "messages"): normalize_chatwork_message,
    ("line-works", "messages"): normalize_line_works_message,
    ("google-meet", "meetings"): normalize_google_meeting,
    ("teams", "meetings"): normalize_teams_meeting,
}


def normalize(
    provider: str,
    kind: str,
    raw: dict[str, Any],
    include_metadata: bool = False,
) -> Optional[UnifiedEntity]:
    """Map one raw provider record onto a unified entity.

    Args:
        provider: Provider identifier
        kind: "messages" or "meetings"
        raw: Record as returned by the provider API
        include_metadata: Keep the metadata bag on the result

    Returns:
        The unified entity, or None for calendar events that are not online meetings

    Raises:
        NormalizationError: If the pair is unsupported or the record is malformed
    """
    mapper = _MAPPERS.get((provider, kind))
    if mapper is None:
        raise NormalizationError(provider, f"no {kind} mapping for this provider")
    if not isinstance(raw, dict):
        raise NormalizationError(provider, f"expected an object, got {type(raw).__name__}")

    try:
        entity = mapper(raw)
    except NormalizationError:
        raise
    except (KeyError, TypeError, ValueError, AttributeError, OverflowError) as e:
        raise NormalizationError(provider, str(e), record_id=_text(raw.get("id"))) from e

    if entity is not None and not include_metadata:
        entity.metadata = None
    return entity


def normalize_batch(
    provider: str,
    kind: str,
    records: Iterable[dict[str, Any]],
    include_metadata: bool = False,
) -> list[UnifiedEntity]:
    """Normalize a batch, skipping records that cannot be mapped.

    Malformed records are logged and counted; they never fail the batch.
    """
    results: list[UnifiedEntity] = []
    for raw in records:
        try:
            entity = normalize(provider, kind, raw, include_metadata=include_metadata)
        except NormalizationError as e:
            logger.warning(
                "record_normalization_failed",
                provider=provider,
                kind=kind,
                record_id=e.record_id,
                error=e.message,
            )
            get_metrics_collector().record_normalization_drop(provider, kind)
            continue
        if entity is not None:
            results.append(entity)
    return results


# Activities -------------------------------------------------------------


def to_activity(entity: UnifiedEntity) -> UnifiedActivity:
    """Project a message or meeting onto an activity feed entry."""
    if isinstance(entity, UnifiedMessage):
        return UnifiedActivity(
            id=f"message-{entity.id}",
            service=entity.service,
            type=ActivityType.MESSAGE,
            timestamp=entity.timestamp,
            user=entity.author,
            details={
                "content": entity.content,
                "channel": entity.channel.name if entity.channel else None,
                "reactions": len(entity.reactions),
                "attachments": len(entity.attachments),
            },
            metadata=entity.metadata,
        )
    return UnifiedActivity(
        id=f"meeting-{entity.id}",
        service=entity.service,
        type=ActivityType.MEETING,
        timestamp=entity.start_time,
        user=entity.organizer,
        details={
            "title": entity.title,
            "duration": entity.duration,
            "participants": len(entity.participants),
            "recording": entity.recording.available if entity.recording else False,
        },
        metadata=entity.metadata,
    )
