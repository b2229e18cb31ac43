"""Summary statistics over unified messages and meetings.

All functions expect their inputs ordered newest first, as returned by the
orchestrator, and are pure: they make no provider calls.
"""

from collections import Counter, defaultdict
from datetime import datetime
from typing import Any, Optional, Sequence

from pydantic import Field

from linksense.normalization.models import UnifiedMeeting, UnifiedMessage, UnifiedModel

UNKNOWN = "unknown"
TOP_CHANNELS = 10
TOP_PEAKS = 3


class TimeRange(UnifiedModel):
    earliest: Optional[datetime] = None
    latest: Optional[datetime] = None


class UserCount(UnifiedModel):
    name: str
    count: int = 0


class ChannelActivity(UnifiedModel):
    channel_id: str
    channel_name: str
    count: int


class MessageStats(UnifiedModel):
    """Volume and distribution of messages."""

    total_messages: int = 0
    messages_by_service: dict[str, int] = Field(default_factory=dict)
    messages_by_hour: dict[str, int] = Field(default_factory=dict)
    messages_by_user: dict[str, UserCount] = Field(default_factory=dict)
    average_message_length: int = 0
    most_active_channels: list[ChannelActivity] = Field(default_factory=list)
    time_range: TimeRange = Field(default_factory=TimeRange)


class MeetingStats(UnifiedModel):
    """Volume, duration and attendance of meetings."""

    total_meetings: int = 0
    meetings_by_service: dict[str, int] = Field(default_factory=dict)
    total_duration: int = 0
    average_duration: int = 0
    average_participants: int = 0
    meetings_by_day: dict[str, int] = Field(default_factory=dict)
    longest_meeting: Optional[UnifiedMeeting] = None
    most_participants: Optional[UnifiedMeeting] = None
    time_range: TimeRange = Field(default_factory=TimeRange)


class ServiceUsage(UnifiedModel):
    messages: int = 0
    meetings: int = 0
    total: int = 0


class UserServiceActivity(UnifiedModel):
    name: str
    services: list[str]
    total_activity: int


class HourPeak(UnifiedModel):
    hour: int
    activity: int


class DayPeak(UnifiedModel):
    day: str
    activity: int


class TimelineAnalysis(UnifiedModel):
    peak_hours: list[HourPeak] = Field(default_factory=list)
    peak_days: list[DayPeak] = Field(default_factory=list)


class CrossServiceAnalysis(UnifiedModel):
    """How activity spreads across providers and users.

    Attributes:
        service_usage_distribution: Message and meeting counts per provider
        user_activity_across_services: Providers each user was active on
        timeline_analysis: Busiest hours (UTC) and days
        collaboration_score: Percentage of users active on more than one provider
    """

    service_usage_distribution: dict[str, ServiceUsage] = Field(default_factory=dict)
    user_activity_across_services: dict[str, UserServiceActivity] = Field(default_factory=dict)
    timeline_analysis: TimelineAnalysis = Field(default_factory=TimelineAnalysis)
    collaboration_score: int = 0


class MessageQuality(UnifiedModel):
    total: int = 0
    with_content: int = 0
    with_author: int = 0
    with_timestamp: int = 0
    with_channel: int = 0


class MeetingQuality(UnifiedModel):
    total: int = 0
    with_title: int = 0
    with_participants: int = 0
    with_duration: int = 0
    with_organizer: int = 0


class DataQuality(UnifiedModel):
    """Field completeness of the normalized data, scored 0-100."""

    messages: MessageQuality
    meetings: MeetingQuality
    overall_score: int = 100


def calculate_message_stats(messages: Sequence[UnifiedMessage]) -> MessageStats:
    """Count messages by provider, hour (UTC), author and channel."""
    stats = MessageStats(total_messages=len(messages))
    if not messages:
        return stats

    stats.time_range = TimeRange(earliest=messages[-1].timestamp, latest=messages[0].timestamp)
    by_service: Counter[str] = Counter()
    by_hour: Counter[str] = Counter()
    channels: dict[str, ChannelActivity] = {}
    total_length = 0

    for message in messages:
        by_service[message.service] += 1
        by_hour[f"{message.timestamp.hour:02d}"] += 1

        user = stats.messages_by_user.setdefault(
            message.author.id, UserCount(name=message.author.name)
        )
        user.count += 1
        total_length += len(message.content)

        if message.channel:
            channel = channels.setdefault(
                message.channel.id,
                ChannelActivity(
                    channel_id=message.channel.id, channel_name=message.channel.name, count=0
                ),
            )
            channel.count += 1

    stats.messages_by_service = dict(by_service)
    stats.messages_by_hour = dict(sorted(by_hour.items()))
    stats.average_message_length = round(total_length / len(messages))
    stats.most_active_channels = sorted(channels.values(), key=lambda c: -c.count)[:TOP_CHANNELS]
    return stats


def calculate_meeting_stats(meetings: Sequence[UnifiedMeeting]) -> MeetingStats:
    """Sum durations and attendance; find the longest and the largest meeting."""
    stats = MeetingStats(total_meetings=len(meetings))
    if not meetings:
        return stats

    stats.time_range = TimeRange(earliest=meetings[-1].start_time, latest=meetings[0].start_time)
    by_service: Counter[str] = Counter()
    by_day: Counter[str] = Counter()
    total_participants = 0

    for meeting in meetings:
        by_service[meeting.service] += 1
        by_day[meeting.start_time.date().isoformat()] += 1
        stats.total_duration += meeting.duration
        total_participants += len(meeting.participants)

        if meeting.duration > (stats.longest_meeting.duration if stats.longest_meeting else 0):
            stats.longest_meeting = meeting
        largest = len(stats.most_participants.participants) if stats.most_participants else 0
        if len(meeting.participants) > largest:
            stats.most_participants = meeting

    stats.meetings_by_service = dict(by_service)
    stats.meetings_by_day = dict(sorted(by_day.items()))
    stats.average_duration = round(stats.total_duration / len(meetings))
    stats.average_participants = round(total_participants / len(meetings))
    return stats


def calculate_cross_service_analysis(
    messages: Sequence[UnifiedMessage], meetings: Sequence[UnifiedMeeting]
) -> CrossServiceAnalysis:
    """Relate activity across providers.

    A user counts as collaborating when the same user id shows up on more
    than one provider, as message author or meeting organizer.
    """
    analysis = CrossServiceAnalysis()
    user_services: dict[str, set[str]] = defaultdict(set)
    user_activity: dict[str, UserCount] = {}
    hours: Counter[int] = Counter()
    days: Counter[str] = Counter()

    events = [(m.service, m.author, m.timestamp, "messages") for m in messages]
    events += [(m.service, m.organizer, m.start_time, "meetings") for m in meetings]

    for service, person, moment, kind in events:
        usage = analysis.service_usage_distribution.setdefault(service, ServiceUsage())
        setattr(usage, kind, getattr(usage, kind) + 1)
        usage.total += 1

        user_services[person.id].add(service)
        user_activity.setdefault(person.id, UserCount(name=person.name)).count += 1

        hours[moment.hour] += 1
        days[moment.date().isoformat()] += 1

    for user_id, services in user_services.items():
        analysis.user_activity_across_services[user_id] = UserServiceActivity(
            name=user_activity[user_id].name,
            services=sorted(services),
            total_activity=user_activity[user_id].count,
        )

    analysis.timeline_analysis = TimelineAnalysis(
        peak_hours=[HourPeak(hour=h, activity=n) for h, n in _top(hours)],
        peak_days=[DayPeak(day=d, activity=n) for d, n in _top(days)],
    )

    if user_services:
        multi = len([s for s in user_services.values() if len(s) > 1])
        analysis.collaboration_score = round(multi / len(user_services) * 100)
    return analysis


def analyze_data_quality(
    messages: Sequence[UnifiedMessage], meetings: Sequence[UnifiedMeeting]
) -> DataQuality:
    """Score how many records carry each field a consumer relies on.

    Each side scores the share of populated fields (100 when empty); the
    overall score is the mean of the two, rounded.
    """
    message_quality = MessageQuality(
        total=len(messages),
        with_content=len([m for m in messages if m.content.strip()]),
        with_author=len([m for m in messages if m.author.name != UNKNOWN]),
        with_timestamp=len(messages),
        with_channel=len([m for m in messages if m.channel and m.channel.id]),
    )
    meeting_quality = MeetingQuality(
        total=len(meetings),
        with_title=len([m for m in meetings if m.title.strip()]),
        with_participants=len([m for m in meetings if m.participants]),
        with_duration=len([m for m in meetings if m.duration > 0]),
        with_organizer=len([m for m in meetings if m.organizer.name != UNKNOWN]),
    )

    message_score = _score(
        message_quality.total,
        message_quality.with_content,
        message_quality.with_author,
        message_quality.with_timestamp,
        message_quality.with_channel,
    )
    meeting_score = _score(
        meeting_quality.total,
        meeting_quality.with_title,
        meeting_quality.with_participants,
        meeting_quality.with_duration,
        meeting_quality.with_organizer,
    )
    return DataQuality(
        messages=message_quality,
        meetings=meeting_quality,
        overall_score=round((message_score + meeting_score) / 2),
    )


def build_analytics(
    messages: Sequence[UnifiedMessage], meetings: Sequence[UnifiedMeeting]
) -> dict[str, Any]:
    """Run every analysis and serialize the results for the API."""
    sections = {
        "messageStats": calculate_message_stats(messages),
        "meetingStats": calculate_meeting_stats(meetings),
        "crossServiceAnalysis": calculate_cross_service_analysis(messages, meetings),
        "dataQuality": analyze_data_quality(messages, meetings),
    }
    return {name: section.to_response() for name, section in sections.items()}


def _top(counter: Counter[Any]) -> list[tuple[Any, int]]:
    return sorted(counter.items(), key=lambda item: (-item[1], item[0]))[:TOP_PEAKS]


def _score(total: int, *populated: int) -> float:
    if total == 0:
        return 100.0
    return sum(populated) / (total * len(populated)) * 100
