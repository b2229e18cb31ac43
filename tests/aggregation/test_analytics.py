"""Tests for message, meeting and cross-provider analytics."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from linksense.aggregation.analytics import (
    analyze_data_quality,
    build_analytics,
    calculate_cross_service_analysis,
    calculate_meeting_stats,
    calculate_message_stats,
)
from linksense.normalization.models import ChannelRef, Person, UnifiedMeeting, UnifiedMessage

BASE = datetime(2024, 3, 11, 9, 0, tzinfo=timezone.utc)


def message(
    message_id: str,
    service: str,
    hours: float,
    author: str = "alice",
    content: str = "hello",
    channel: Optional[str] = "general",
) -> UnifiedMessage:
    return UnifiedMessage(
        id=message_id,
        service=service,
        timestamp=BASE + timedelta(hours=hours),
        author=Person(id=author, name=author),
        channel=ChannelRef(id=channel, name=f"#{channel}") if channel else None,
        content=content,
    )


def meeting(
    meeting_id: str,
    service: str,
    days: int,
    duration: int = 30,
    participants: int = 2,
    organizer: str = "alice",
) -> UnifiedMeeting:
    start = BASE + timedelta(days=days)
    return UnifiedMeeting(
        id=meeting_id,
        service=service,
        title=f"Meeting {meeting_id}",
        start_time=start,
        end_time=start + timedelta(minutes=duration),
        duration=duration,
        organizer=Person(id=organizer, name=organizer),
        participants=[Person(id=f"p{i}", name=f"p{i}") for i in range(participants)],
    )


class TestMessageStats:
    """Tests for calculate_message_stats."""

    def test_should_count_by_service_hour_user_and_channel(self) -> None:
        """Messages are bucketed along every dimension."""
        messages = [
            message("3", "discord", 2, author="bob", content="hey", channel="random"),
            message("2", "slack", 1, content="hello!"),
            message("1", "slack", 0, content="hi"),
        ]

        stats = calculate_message_stats(messages)

        assert stats.total_messages == 3
        assert stats.messages_by_service == {"discord": 1, "slack": 2}
        assert stats.messages_by_hour == {"09": 1, "10": 1, "11": 1}
        assert stats.messages_by_user["alice"].count == 2
        assert stats.messages_by_user["bob"].name == "bob"
        assert stats.average_message_length == 4
        assert stats.most_active_channels[0].channel_id == "general"
        assert stats.most_active_channels[0].count == 2
        assert stats.time_range.earliest == BASE
        assert stats.time_range.latest == BASE + timedelta(hours=2)

    def test_empty_input_should_give_zeroes(self) -> None:
        """No messages gives an empty summary."""
        stats = calculate_message_stats([])

        assert stats.total_messages == 0
        assert stats.time_range.earliest is None

    def test_response_should_use_camel_case(self) -> None:
        """Serialized stats use camelCase keys."""
        body = calculate_message_stats([message("1", "slack", 0)]).to_response()

        assert body["messagesByService"] == {"slack": 1}
        assert body["mostActiveChannels"][0]["channelName"] == "#general"


class TestMeetingStats:
    """Tests for calculate_meeting_stats."""

    def test_should_sum_durations_and_pick_extremes(self) -> None:
        """Longest and largest meetings are identified."""
        meetings = [
            meeting("c", "teams", 1, duration=90, participants=2),
            meeting("b", "google-meet", 0, duration=30, participants=8),
            meeting("a", "google-meet", 0, duration=15, participants=1),
        ]

        stats = calculate_meeting_stats(meetings)

        assert stats.total_meetings == 3
        assert stats.total_duration == 135
        assert stats.average_duration == 45
        assert stats.average_participants == 4
        assert stats.meetings_by_service == {"teams": 1, "google-meet": 2}
        assert stats.meetings_by_day == {"2024-03-11": 2, "2024-03-12": 1}
        assert stats.longest_meeting is not None and stats.longest_meeting.id == "c"
        assert stats.most_participants is not None and stats.most_participants.id == "b"


class TestCrossServiceAnalysis:
    """Tests for calculate_cross_service_analysis."""

    def test_collaboration_score_should_count_multi_provider_users(self) -> None:
        """Users seen on more than one provider count as collaborating."""
        messages = [
            message("1", "slack", 0, author="alice"),
            message("2", "discord", 0, author="alice"),
            message("3", "slack", 1, author="bob"),
        ]
        meetings = [meeting("m", "teams", 0, organizer="carol")]

        analysis = calculate_cross_service_analysis(messages, meetings)

        assert analysis.collaboration_score == 33
        assert analysis.user_activity_across_services["alice"].services == ["discord", "slack"]
        assert analysis.user_activity_across_services["alice"].total_activity == 2
        assert analysis.service_usage_distribution["slack"].messages == 2
        assert analysis.service_usage_distribution["teams"].meetings == 1
        assert analysis.service_usage_distribution["teams"].total == 1

    def test_peaks_should_be_top_three(self) -> None:
        """Peak hours list the three busiest hours, busiest first."""
        hours = [0, 0, 0, 1, 1, 2, 3]
        messages = [message(str(i), "slack", h) for i, h in enumerate(hours)]

        timeline = calculate_cross_service_analysis(messages, []).timeline_analysis

        assert [(p.hour, p.activity) for p in timeline.peak_hours] == [(9, 3), (10, 2), (11, 1)]
        assert timeline.peak_days[0].day == "2024-03-11"

    def test_empty_input_should_score_zero(self) -> None:
        """Without users there is no collaboration."""
        assert calculate_cross_service_analysis([], []).collaboration_score == 0


class TestDataQuality:
    """Tests for analyze_data_quality."""

    def test_complete_data_should_score_100(self) -> None:
        """Fully populated records score perfectly."""
        quality = analyze_data_quality([message("1", "slack", 0)], [meeting("m", "teams", 0)])

        assert quality.overall_score == 100

    def test_missing_fields_should_lower_score(self) -> None:
        """Unknown authors, empty content and missing channels reduce the score."""
        messages = [message("1", "slack", 0, author="unknown", content=" ", channel=None)]

        quality = analyze_data_quality(messages, [])

        assert quality.messages.with_author == 0
        assert quality.messages.with_content == 0
        assert quality.messages.with_timestamp == 1
        # messages 25, meetings 100 (empty)
        assert quality.overall_score == 62

    def test_build_analytics_should_return_every_section(self) -> None:
        """The analytics payload bundles all four analyses."""
        body = build_analytics([message("1", "slack", 0)], [])

        assert set(body) == {"messageStats", "meetingStats", "crossServiceAnalysis", "dataQuality"}
        assert body["dataQuality"]["overallScore"] == 100
