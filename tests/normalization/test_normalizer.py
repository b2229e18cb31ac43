"""Tests for mapping raw provider records onto unified entities."""

from datetime import datetime, timezone

import pytest

from linksense.errors import NormalizationError
from linksense.normalization.models import CONTAINER_KEY, ActivityType, UnifiedMessage
from linksense.normalization.normalizer import (
    normalize,
    normalize_batch,
    parse_graph_datetime,
    parse_timestamp,
    to_activity,
)

NOON = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


class TestParseTimestamp:
    """Tests for timestamp parsing."""

    @pytest.mark.parametrize(
        "value",
        [
            1710072000,
            1710072000000,
            "1710072000",
            "1710072000.000000",
            "2024-03-10T12:00:00Z",
            "2024-03-10T12:00:00+00:00",
            "2024-03-10T21:00:00+09:00",
            "2024-03-10T12:00:00",
            "2024-03-10T12:00:00.0000000Z",
        ],
    )
    def test_should_parse_every_provider_format_to_utc(self, value) -> None:
        """Epoch seconds, epoch milliseconds and ISO strings all land on the same instant."""
        parsed = parse_timestamp(value)

        assert parsed == NOON
        assert parsed.tzinfo is not None

    def test_should_keep_slack_fraction(self) -> None:
        """Slack ts fractions survive as microseconds."""
        assert parse_timestamp("1710072000.000100").microsecond == 100

    def test_date_only_should_be_midnight_utc(self) -> None:
        """All-day events start at midnight UTC."""
        assert parse_timestamp("2024-03-10") == datetime(2024, 3, 10, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", [None, "", "yesterday", True, {"a": 1}])
    def test_should_reject_unparseable_values(self, value) -> None:
        """Missing or garbage timestamps raise ValueError."""
        with pytest.raises(ValueError):
            parse_timestamp(value)

    @pytest.mark.parametrize("value", [float("inf"), float("nan"), 10**40, 10**400, "1e400"])
    def test_should_reject_out_of_range_epochs(self, value) -> None:
        """Epochs beyond what a datetime can hold raise ValueError, not OverflowError."""
        with pytest.raises(ValueError):
            parse_timestamp(value)

    def test_graph_datetime_should_default_to_utc(self) -> None:
        """Graph pairs in UTC or an unknown zone name are taken as UTC."""
        assert (
            parse_graph_datetime({"dateTime": "2024-03-10T12:00:00.0000000", "timeZone": "UTC"})
            == NOON
        )
        assert (
            parse_graph_datetime(
                {"dateTime": "2024-03-10T12:00:00.0000000", "timeZone": "Tokyo Standard Time"}
            )
            == NOON
        )


class TestMessageMappers:
    """Tests for per-provider message mapping."""

    def test_slack_message_should_map_all_fields(self) -> None:
        """Slack fields map onto the unified message."""
        raw = {
            "type": "message",
            "ts": "1710072000.000000",
            "thread_ts": "1710071000.000000",
            "user": "U1",
            "user_profile": {"display_name": "alice", "email": "alice@acme.io"},
            "text": "hello",
            "reactions": [{"name": "tada", "count": 2, "users": ["U2", "U3"]}],
            "files": [{"mimetype": "image/png", "url_private": "https://files/x", "name": "x.png"}],
            CONTAINER_KEY: {"id": "C1", "name": "general"},
        }

        message = normalize("slack", "messages", raw, include_metadata=True)

        assert isinstance(message, UnifiedMessage)
        assert message.id == "1710072000.000000"
        assert message.timestamp == NOON
        assert message.author.id == "U1"
        assert message.author.name == "alice"
        assert message.channel is not None and message.channel.name == "general"
        assert message.thread is not None
        assert message.thread.parent_id == "1710071000.000000"
        assert message.reactions[0].emoji == "tada"
        assert message.reactions[0].users == ["U2", "U3"]
        assert message.attachments[0].name == "x.png"
        assert message.metadata is not None
        assert CONTAINER_KEY not in message.metadata["originalData"]

    def test_discord_message_should_map_reply_and_avatar(self) -> None:
        """Discord replies reference the original message."""
        raw = {
            "id": "900",
            "timestamp": "2024-03-10T12:00:00.000000+00:00",
            "author": {"id": "42", "username": "bob", "global_name": "Bob", "avatar": "abc"},
            "content": "hi",
            "message_reference": {"message_id": "899"},
            CONTAINER_KEY: {"id": "100", "name": "general", "parent_id": "G1"},
        }

        message = normalize("discord", "messages", raw)

        assert message.author.name == "Bob"
        assert message.author.avatar == "https://cdn.discordapp.com/avatars/42/abc.png"
        assert message.thread is not None and message.thread.parent_id == "899"
        assert message.channel is not None and message.channel.id == "100"

    def test_teams_message_should_map_body_and_sender(self) -> None:
        """Teams messages take the HTML body and the user sender."""
        raw = {
            "id": "m1",
            "createdDateTime": "2024-03-10T12:00:00.123Z",
            "from": {"user": {"id": "u1", "displayName": "Carol"}},
            "body": {"content": "<p>hey</p>"},
            "replyToId": "m0",
        }

        message = normalize("teams", "messages", raw)

        assert message.content == "<p>hey</p>"
        assert message.author.name == "Carol"
        assert message.thread is not None and message.thread.parent_id == "m0"

    def test_chatwork_message_should_map_account(self) -> None:
        """ChatWork messages map account and epoch send time."""
        raw = {
            "message_id": "5",
            "send_time": 1710072000,
            "account": {"account_id": 7, "name": "Dan"},
            "body": "[info]hi[/info]",
        }

        message = normalize("chatwork", "messages", raw)

        assert message.id == "5"
        assert message.author.id == "7"
        assert message.timestamp == NOON

    def test_line_works_message_should_map_content_text(self) -> None:
        """LINE WORKS messages read their text from the content object."""
        raw = {
            "messageId": "lw1",
            "createdTime": "2024-03-10T12:00:00Z",
            "createdBy": {"userId": "w1", "displayName": "Eve"},
            "content": {"text": "good morning"},
        }

        message = normalize("line-works", "messages", raw)

        assert message.content == "good morning"
        assert message.author.name == "Eve"
        assert message.channel is None

    def test_missing_author_should_fall_back_to_unknown(self) -> None:
        """An author is never missing."""
        message = normalize("slack", "messages", {"ts": "1710072000", "text": "bot"})

        assert message.author.id == "unknown"
        assert message.author.name == "unknown"


class TestMeetingMappers:
    """Tests for calendar meeting mapping."""

    def test_google_meeting_should_map_times_and_attendees(self) -> None:
        """Events with a Meet link become meetings."""
        raw = {
            "id": "g1",
            "summary": "Standup",
            "hangoutLink": "https://meet.google.com/abc",
            "start": {"dateTime": "2024-03-10T12:00:00Z"},
            "end": {"dateTime": "2024-03-10T12:30:00Z"},
            "organizer": {"email": "lead@acme.io"},
            "attendees": [{"email": "a@acme.io", "displayName": "A"}, {"email": "b@acme.io"}],
        }

        meeting = normalize("google-meet", "meetings", raw, include_metadata=True)

        assert meeting.title == "Standup"
        assert meeting.start_time == NOON
        assert meeting.duration == 30
        assert meeting.organizer.email == "lead@acme.io"
        assert [p.name for p in meeting.participants] == ["A", "b@acme.io"]
        assert meeting.metadata["meetUrl"] == "https://meet.google.com/abc"

    def test_google_plain_event_should_be_ignored(self) -> None:
        """Calendar events without a conference are not meetings."""
        raw = {"id": "g2", "start": {"dateTime": "2024-03-10T12:00:00Z"}, "location": "Room 4"}

        assert normalize("google-meet", "meetings", raw) is None

    def test_teams_meeting_should_default_title_and_organizer(self) -> None:
        """Missing subject and organizer fall back to defaults."""
        raw = {
            "id": "t1",
            "isOnlineMeeting": True,
            "start": {"dateTime": "2024-03-10T12:00:00.0000000", "timeZone": "UTC"},
            "end": {"dateTime": "2024-03-10T13:00:00.0000000", "timeZone": "UTC"},
        }

        meeting = normalize("teams", "meetings", raw)

        assert meeting.title == "Untitled Meeting"
        assert meeting.organizer.name == "unknown"
        assert meeting.duration == 60
        assert meeting.metadata is None


class TestNormalize:
    """Tests for dispatch, error handling and batches."""

    def test_unsupported_pair_should_raise(self) -> None:
        """Providers without a mapping for a kind are rejected."""
        with pytest.raises(NormalizationError):
            normalize("zoom", "messages", {"id": "1"})

    def test_malformed_record_should_raise_normalization_error(self) -> None:
        """Unparseable fields surface as NormalizationError with the record id."""
        with pytest.raises(NormalizationError) as exc_info:
            normalize("discord", "messages", {"id": "1", "timestamp": "not a date"})

        assert exc_info.value.record_id == "1"

    def test_metadata_should_be_stripped_by_default(self) -> None:
        """Provider metadata is only kept on request."""
        message = normalize("chatwork", "messages", {"message_id": "1", "send_time": 1710072000})

        assert message.metadata is None
        assert "metadata" not in message.to_response()

    def test_batch_should_skip_malformed_records(self) -> None:
        """One bad record does not fail the rest of the batch."""
        records = [
            {"ts": "1710072000", "text": "ok"},
            {"text": "no ts"},
            "not even a dict",
            {"ts": "1710072060", "text": "also ok"},
        ]

        messages = normalize_batch("slack", "messages", records)

        assert [m.content for m in messages] == ["ok", "also ok"]

    def test_batch_should_skip_out_of_range_epochs(self) -> None:
        """An overflowing timestamp drops only its own record."""
        records = [
            {"message_id": "1", "send_time": 1710072000},
            {"message_id": "2", "send_time": float("inf")},
            {"message_id": "3", "send_time": 10**40},
        ]

        messages = normalize_batch("chatwork", "messages", records)

        assert [m.timestamp for m in messages] == [NOON]

    def test_batch_should_drop_non_meetings_silently(self) -> None:
        """Plain calendar events are filtered without being counted as errors."""
        events = [
            {"id": "a", "start": {"date": "2024-03-10"}},
            {"id": "b", "start": {"date": "2024-03-10"}, "conferenceData": {"entryPoints": []}},
        ]

        assert [m.id for m in normalize_batch("google-meet", "meetings", events)] == ["b"]

    def test_response_should_use_camel_case(self) -> None:
        """Serialized meetings use camelCase keys."""
        meeting = normalize(
            "google-meet",
            "meetings",
            {"id": "g", "hangoutLink": "x", "start": {"dateTime": "2024-03-10T12:00:00Z"}},
        )

        body = meeting.to_response()

        assert body["startTime"] == "2024-03-10T12:00:00Z"
        assert "start_time" not in body


class TestToActivity:
    """Tests for the activity projection."""

    def test_message_should_project_author_and_content(self) -> None:
        """Messages become message activities attributed to their author."""
        message = normalize(
            "slack",
            "messages",
            {"ts": "1710072000", "user": "U1", "text": "hi", CONTAINER_KEY: {"id": "C1"}},
        )

        activity = to_activity(message)

        assert activity.id == "message-1710072000"
        assert activity.type == ActivityType.MESSAGE
        assert activity.user.id == "U1"
        assert activity.details["content"] == "hi"
        assert activity.details["channel"] == "C1"

    def test_meeting_should_project_organizer_and_start(self) -> None:
        """Meetings become meeting activities at their start time."""
        meeting = normalize(
            "teams",
            "meetings",
            {
                "id": "t1",
                "subject": "Review",
                "onlineMeeting": {"joinUrl": "https://teams.microsoft.com/l/x"},
                "start": {"dateTime": "2024-03-10T12:00:00", "timeZone": "UTC"},
                "organizer": {"emailAddress": {"name": "Frank", "address": "f@acme.io"}},
            },
        )

        activity = to_activity(meeting)

        assert activity.id == "meeting-t1"
        assert activity.type == ActivityType.MEETING
        assert activity.timestamp == NOON
        assert activity.user.name == "Frank"
        assert activity.details["title"] == "Review"
