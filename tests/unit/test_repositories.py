from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from photomatch.database.models import AttendeeMatchRecord, EventRecord
from photomatch.database.repositories.attendee_repository import AttendeeMatchRepository
from photomatch.database.repositories.event_repository import EventRepository
from photomatch.service.exceptions import EventNotFoundError

NOW = datetime(2024, 5, 1, tzinfo=timezone.utc)


def _event_row() -> dict:
    return {
        "id": "evt1",
        "name": "Spring Gala",
        "organizer_email": "org@example.com",
        "email_access": ["friend@example.com"],
        "anyone_can_upload": False,
        "photo_count": 12,
        "total_image_bytes": 5000,
        "total_compressed_bytes": 2000,
        "created_at": NOW,
        "updated_at": NOW,
    }


def _match_row() -> dict:
    return {
        "user_id": "u1",
        "event_id": "evt1",
        "selfie_key": "users/u1/selfies/selfie-1-me.jpg",
        "matched_image_keys": ["events/shared/evt1/images/1-0-a.jpg"],
        "created_at": NOW,
        "updated_at": NOW,
    }


def _mock_connection(mock_get_conn: MagicMock) -> tuple[MagicMock, MagicMock]:
    """Wire up a mock connection + cursor and return (mock_conn, mock_cursor)."""
    mock_cursor = MagicMock()
    mock_conn = MagicMock()
    mock_conn.cursor.return_value.__enter__ = MagicMock(return_value=mock_cursor)
    mock_conn.cursor.return_value.__exit__ = MagicMock(return_value=False)
    mock_get_conn.return_value.__enter__ = MagicMock(return_value=mock_conn)
    mock_get_conn.return_value.__exit__ = MagicMock(return_value=False)
    return mock_conn, mock_cursor


class TestEventFindById:
    @patch("photomatch.database.repositories.event_repository.get_connection")
    def test_returns_event_when_found(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = _event_row()

        event = EventRepository().find_by_id("evt1")

        assert isinstance(event, EventRecord)
        assert event.name == "Spring Gala"
        assert event.email_access == ["friend@example.com"]
        assert event.photo_count == 12

    @patch("photomatch.database.repositories.event_repository.get_connection")
    def test_raises_when_missing(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = None

        with pytest.raises(EventNotFoundError, match="Event nope not found"):
            EventRepository().find_by_id("nope")


class TestEventWrites:
    @patch("photomatch.database.repositories.event_repository.get_connection")
    def test_save_upserts_and_commits(self, mock_get_conn: MagicMock) -> None:
        mock_conn, _cursor = _mock_connection(mock_get_conn)

        EventRepository().save(EventRecord(id="evt1", name="Gala", organizer_email="o@x.com"))

        sql, params = mock_conn.execute.call_args.args
        assert "ON CONFLICT (id) DO UPDATE" in sql
        assert params[0] == "evt1"
        mock_conn.commit.assert_called_once()

    @patch("photomatch.database.repositories.event_repository.get_connection")
    def test_add_upload_totals_increments(self, mock_get_conn: MagicMock) -> None:
        mock_conn, _cursor = _mock_connection(mock_get_conn)

        EventRepository().add_upload_totals(
            "evt1", photos=3, original_bytes=3000, compressed_bytes=1200
        )

        sql, params = mock_conn.execute.call_args.args
        assert "photo_count = photo_count + %s" in sql
        assert params == (3, 3000, 1200, "evt1")
        mock_conn.commit.assert_called_once()


class TestAttendeeMatches:
    @patch("photomatch.database.repositories.attendee_repository.get_connection")
    def test_save_upserts_by_user_and_event(self, mock_get_conn: MagicMock) -> None:
        mock_conn, _cursor = _mock_connection(mock_get_conn)
        record = AttendeeMatchRecord("u1", "evt1", "users/u1/selfies/s.jpg", ["k1", "k2"])

        AttendeeMatchRepository().save(record)

        sql, params = mock_conn.execute.call_args.args
        assert "ON CONFLICT (user_id, event_id) DO UPDATE" in sql
        assert params[:3] == ("u1", "evt1", "users/u1/selfies/s.jpg")
        assert params[3].obj == ["k1", "k2"]
        mock_conn.commit.assert_called_once()

    @patch("photomatch.database.repositories.attendee_repository.get_connection")
    def test_find_returns_record(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = _match_row()

        record = AttendeeMatchRepository().find("u1", "evt1")

        assert record is not None
        assert record.matched_image_keys == ["events/shared/evt1/images/1-0-a.jpg"]

    @patch("photomatch.database.repositories.attendee_repository.get_connection")
    def test_find_returns_none_when_missing(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = None

        assert AttendeeMatchRepository().find("u1", "evt1") is None

    @patch("photomatch.database.repositories.attendee_repository.get_connection")
    def test_find_by_user(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchall.return_value = [_match_row(), {**_match_row(), "event_id": "evt2"}]

        records = AttendeeMatchRepository().find_by_user("u1")

        assert [r.event_id for r in records] == ["evt1", "evt2"]


class TestEventRecordPermissions:
    def test_organizer_can_upload(self) -> None:
        event = EventRecord(id="e", name="n", organizer_email="Org@Example.com")
        assert event.can_upload("org@example.com")

    def test_invited_email_can_upload(self) -> None:
        event = EventRecord(id="e", name="n", organizer_email="o@x.com", email_access=["guest@x.com"])
        assert event.can_upload(" Guest@X.com ")

    def test_stranger_cannot_upload(self) -> None:
        event = EventRecord(id="e", name="n", organizer_email="o@x.com")
        assert not event.can_upload("stranger@x.com")

    def test_open_event_accepts_anyone(self) -> None:
        event = EventRecord(id="e", name="n", organizer_email="o@x.com", anyone_can_upload=True)
        assert event.can_upload("stranger@x.com")
