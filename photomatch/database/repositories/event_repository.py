from typing import Any

from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from photomatch.database.connection import get_connection
from photomatch.database.models import EventRecord
from photomatch.service.exceptions import EventNotFoundError

_COLUMNS = """
    id, name, organizer_email, email_access, anyone_can_upload, photo_count,
    total_image_bytes, total_compressed_bytes, created_at, updated_at
"""


class EventRepository:
    """Database operations for the events table."""

    def find_by_id(self, event_id: str) -> EventRecord:
        """Find an event by ID.

        Raises:
            EventNotFoundError: if no event with this ID exists.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(f"SELECT {_COLUMNS} FROM events WHERE id = %s", (event_id,))
                row = cur.fetchone()

        if row is None:
            raise EventNotFoundError(f"Event {event_id} not found")
        return _to_record(row)

    def save(self, event: EventRecord) -> None:
        """Insert an event or update its descriptive fields."""
        with get_connection() as conn:
            conn.execute(
                """
                INSERT INTO events (id, name, organizer_email, email_access, anyone_can_upload)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (id) DO UPDATE
                SET name = EXCLUDED.name,
                    organizer_email = EXCLUDED.organizer_email,
                    email_access = EXCLUDED.email_access,
                    anyone_can_upload = EXCLUDED.anyone_can_upload,
                    updated_at = NOW()
                """,
                (
                    event.id,
                    event.name,
                    event.organizer_email,
                    Jsonb(event.email_access),
                    event.anyone_can_upload,
                ),
            )
            conn.commit()

    def add_upload_totals(
        self,
        event_id: str,
        *,
        photos: int,
        original_bytes: int,
        compressed_bytes: int,
    ) -> None:
        """Atomically add a finished batch to the event's counters."""
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE events
                SET photo_count = photo_count + %s,
                    total_image_bytes = total_image_bytes + %s,
                    total_compressed_bytes = total_compressed_bytes + %s,
                    updated_at = NOW()
                WHERE id = %s
                """,
                (photos, original_bytes, compressed_bytes, event_id),
            )
            conn.commit()


def _to_record(row: dict[str, Any]) -> EventRecord:
    return EventRecord(
        id=row["id"],
        name=row["name"],
        organizer_email=row["organizer_email"],
        email_access=list(row["email_access"] or []),
        anyone_can_upload=row["anyone_can_upload"],
        photo_count=row["photo_count"],
        total_image_bytes=row["total_image_bytes"],
        total_compressed_bytes=row["total_compressed_bytes"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
