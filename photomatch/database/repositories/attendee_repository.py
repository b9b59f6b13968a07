from typing import Any

from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from photomatch.database.connection import get_connection
from photomatch.database.models import AttendeeMatchRecord

_COLUMNS = "user_id, event_id, selfie_key, matched_image_keys, created_at, updated_at"


class AttendeeMatchRepository:
    """Database operations for the attendee_matches table."""

    def save(self, record: AttendeeMatchRecord) -> None:
        """Upsert the selfie and matched images for (user, event)."""
        with get_connection() as conn:
            conn.execute(
                """
                INSERT INTO attendee_matches (user_id, event_id, selfie_key, matched_image_keys)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (user_id, event_id) DO UPDATE
                SET selfie_key = EXCLUDED.selfie_key,
                    matched_image_keys = EXCLUDED.matched_image_keys,
                    updated_at = NOW()
                """,
                (
                    record.user_id,
                    record.event_id,
                    record.selfie_key,
                    Jsonb(record.matched_image_keys),
                ),
            )
            conn.commit()

    def find(self, user_id: str, event_id: str) -> AttendeeMatchRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_COLUMNS} FROM attendee_matches WHERE user_id = %s AND event_id = %s",
                    (user_id, event_id),
                )
                row = cur.fetchone()
        return _to_record(row) if row is not None else None

    def find_by_user(self, user_id: str) -> list[AttendeeMatchRecord]:
        """All events a user has searched, most recently updated first."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_COLUMNS} FROM attendee_matches
                    WHERE user_id = %s
                    ORDER BY updated_at DESC
                    """,
                    (user_id,),
                )
                rows = cur.fetchall()
        return [_to_record(row) for row in rows]


def _to_record(row: dict[str, Any]) -> AttendeeMatchRecord:
    return AttendeeMatchRecord(
        user_id=row["user_id"],
        event_id=row["event_id"],
        selfie_key=row["selfie_key"],
        matched_image_keys=list(row["matched_image_keys"] or []),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
