from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class EventRecord:
    """Represents a row from the events table."""

    id: str
    name: str
    organizer_email: str
    email_access: list[str] = field(default_factory=list)
    anyone_can_upload: bool = False
    photo_count: int = 0
    total_image_bytes: int = 0
    total_compressed_bytes: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def can_upload(self, email: str) -> bool:
        """Organizer, invited addresses, or anyone when the event is open."""
        if self.anyone_can_upload:
            return True
        normalized = email.strip().lower()
        allowed = {self.organizer_email.lower(), *(e.lower() for e in self.email_access)}
        return normalized in allowed


@dataclass
class AttendeeMatchRecord:
    """Represents a row from the attendee_matches table."""

    user_id: str
    event_id: str
    selfie_key: str
    matched_image_keys: list[str] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None
