from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class UploadOutcome(str, Enum):
    STORED = "stored"
    DUPLICATE_SKIPPED = "duplicate-skipped"
    INVALID = "invalid"
    FAILED = "failed-after-retries"


class ErrorKind(str, Enum):
    NETWORK = "network"
    TIMEOUT = "timeout"
    STORAGE = "storage"
    UNKNOWN = "unknown"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TransferRecord:
    """Bookkeeping for one file's transfer attempts."""

    remote_key: str
    attempt_count: int = 0
    last_error_kind: ErrorKind | None = None
    last_error: str | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None
    bytes_transferred: int = 0

    def begin_attempt(self, attempt: int) -> None:
        self.attempt_count = attempt
        if self.started_at is None:
            self.started_at = utcnow()

    def record_error(self, kind: ErrorKind, message: str) -> None:
        self.last_error_kind = kind
        self.last_error = message

    def complete(self, size: int) -> None:
        self.bytes_transferred = size
        self.ended_at = utcnow()


@dataclass
class FileResult:
    """Final outcome for one submitted file."""

    name: str
    batch_index: int
    outcome: UploadOutcome
    remote_key: str | None = None
    reason: str | None = None
    normalized: bool = False
    original_size: int = 0
    stored_size: int = 0
    transfer: TransferRecord | None = None


@dataclass
class BatchResult:
    """Per-file outcomes of one batch submission, in submission order."""

    event_id: str
    files: list[FileResult] = field(default_factory=list)

    def _with(self, outcome: UploadOutcome) -> list[FileResult]:
        return [f for f in self.files if f.outcome == outcome]

    @property
    def submitted(self) -> int:
        return len(self.files)

    @property
    def stored(self) -> list[FileResult]:
        return self._with(UploadOutcome.STORED)

    @property
    def duplicates(self) -> list[FileResult]:
        return self._with(UploadOutcome.DUPLICATE_SKIPPED)

    @property
    def invalid(self) -> list[FileResult]:
        return self._with(UploadOutcome.INVALID)

    @property
    def failed(self) -> list[FileResult]:
        return self._with(UploadOutcome.FAILED)

    @property
    def stored_keys(self) -> list[str]:
        return [f.remote_key for f in self.stored if f.remote_key]

    @property
    def stored_original_bytes(self) -> int:
        return sum(f.original_size for f in self.stored)

    @property
    def stored_bytes(self) -> int:
        return sum(f.stored_size for f in self.stored)
