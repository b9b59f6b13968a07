from dataclasses import dataclass, field


@dataclass(frozen=True)
class FaceMatch:
    """A single face hit returned by the face-recognition service."""

    external_image_id: str
    similarity: float
    face_id: str = ""


@dataclass(frozen=True)
class MatchResult:
    """Best similarity for one stored image."""

    image_key: str
    similarity: float


@dataclass(frozen=True)
class IndexFailure:
    image_key: str
    error: str


@dataclass
class IndexBatchResult:
    """Outcome of indexing a list of stored images."""

    successful: list[str] = field(default_factory=list)
    failed: list[IndexFailure] = field(default_factory=list)
    already_indexed: list[str] = field(default_factory=list)
    total_images: int = 0
