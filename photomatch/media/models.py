from dataclasses import dataclass


@dataclass
class SourceFile:
    """Raw input file as submitted by an organizer or attendee."""

    name: str
    data: bytes
    content_type: str = ""
    size: int = 0

    def __post_init__(self) -> None:
        if not self.size:
            self.size = len(self.data)


@dataclass(frozen=True)
class NormalizedAsset:
    """Web-safe image bytes ready for transfer."""

    data: bytes
    content_type: str
    source: SourceFile
    normalized: bool = True

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_original(cls, source: SourceFile, content_type: str | None = None) -> "NormalizedAsset":
        """Wrap the untouched source bytes when normalization is skipped or fails."""
        return cls(
            data=source.data,
            content_type=content_type or source.content_type or "application/octet-stream",
            source=source,
            normalized=False,
        )
