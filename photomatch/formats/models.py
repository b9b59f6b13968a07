from dataclasses import dataclass
from enum import Enum


class FormatCategory(str, Enum):
    WEB = "web"
    RAW = "raw"
    PRINT = "print"
    ANIMATION = "animation"
    VECTOR = "vector"


@dataclass(frozen=True)
class FormatDescriptor:
    """Static description of an image file format."""

    extension: str
    mime_type: str
    description: str
    category: FormatCategory
    is_supported: bool
    needs_conversion: bool
    target_mime_type: str | None = None

    @property
    def is_heif(self) -> bool:
        return self.extension in (".heic", ".heif")
