from abc import ABC, abstractmethod

from photomatch.media.models import NormalizedAsset, SourceFile


class BaseMediaNormalizer(ABC):
    """Contract for all media normalization adapters."""

    @abstractmethod
    def normalize(self, source: SourceFile) -> NormalizedAsset:
        """Convert a source file into a web-safe image.

        Args:
            source: Raw file as submitted.

        Returns:
            NormalizedAsset with re-encoded bytes and final MIME type.

        Raises:
            ConversionError: if the file cannot be decoded or re-encoded.
        """
