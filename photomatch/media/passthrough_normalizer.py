from photomatch.formats.classifier import classify
from photomatch.media.base import BaseMediaNormalizer
from photomatch.media.exceptions import ConversionError
from photomatch.media.models import NormalizedAsset, SourceFile


class PassthroughNormalizer(BaseMediaNormalizer):
    """Uploads files as submitted; formats that need conversion are refused."""

    def normalize(self, source: SourceFile) -> NormalizedAsset:
        descriptor = classify(source.name, source.content_type)
        if descriptor is None or descriptor.needs_conversion:
            raise ConversionError(f"{source.name} requires conversion")
        return NormalizedAsset(
            data=source.data,
            content_type=descriptor.mime_type,
            source=source,
            normalized=False,
        )
