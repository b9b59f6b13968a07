import io

import pillow_heif
from PIL import Image, ImageOps, UnidentifiedImageError

from photomatch.formats.classifier import JPEG, classify
from photomatch.logging.logger import Log
from photomatch.media.base import BaseMediaNormalizer
from photomatch.media.exceptions import ConversionError
from photomatch.media.models import NormalizedAsset, SourceFile

_DECODE_ERRORS = (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError)


def scaled_size(width: int, height: int, max_dimension: int) -> tuple[int, int]:
    """Fit (width, height) inside a max_dimension square, keeping aspect ratio."""
    if width <= max_dimension and height <= max_dimension:
        return width, height
    if width > height:
        return max_dimension, max(1, round(height * max_dimension / width))
    return max(1, round(width * max_dimension / height)), max_dimension


class PillowNormalizer(BaseMediaNormalizer):
    """Resizes and re-encodes images as JPEG using Pillow; HEIC/HEIF via pillow-heif."""

    def __init__(self, *, max_dimension: int = 2048, quality: int = 80) -> None:
        self._max_dimension = max_dimension
        self._quality = quality

    def normalize(self, source: SourceFile) -> NormalizedAsset:
        descriptor = classify(source.name, source.content_type)
        if descriptor is None:
            raise ConversionError(f"{source.name} is not an image")

        if descriptor.is_heif:
            data = self._convert_heif(source)
        elif descriptor.needs_conversion:
            raise ConversionError(
                f"No decoder available for {descriptor.description} ({source.name})"
            )
        else:
            data = self._resize_and_encode(source)

        Log.debug(f"Normalized {source.name}: {source.size} -> {len(data)} bytes")
        return NormalizedAsset(data=data, content_type=JPEG, source=source)

    def _convert_heif(self, source: SourceFile) -> bytes:
        # pillow-heif decodes at display size, so no resize step here
        try:
            heif_file = pillow_heif.open_heif(io.BytesIO(source.data), convert_hdr_to_8bit=True)
            with heif_file.to_pillow() as image:
                return self._encode_jpeg(image)
        except (*_DECODE_ERRORS, RuntimeError) as exc:
            raise ConversionError(f"HEIF conversion failed for {source.name}: {exc}") from exc

    def _resize_and_encode(self, source: SourceFile) -> bytes:
        try:
            with Image.open(io.BytesIO(source.data)) as image:
                image.load()
                oriented = ImageOps.exif_transpose(image)
                size = scaled_size(oriented.width, oriented.height, self._max_dimension)
                if size != oriented.size:
                    oriented = oriented.resize(size, Image.Resampling.LANCZOS)
                return self._encode_jpeg(oriented)
        except _DECODE_ERRORS as exc:
            raise ConversionError(f"Image decoding failed for {source.name}: {exc}") from exc

    def _encode_jpeg(self, image: Image.Image) -> bytes:
        if image.mode != "RGB":
            image = image.convert("RGB")
        buffer = io.BytesIO()
        image.save(buffer, format="JPEG", quality=self._quality, optimize=True)
        return buffer.getvalue()
