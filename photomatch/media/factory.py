from photomatch.config.settings import Settings
from photomatch.media.base import BaseMediaNormalizer
from photomatch.media.passthrough_normalizer import PassthroughNormalizer
from photomatch.media.pillow_normalizer import PillowNormalizer


class MediaNormalizerFactory:
    """Creates the configured media normalizer."""

    NORMALIZERS = ("pillow", "passthrough")

    @classmethod
    def create(cls, settings: Settings) -> BaseMediaNormalizer:
        name = settings.media_normalizer.lower()
        if name == "pillow":
            return PillowNormalizer(
                max_dimension=settings.max_image_dimension,
                quality=settings.jpeg_quality,
            )
        if name == "passthrough":
            return PassthroughNormalizer()
        raise ValueError(
            f"Unknown media normalizer '{name}'. Choose from: {list(cls.NORMALIZERS)}"
        )
