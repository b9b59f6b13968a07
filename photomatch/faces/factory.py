from photomatch.config.settings import Settings
from photomatch.faces.base import BaseFaceRecognizer
from photomatch.faces.rekognition_adapter import RekognitionFaceRecognizer


class FaceRecognizerFactory:
    """Creates the configured face-recognition adapter."""

    BACKENDS = ("rekognition",)

    @classmethod
    def create(cls, settings: Settings) -> BaseFaceRecognizer:
        backend = settings.face_backend.lower()
        if backend == "rekognition":
            return RekognitionFaceRecognizer(
                bucket_name=settings.s3_bucket_name,
                region=settings.aws_region,
                access_key_id=settings.aws_access_key_id,
                secret_access_key=settings.aws_secret_access_key,
                max_faces=settings.index_max_faces,
            )
        raise ValueError(
            f"Unknown face backend '{backend}'. Choose from: {list(cls.BACKENDS)}"
        )
