from pathlib import Path

from photomatch.config.settings import Settings
from photomatch.storage.base import BaseBlobStore
from photomatch.storage.local_adapter import LocalBlobStore
from photomatch.storage.s3_adapter import S3BlobStore


class BlobStoreFactory:
    """Creates the configured blob store adapter."""

    BACKENDS = ("s3", "local")

    @classmethod
    def create(cls, settings: Settings) -> BaseBlobStore:
        backend = settings.storage_backend.lower()
        if backend == "s3":
            return S3BlobStore(
                bucket_name=settings.s3_bucket_name,
                region=settings.aws_region,
                access_key_id=settings.aws_access_key_id,
                secret_access_key=settings.aws_secret_access_key,
            )
        if backend == "local":
            return LocalBlobStore(Path(settings.local_storage_root))
        raise ValueError(
            f"Unknown storage backend '{backend}'. Choose from: {list(cls.BACKENDS)}"
        )
