from collections.abc import Callable

import pytest
from fakes import FakeFaceRecognizer, InMemoryBlobStore, RecordingSleep, make_image_bytes

from photomatch.media.models import SourceFile


@pytest.fixture()
def jpeg_bytes() -> bytes:
    return make_image_bytes()


@pytest.fixture()
def large_jpeg_bytes() -> bytes:
    return make_image_bytes(size=(4000, 3000))


@pytest.fixture()
def png_bytes() -> bytes:
    return make_image_bytes(fmt="PNG")


@pytest.fixture()
def make_source(jpeg_bytes: bytes) -> Callable[..., SourceFile]:
    def _make(name: str, data: bytes | None = None, content_type: str = "image/jpeg") -> SourceFile:
        return SourceFile(name=name, data=jpeg_bytes if data is None else data, content_type=content_type)

    return _make


@pytest.fixture()
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture()
def recognizer() -> FakeFaceRecognizer:
    return FakeFaceRecognizer()


@pytest.fixture()
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
