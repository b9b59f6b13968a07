import asyncio
from unittest.mock import MagicMock

import pytest

from fakes import InMemoryBlobStore, RecordingSleep, make_image_bytes, no_sleep

from photomatch.media.exceptions import ConversionError
from photomatch.media.models import SourceFile
from photomatch.media.passthrough_normalizer import PassthroughNormalizer
from photomatch.media.pillow_normalizer import PillowNormalizer
from photomatch.naming import event_image_key
from photomatch.retry.backoff import RetryPolicy
from photomatch.storage.exceptions import StorageError, StorageNetworkError
from photomatch.upload.backpressure import InFlightBudget
from photomatch.upload.intake import IntakeFilter
from photomatch.upload.models import ErrorKind, UploadOutcome
from photomatch.upload.orchestrator import MIB, UploadOrchestrator
from photomatch.upload.progress import ProgressTracker

FAST_RETRY = RetryPolicy(max_attempts=5, initial_delay=2.0, max_delay=30.0, jitter=0.0)


class SlowBlobStore(InMemoryBlobStore):
    """Yields to the loop during put and records peak concurrency."""

    def __init__(self, delay: float = 0.0) -> None:
        super().__init__()
        self.delay = delay
        self.active = 0
        self.peak = 0

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            for _ in range(3):
                await asyncio.sleep(self.delay)
            return await super().put(key, data, content_type)
        finally:
            self.active -= 1


class SilentSuccessStore(InMemoryBlobStore):
    """Stores the object but reports a network failure."""

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        await super().put(key, data, content_type)
        raise StorageNetworkError("connection reset after body sent")


def _orchestrator(store: InMemoryBlobStore, **kwargs) -> UploadOrchestrator:  # type: ignore[no-untyped-def]
    options = {
        "retry_policy": FAST_RETRY,
        "sleep": no_sleep,
        "clock_ms": lambda: 1700000000000,
    }
    options.update(kwargs)
    normalizer = options.pop("normalizer", PassthroughNormalizer())
    intake = IntakeFilter(max_file_size=10 * MIB, disallowed_patterns=["selfie"])
    return UploadOrchestrator(store, normalizer, intake, **options)


def _jpegs(count: int) -> list[SourceFile]:
    data = make_image_bytes()
    return [SourceFile(f"photo{i}.jpg", data, "image/jpeg") for i in range(count)]


class TestSubmitBatch:
    async def test_stores_every_valid_file(self, blob_store: InMemoryBlobStore) -> None:
        result = await _orchestrator(blob_store).submit_batch(_jpegs(3), "evt1")

        assert result.submitted == 3
        assert len(result.stored) == 3
        assert result.stored_keys == [
            event_image_key("evt1", 1700000000000, i, f"photo{i}.jpg") for i in range(3)
        ]
        assert set(blob_store.objects) == set(result.stored_keys)

    async def test_accounting_covers_every_file(self, blob_store: InMemoryBlobStore) -> None:
        blob_store.errors["broken"] = [StorageError("denied")] * 5
        data = make_image_bytes()
        files = [
            SourceFile("a.jpg", data, "image/jpeg"),
            SourceFile("a.jpg", data, "image/jpeg"),
            SourceFile("my selfie.jpg", data, "image/jpeg"),
            SourceFile("broken.jpg", data, "image/jpeg"),
            SourceFile("notes.txt", b"text", "text/plain"),
        ]

        result = await _orchestrator(blob_store).submit_batch(files, "evt1")

        assert len(result.stored) == 1
        assert len(result.duplicates) == 1
        assert len(result.invalid) == 2
        assert len(result.failed) == 1
        assert result.submitted == len(files)
        assert [f.batch_index for f in result.files] == [0, 1, 2, 3, 4]

    async def test_skips_files_already_stored(self, blob_store: InMemoryBlobStore) -> None:
        blob_store.objects[event_image_key("evt1", 1, 0, "photo0.jpg")] = b"x"

        result = await _orchestrator(blob_store).submit_batch(_jpegs(2), "evt1")

        assert [f.outcome for f in result.files] == [
            UploadOutcome.DUPLICATE_SKIPPED,
            UploadOutcome.STORED,
        ]

    async def test_empty_batch(self, blob_store: InMemoryBlobStore) -> None:
        result = await _orchestrator(blob_store).submit_batch([], "evt1")
        assert result.submitted == 0
        assert blob_store.put_calls == []

    async def test_never_exceeds_concurrency_ceiling(self) -> None:
        store = SlowBlobStore()

        result = await _orchestrator(store, concurrency=2, chunk_size=20).submit_batch(
            _jpegs(7), "evt1"
        )

        assert len(result.stored) == 7
        assert store.peak == 2

    async def test_processes_in_chunks(self) -> None:
        store = SlowBlobStore()
        normalizer = MagicMock(wraps=PassthroughNormalizer())

        result = await _orchestrator(store, normalizer=normalizer, chunk_size=2).submit_batch(
            _jpegs(5), "evt1"
        )

        assert len(result.stored) == 5
        assert normalizer.normalize.call_count == 5


class TestRetries:
    async def test_retries_transient_failures(self, blob_store: InMemoryBlobStore) -> None:
        blob_store.errors["photo0"] = [StorageNetworkError("reset"), StorageNetworkError("reset")]
        sleep = RecordingSleep()

        result = await _orchestrator(blob_store, sleep=sleep).submit_batch(_jpegs(1), "evt1")

        stored = result.files[0]
        assert stored.outcome == UploadOutcome.STORED
        assert stored.transfer is not None
        assert stored.transfer.attempt_count == 3
        assert stored.transfer.last_error_kind == ErrorKind.NETWORK
        assert sleep.delays == [2.0, 4.0]

    async def test_gives_up_after_attempt_budget(self, blob_store: InMemoryBlobStore) -> None:
        blob_store.errors["photo0"] = [StorageError("denied")] * 10

        result = await _orchestrator(blob_store).submit_batch(_jpegs(2), "evt1")

        failed = result.files[0]
        assert failed.outcome == UploadOutcome.FAILED
        assert failed.remote_key is None
        assert failed.transfer is not None
        assert failed.transfer.attempt_count == 5
        assert failed.transfer.last_error_kind == ErrorKind.STORAGE
        assert failed.transfer.ended_at is not None
        assert result.files[1].outcome == UploadOutcome.STORED

    async def test_timeout_is_retryable(self) -> None:
        store = SlowBlobStore(delay=1.0)
        orchestrator = _orchestrator(
            store,
            retry_policy=RetryPolicy(max_attempts=2, initial_delay=0.0, max_delay=0.0, jitter=0.0),
            base_timeout_seconds=0.01,
            timeout_per_mib_seconds=0.0,
        )

        result = await orchestrator.submit_batch(_jpegs(1), "evt1")

        failed = result.files[0]
        assert failed.outcome == UploadOutcome.FAILED
        assert failed.transfer is not None
        assert failed.transfer.attempt_count == 2
        assert failed.transfer.last_error_kind == ErrorKind.TIMEOUT

    def test_timeout_grows_with_size(self, blob_store: InMemoryBlobStore) -> None:
        orchestrator = _orchestrator(blob_store, base_timeout_seconds=60, timeout_per_mib_seconds=1)

        assert orchestrator.timeout_for(0) == 60
        assert orchestrator.timeout_for(1) == 61
        assert orchestrator.timeout_for(10 * MIB) == 70

    async def test_silent_success_is_reconciled(self) -> None:
        store = SilentSuccessStore()
        orchestrator = _orchestrator(
            store,
            retry_policy=RetryPolicy(max_attempts=1, initial_delay=0.0, max_delay=0.0),
        )

        result = await orchestrator.submit_batch(_jpegs(1), "evt1")

        assert result.files[0].outcome == UploadOutcome.STORED
        assert result.files[0].remote_key in store.objects

    async def test_listing_failure_is_retried(self, blob_store: InMemoryBlobStore) -> None:
        blob_store.list_errors = [StorageNetworkError("connection reset")]
        sleep = RecordingSleep()

        result = await _orchestrator(blob_store, sleep=sleep).submit_batch(_jpegs(50), "evt1")

        assert len(result.stored) == 50
        assert len(blob_store.put_calls) == 50
        assert sleep.delays[0] == 2.0

    async def test_listing_denied_is_not_retried(self, blob_store: InMemoryBlobStore) -> None:
        blob_store.list_errors = [StorageError("access denied")]

        with pytest.raises(StorageError, match="access denied"):
            await _orchestrator(blob_store).submit_batch(_jpegs(1), "evt1")

        assert blob_store.put_calls == []


class TestNormalization:
    async def test_conversion_failure_uploads_original(self, blob_store: InMemoryBlobStore) -> None:
        normalizer = MagicMock()
        normalizer.normalize.side_effect = ConversionError("no decoder")
        source = SourceFile("IMG_1.heic", b"heic-bytes", "image/heic")

        result = await _orchestrator(blob_store, normalizer=normalizer).submit_batch([source], "evt1")

        stored = result.files[0]
        assert stored.outcome == UploadOutcome.STORED
        assert not stored.normalized
        assert stored.remote_key is not None
        assert stored.remote_key.endswith("-0-IMG_1.heic")
        assert blob_store.objects[stored.remote_key] == b"heic-bytes"
        assert blob_store.content_types[stored.remote_key] == "image/heic"

    async def test_normalized_sizes_are_reported(self, blob_store: InMemoryBlobStore) -> None:
        big = SourceFile("big.jpg", make_image_bytes(size=(3000, 2000)), "image/jpeg")

        result = await _orchestrator(
            blob_store, normalizer=PillowNormalizer(max_dimension=500)
        ).submit_batch([big], "evt1")

        stored = result.files[0]
        assert stored.normalized
        assert stored.stored_size < stored.original_size
        assert result.stored_original_bytes == big.size
        assert result.stored_bytes == stored.stored_size


class TestProgress:
    async def test_both_stages_complete(self, blob_store: InMemoryBlobStore) -> None:
        tracker = ProgressTracker()

        await _orchestrator(blob_store).submit_batch(_jpegs(4), "evt1", tracker)

        snapshot = tracker.snapshot()
        assert snapshot.normalize.current == snapshot.normalize.total == 4
        assert snapshot.transfer.current == snapshot.transfer.total == 4
        assert snapshot.transfer.processed_bytes == snapshot.transfer.total_bytes

    async def test_progress_resets_between_batches(self, blob_store: InMemoryBlobStore) -> None:
        tracker = ProgressTracker()
        orchestrator = _orchestrator(blob_store)

        await orchestrator.submit_batch(_jpegs(3), "evt1", tracker)
        await orchestrator.submit_batch(_jpegs(2), "evt2", tracker)

        assert tracker.snapshot().transfer.current == 2


class TestBackpressure:
    async def test_pauses_when_in_flight_bytes_are_high(self) -> None:
        store = SlowBlobStore()
        sleep = RecordingSleep()
        orchestrator = _orchestrator(
            store,
            concurrency=2,
            sleep=sleep,
            in_flight=InFlightBudget(10, high_water_ratio=0.5),
            memory_pause_seconds=0.25,
        )

        result = await orchestrator.submit_batch(_jpegs(2), "evt1")

        assert len(result.stored) == 2
        assert 0.25 in sleep.delays
