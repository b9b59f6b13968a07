import asyncio
from collections.abc import Callable
from dataclasses import dataclass

from photomatch.faces.base import BaseFaceRecognizer
from photomatch.faces.exceptions import (
    CollectionNotFoundError,
    FaceRecognitionError,
    NoFacesDetectedError,
    RateLimitError,
)
from photomatch.faces.models import IndexBatchResult, IndexFailure
from photomatch.formats.classifier import is_indexable_key
from photomatch.logging.logger import Log
from photomatch.naming import collection_id, event_image_prefix, external_image_id
from photomatch.retry.backoff import RetryPolicy, Sleep, poll_until, retry_async
from photomatch.retry.exceptions import PollTimeoutError, RetryExhaustedError
from photomatch.storage.base import BaseBlobStore
from photomatch.storage.exceptions import ObjectNotFoundError, StorageNetworkError

ProgressCallback = Callable[[int, int], None]

DEFAULT_INDEX_RETRY = RetryPolicy(max_attempts=4, initial_delay=1.0, max_delay=30.0, jitter=1.0)


@dataclass(frozen=True)
class _ImageOutcome:
    image_key: str
    already_indexed: bool = False
    error: str | None = None


class FaceIndexer:
    """Registers stored event images with the face-recognition service.

    Images go out in fixed-size sub-batches with a pause between them; images
    inside a sub-batch are submitted concurrently. Throttled requests are
    retried with backoff, any other failure is recorded for that image only.
    """

    def __init__(
        self,
        recognizer: BaseFaceRecognizer,
        store: BaseBlobStore,
        *,
        collection_prefix: str = "event-",
        batch_size: int = 10,
        batch_pause_seconds: float = 1.0,
        retry_policy: RetryPolicy = DEFAULT_INDEX_RETRY,
        probe_threshold: float = 95.0,
        probe_max_results: int = 10,
        existence_poll_attempts: int = 3,
        existence_poll_interval_seconds: float = 0.5,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._recognizer = recognizer
        self._store = store
        self._collection_prefix = collection_prefix
        self._batch_size = batch_size
        self._batch_pause = batch_pause_seconds
        self._retry_policy = retry_policy
        self._probe_threshold = probe_threshold
        self._probe_max_results = probe_max_results
        self._poll_attempts = existence_poll_attempts
        self._poll_interval = existence_poll_interval_seconds
        self._sleep = sleep

    def collection_for(self, event_id: str) -> str:
        return collection_id(event_id, self._collection_prefix)

    async def ensure_collection(self, event_id: str) -> bool:
        """Create the event's collection; an existing collection counts as success."""
        return await self._recognizer.create_collection(self.collection_for(event_id))

    async def index_batch(
        self,
        event_id: str,
        image_keys: list[str],
        on_progress: ProgressCallback | None = None,
    ) -> IndexBatchResult:
        keys = list(dict.fromkeys(image_keys))
        result = IndexBatchResult(total_images=len(keys))
        if not keys:
            return result

        await self.ensure_collection(event_id)
        batches = [keys[i : i + self._batch_size] for i in range(0, len(keys), self._batch_size)]
        Log.info(
            f"Indexing {len(keys)} images for event {event_id} in {len(batches)} sub-batches"
        )

        for number, batch in enumerate(batches, start=1):
            outcomes = await asyncio.gather(*(self._index_one(event_id, key) for key in batch))
            for outcome in outcomes:
                if outcome.error is not None:
                    result.failed.append(IndexFailure(outcome.image_key, outcome.error))
                    continue
                result.successful.append(outcome.image_key)
                if outcome.already_indexed:
                    result.already_indexed.append(outcome.image_key)
            if on_progress is not None:
                on_progress(len(result.successful) + len(result.failed), len(keys))
            if number < len(batches):
                Log.debug(f"Sub-batch {number}/{len(batches)} done, pausing {self._batch_pause}s")
                await self._sleep(self._batch_pause)

        Log.info(
            f"Indexing finished for event {event_id}: "
            f"{len(result.successful)} successful ({len(result.already_indexed)} already indexed), "
            f"{len(result.failed)} failed"
        )
        return result

    async def index_all_event_images(
        self,
        event_id: str,
        on_progress: ProgressCallback | None = None,
    ) -> IndexBatchResult:
        """Index every image currently stored for the event."""
        def log_retry(attempt: int, exc: BaseException, delay: float) -> None:
            Log.warning(f"Listing images of event {event_id} failed ({exc}), retrying in {delay:.1f}s")

        keys = await retry_async(
            lambda _attempt: self._store.list_all(event_image_prefix(event_id)),
            policy=self._retry_policy,
            is_retryable=lambda exc: isinstance(exc, StorageNetworkError),
            sleep=self._sleep,
            on_retry=log_retry,
        )
        image_keys = [key for key in keys if is_indexable_key(key)]
        Log.info(f"Found {len(image_keys)} stored images to index for event {event_id}")
        return await self.index_batch(event_id, image_keys, on_progress)

    async def delete_faces(self, event_id: str, face_ids: list[str]) -> None:
        await self._recognizer.delete_faces(self.collection_for(event_id), face_ids)
        Log.info(f"Deleted {len(face_ids)} faces from event {event_id}")

    async def _index_one(self, event_id: str, image_key: str) -> _ImageOutcome:
        def log_retry(attempt: int, exc: BaseException, delay: float) -> None:
            Log.warning(
                f"Rate limited indexing {image_key}, retrying in {delay:.1f}s "
                f"(attempt {attempt}/{self._retry_policy.max_attempts})"
            )

        try:
            already_indexed = await retry_async(
                lambda _attempt: self._index_image(event_id, image_key),
                policy=self._retry_policy,
                is_retryable=lambda exc: isinstance(exc, RateLimitError),
                sleep=self._sleep,
                on_retry=log_retry,
            )
        except RetryExhaustedError as exc:
            Log.error(f"Failed to index {image_key} after {exc.attempts} attempts: {exc.last_error}")
            return _ImageOutcome(image_key, error=str(exc.last_error))
        except Exception as exc:
            Log.error(f"Failed to index {image_key}: {exc}")
            return _ImageOutcome(image_key, error=str(exc) or exc.__class__.__name__)
        return _ImageOutcome(image_key, already_indexed=already_indexed)

    async def _index_image(self, event_id: str, image_key: str) -> bool:
        """Index one image; returns True when it was already in the collection."""
        collection = self.collection_for(event_id)
        external_id = external_image_id(image_key)

        await self._confirm_exists(image_key)
        if await self._already_indexed(collection, image_key, external_id):
            Log.debug(f"{image_key} already indexed as {external_id}, skipping")
            return True

        face_ids = await self._recognizer.index_image(collection, image_key, external_id)
        Log.debug(f"Indexed {len(face_ids)} faces for {image_key}")
        return False

    async def _already_indexed(self, collection: str, image_key: str, external_id: str) -> bool:
        try:
            matches = await self._recognizer.search_by_image(
                collection,
                image_key,
                self._probe_max_results,
                self._probe_threshold,
            )
        except RateLimitError:
            raise
        except (CollectionNotFoundError, NoFacesDetectedError):
            return False
        except FaceRecognitionError as exc:
            Log.debug(f"Probe for {image_key} failed ({exc}), indexing anyway")
            return False
        return any(
            m.external_image_id == external_id and m.similarity >= self._probe_threshold
            for m in matches
        )

    async def _confirm_exists(self, image_key: str) -> None:
        try:
            await poll_until(
                lambda: self._store.head(image_key),
                attempts=self._poll_attempts,
                interval=self._poll_interval,
                sleep=self._sleep,
            )
        except PollTimeoutError as exc:
            raise ObjectNotFoundError(f"Image not found in blob store: {image_key}") from exc
