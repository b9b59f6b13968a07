import asyncio
from collections.abc import Sequence
from dataclasses import dataclass

from photomatch.config.settings import Settings
from photomatch.database.models import AttendeeMatchRecord
from photomatch.database.repositories.attendee_repository import AttendeeMatchRepository
from photomatch.database.repositories.event_repository import EventRepository
from photomatch.faces.factory import FaceRecognizerFactory
from photomatch.faces.indexer import FaceIndexer
from photomatch.faces.matcher import FaceMatcher
from photomatch.faces.models import IndexBatchResult, MatchResult
from photomatch.logging.logger import Log
from photomatch.media.base import BaseMediaNormalizer
from photomatch.media.exceptions import ConversionError
from photomatch.media.factory import MediaNormalizerFactory
from photomatch.media.models import NormalizedAsset, SourceFile
from photomatch.naming import converted_filename, selfie_key
from photomatch.retry.backoff import RetryPolicy
from photomatch.service.exceptions import AuthorizationError
from photomatch.storage.factory import BlobStoreFactory
from photomatch.upload.backpressure import InFlightBudget
from photomatch.upload.intake import IntakeFilter
from photomatch.upload.models import BatchResult
from photomatch.upload.orchestrator import UploadOrchestrator, now_ms
from photomatch.upload.progress import ProgressTracker


@dataclass
class UploadReport:
    """What happened to an uploaded batch: storage outcomes and face indexing."""

    batch: BatchResult
    indexing: IndexBatchResult


class PhotoService:
    """Event photo operations: upload and index, selfie search, re-index."""

    def __init__(
        self,
        orchestrator: UploadOrchestrator,
        normalizer: BaseMediaNormalizer,
        indexer: FaceIndexer,
        matcher: FaceMatcher,
        event_repo: EventRepository,
        attendee_repo: AttendeeMatchRepository,
    ) -> None:
        self._orchestrator = orchestrator
        self._normalizer = normalizer
        self._indexer = indexer
        self._matcher = matcher
        self._event_repo = event_repo
        self._attendee_repo = attendee_repo

    async def upload_event_photos(
        self,
        event_id: str,
        uploader_email: str,
        files: Sequence[SourceFile],
        progress: ProgressTracker | None = None,
    ) -> UploadReport:
        """Store a batch of photos for an event and register their faces.

        Raises:
            EventNotFoundError: if the event does not exist.
            AuthorizationError: if the uploader may not add photos to the event.
        """
        event = await asyncio.to_thread(self._event_repo.find_by_id, event_id)
        if not event.can_upload(uploader_email):
            raise AuthorizationError(f"{uploader_email} may not upload to event {event_id}")

        await self._indexer.ensure_collection(event_id)
        batch = await self._orchestrator.submit_batch(files, event_id, progress)
        indexing = await self._indexer.index_batch(event_id, batch.stored_keys)

        if batch.stored:
            await asyncio.to_thread(
                self._event_repo.add_upload_totals,
                event_id,
                photos=len(batch.stored),
                original_bytes=batch.stored_original_bytes,
                compressed_bytes=batch.stored_bytes,
            )
        Log.info(
            f"Upload to event {event_id} by {uploader_email}: "
            f"{len(batch.stored)} stored, {len(batch.duplicates)} duplicates, "
            f"{len(batch.invalid)} invalid, {len(batch.failed)} failed, "
            f"{len(indexing.successful)} indexed"
        )
        return UploadReport(batch=batch, indexing=indexing)

    async def find_my_photos(
        self,
        event_id: str,
        user_id: str,
        selfie: SourceFile,
    ) -> list[MatchResult]:
        """Store the selfie and return the event images showing the same face."""
        await asyncio.to_thread(self._event_repo.find_by_id, event_id)

        asset = self._normalize_selfie(selfie)
        key = selfie_key(user_id, now_ms(), converted_filename(selfie.name, asset.content_type))
        await self._orchestrator.store_asset(key, asset)
        Log.info(f"Stored selfie for user {user_id} at {key}")

        matches = await self._matcher.search(event_id, key)
        await asyncio.to_thread(
            self._attendee_repo.save,
            AttendeeMatchRecord(
                user_id=user_id,
                event_id=event_id,
                selfie_key=key,
                matched_image_keys=[m.image_key for m in matches],
            ),
        )
        return matches

    async def reindex_event(self, event_id: str) -> IndexBatchResult:
        await asyncio.to_thread(self._event_repo.find_by_id, event_id)
        return await self._indexer.index_all_event_images(event_id)

    async def remove_faces(self, event_id: str, face_ids: list[str]) -> None:
        await self._indexer.delete_faces(event_id, face_ids)

    def _normalize_selfie(self, selfie: SourceFile) -> NormalizedAsset:
        try:
            return self._normalizer.normalize(selfie)
        except ConversionError as exc:
            Log.warning(f"Selfie {selfie.name} could not be normalized ({exc}), storing original")
            return NormalizedAsset.from_original(selfie)
        except Exception:
            Log.exception(f"Unexpected normalization failure for selfie {selfie.name}, storing original")
            return NormalizedAsset.from_original(selfie)


def build_service(settings: Settings) -> PhotoService:
    """Build a PhotoService with all required adapters."""
    store = BlobStoreFactory.create(settings)
    normalizer = MediaNormalizerFactory.create(settings)
    recognizer = FaceRecognizerFactory.create(settings)

    intake = IntakeFilter(
        max_file_size=settings.max_file_size_bytes,
        disallowed_patterns=settings.disallowed_name_patterns,
    )
    orchestrator = UploadOrchestrator(
        store,
        normalizer,
        intake,
        concurrency=settings.upload_concurrency,
        chunk_size=settings.upload_chunk_size,
        retry_policy=RetryPolicy(
            max_attempts=settings.transfer_max_attempts,
            initial_delay=settings.transfer_initial_delay_seconds,
            max_delay=settings.transfer_max_delay_seconds,
            jitter=settings.retry_jitter_seconds,
        ),
        base_timeout_seconds=settings.transfer_base_timeout_seconds,
        timeout_per_mib_seconds=settings.transfer_timeout_per_mib_seconds,
        in_flight=InFlightBudget(
            settings.max_in_flight_bytes,
            high_water_ratio=settings.memory_high_water_ratio,
        ),
        memory_pause_seconds=settings.memory_pause_seconds,
    )
    indexer = FaceIndexer(
        recognizer,
        store,
        collection_prefix=settings.face_collection_prefix,
        batch_size=settings.index_batch_size,
        batch_pause_seconds=settings.index_batch_pause_seconds,
        retry_policy=RetryPolicy(
            max_attempts=settings.index_max_retries + 1,
            initial_delay=settings.index_initial_delay_seconds,
            max_delay=settings.index_max_delay_seconds,
            jitter=settings.retry_jitter_seconds,
        ),
        probe_threshold=settings.index_probe_threshold,
        existence_poll_attempts=settings.existence_poll_attempts,
        existence_poll_interval_seconds=settings.existence_poll_interval_seconds,
    )
    matcher = FaceMatcher(
        recognizer,
        indexer,
        max_results=settings.search_max_faces,
        min_similarity=settings.search_min_similarity,
    )
    return PhotoService(
        orchestrator=orchestrator,
        normalizer=normalizer,
        indexer=indexer,
        matcher=matcher,
        event_repo=EventRepository(),
        attendee_repo=AttendeeMatchRepository(),
    )
