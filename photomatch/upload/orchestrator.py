import asyncio
import math
import time
from collections.abc import Callable, Sequence

from photomatch.logging.logger import Log
from photomatch.media.base import BaseMediaNormalizer
from photomatch.media.exceptions import ConversionError
from photomatch.media.models import NormalizedAsset, SourceFile
from photomatch.naming import converted_filename, event_image_key, event_image_prefix
from photomatch.retry.backoff import RetryPolicy, Sleep, retry_async
from photomatch.retry.exceptions import RetryExhaustedError
from photomatch.storage.base import BaseBlobStore
from photomatch.storage.exceptions import StorageError, StorageNetworkError
from photomatch.upload.backpressure import InFlightBudget
from photomatch.upload.exceptions import TransferError, TransferTimeoutError
from photomatch.upload.intake import AcceptedFile, IntakeFilter, stored_names
from photomatch.upload.models import (
    BatchResult,
    ErrorKind,
    FileResult,
    TransferRecord,
    UploadOutcome,
    utcnow,
)
from photomatch.upload.progress import ProgressTracker, Stage

MIB = 1024 * 1024

DEFAULT_TRANSFER_RETRY = RetryPolicy(max_attempts=5, initial_delay=2.0, max_delay=30.0, jitter=1.0)


def now_ms() -> int:
    return time.time_ns() // 1_000_000


class UploadOrchestrator:
    """Runs a batch of files through intake, normalization and transfer.

    Pipeline: intake filter -> normalize (per chunk) -> bounded concurrent
    transfer with retries -> reconcile failures against the blob store.
    """

    def __init__(
        self,
        store: BaseBlobStore,
        normalizer: BaseMediaNormalizer,
        intake: IntakeFilter,
        *,
        concurrency: int = 5,
        chunk_size: int = 20,
        retry_policy: RetryPolicy = DEFAULT_TRANSFER_RETRY,
        base_timeout_seconds: float = 60.0,
        timeout_per_mib_seconds: float = 1.0,
        in_flight: InFlightBudget | None = None,
        memory_pause_seconds: float = 1.0,
        sleep: Sleep = asyncio.sleep,
        clock_ms: Callable[[], int] = now_ms,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._store = store
        self._normalizer = normalizer
        self._intake = intake
        self._concurrency = concurrency
        self._chunk_size = max(chunk_size, 1)
        self._retry_policy = retry_policy
        self._base_timeout = base_timeout_seconds
        self._timeout_per_mib = timeout_per_mib_seconds
        self._in_flight = in_flight or InFlightBudget(256 * MIB)
        self._memory_pause = memory_pause_seconds
        self._sleep = sleep
        self._clock_ms = clock_ms

    async def submit_batch(
        self,
        files: Sequence[SourceFile],
        event_id: str,
        progress: ProgressTracker | None = None,
    ) -> BatchResult:
        """Store a batch of files for an event and report every file's outcome."""
        progress = progress or ProgressTracker()
        progress.reset()

        existing = stored_names(await self._list_stored(event_id))
        intake = self._intake.filter(files, existing)
        results: list[FileResult] = list(intake.rejected)
        Log.info(
            f"Batch for event {event_id}: {len(files)} submitted, "
            f"{len(intake.accepted)} accepted, {len(intake.rejected)} rejected"
        )

        pending_bytes = sum(item.source.size for item in intake.accepted)
        progress.update(Stage.NORMALIZE, total_items=len(intake.accepted), total_bytes=pending_bytes)
        progress.update(Stage.TRANSFER, total_items=len(intake.accepted), total_bytes=pending_bytes)

        semaphore = asyncio.Semaphore(self._concurrency)
        normalized_bytes = 0
        for start in range(0, len(intake.accepted), self._chunk_size):
            chunk = intake.accepted[start : start + self._chunk_size]
            assets = [self._normalize(item, progress) for item in chunk]

            pending_bytes -= sum(item.source.size for item in chunk)
            normalized_bytes += sum(asset.size for asset in assets)
            progress.update(Stage.TRANSFER, total_bytes=normalized_bytes + pending_bytes)

            results.extend(
                await asyncio.gather(
                    *(
                        self._transfer(event_id, item, asset, semaphore, progress)
                        for item, asset in zip(chunk, assets)
                    )
                )
            )

        await self._reconcile(results)
        results.sort(key=lambda r: r.batch_index)
        batch = BatchResult(event_id=event_id, files=results)
        Log.info(
            f"Batch for event {event_id} done: {len(batch.stored)} stored, "
            f"{len(batch.duplicates)} duplicates, {len(batch.invalid)} invalid, "
            f"{len(batch.failed)} failed"
        )
        return batch

    async def store_asset(
        self,
        key: str,
        asset: NormalizedAsset,
        record: TransferRecord | None = None,
    ) -> TransferRecord:
        """Put one asset under ``key``, retrying transient failures.

        Raises:
            RetryExhaustedError: if every attempt failed.
        """
        record = record or TransferRecord(remote_key=key)

        def log_retry(attempt: int, exc: BaseException, delay: float) -> None:
            Log.warning(
                f"Transfer of {key} failed ({exc}), retrying in {delay:.1f}s "
                f"(attempt {attempt}/{self._retry_policy.max_attempts})"
            )

        try:
            await retry_async(
                lambda attempt: self._attempt(record, asset, attempt),
                policy=self._retry_policy,
                is_retryable=lambda exc: isinstance(exc, TransferError),
                sleep=self._sleep,
                on_retry=log_retry,
            )
        finally:
            if record.ended_at is None:
                record.ended_at = utcnow()
        return record

    async def _list_stored(self, event_id: str) -> list[str]:
        def log_retry(attempt: int, exc: BaseException, delay: float) -> None:
            Log.warning(f"Listing images of event {event_id} failed ({exc}), retrying in {delay:.1f}s")

        return await retry_async(
            lambda _attempt: self._store.list_all(event_image_prefix(event_id)),
            policy=self._retry_policy,
            is_retryable=lambda exc: isinstance(exc, StorageNetworkError),
            sleep=self._sleep,
            on_retry=log_retry,
        )

    def timeout_for(self, size: int) -> float:
        return self._base_timeout + math.ceil(size / MIB) * self._timeout_per_mib

    def _normalize(self, item: AcceptedFile, progress: ProgressTracker) -> NormalizedAsset:
        source = item.source
        try:
            asset = self._normalizer.normalize(source)
        except ConversionError as exc:
            Log.warning(f"Uploading {source.name} without normalization: {exc}")
            asset = NormalizedAsset.from_original(source, item.descriptor.mime_type)
        except Exception:
            Log.exception(f"Unexpected normalization failure for {source.name}")
            asset = NormalizedAsset.from_original(source, item.descriptor.mime_type)
        progress.update(
            Stage.NORMALIZE,
            items=1,
            processed_bytes=source.size,
            current_file=source.name,
        )
        return asset

    async def _transfer(
        self,
        event_id: str,
        item: AcceptedFile,
        asset: NormalizedAsset,
        semaphore: asyncio.Semaphore,
        progress: ProgressTracker,
    ) -> FileResult:
        name = converted_filename(item.source.name, asset.content_type)
        key = event_image_key(event_id, self._clock_ms(), item.batch_index, name)
        result = FileResult(
            name=item.source.name,
            batch_index=item.batch_index,
            outcome=UploadOutcome.FAILED,
            normalized=asset.normalized,
            original_size=item.source.size,
            stored_size=asset.size,
        )

        async with semaphore:
            if self._in_flight.under_pressure:
                Log.debug(f"{self._in_flight.in_flight} bytes in flight, pausing before {key}")
                await self._sleep(self._memory_pause)
            self._in_flight.reserve(asset.size)
            result.transfer = TransferRecord(remote_key=key)
            try:
                await self.store_asset(key, asset, result.transfer)
                result.outcome = UploadOutcome.STORED
                result.remote_key = key
            except RetryExhaustedError as exc:
                Log.error(f"Giving up on {item.source.name} after {exc.attempts} attempts")
                result.reason = str(exc.last_error)
            except Exception as exc:
                Log.exception(f"Transfer of {item.source.name} aborted")
                result.reason = str(exc) or exc.__class__.__name__
                result.transfer.record_error(ErrorKind.UNKNOWN, result.reason)
            finally:
                self._in_flight.release(asset.size)

        progress.update(
            Stage.TRANSFER,
            items=1,
            processed_bytes=asset.size,
            current_file=item.source.name,
        )
        return result

    async def _attempt(self, record: TransferRecord, asset: NormalizedAsset, attempt: int) -> None:
        record.begin_attempt(attempt)
        timeout = self.timeout_for(asset.size)
        try:
            await asyncio.wait_for(
                self._store.put(record.remote_key, asset.data, asset.content_type),
                timeout=timeout,
            )
        except TimeoutError as exc:
            record.record_error(ErrorKind.TIMEOUT, f"timed out after {timeout:.0f}s")
            raise TransferTimeoutError(f"Transfer of {record.remote_key} timed out") from exc
        except StorageNetworkError as exc:
            record.record_error(ErrorKind.NETWORK, str(exc))
            raise TransferError(str(exc)) from exc
        except StorageError as exc:
            record.record_error(ErrorKind.STORAGE, str(exc))
            raise TransferError(str(exc)) from exc
        record.complete(asset.size)

    async def _reconcile(self, results: list[FileResult]) -> None:
        """Mark failed transfers whose object did reach the store as stored."""
        for result in results:
            if result.outcome != UploadOutcome.FAILED or result.transfer is None:
                continue
            key = result.transfer.remote_key
            try:
                exists = await self._store.head(key)
            except StorageError as exc:
                Log.debug(f"Could not reconcile {key}: {exc}")
                continue
            if exists:
                Log.info(f"{key} reported failed but exists in store, marking stored")
                result.outcome = UploadOutcome.STORED
                result.remote_key = key
                result.reason = None

