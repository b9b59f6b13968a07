from collections.abc import Iterable

from photomatch.faces.base import BaseFaceRecognizer
from photomatch.faces.exceptions import CollectionNotFoundError, IndexingFailedError
from photomatch.faces.indexer import FaceIndexer
from photomatch.faces.models import FaceMatch, MatchResult
from photomatch.logging.logger import Log
from photomatch.naming import image_key_from_external_id


def fold_matches(
    event_id: str,
    hits: Iterable[FaceMatch],
    min_similarity: float,
) -> list[MatchResult]:
    """Collapse face hits to one result per stored image, best similarity first."""
    best: dict[str, float] = {}
    for hit in hits:
        key = image_key_from_external_id(event_id, hit.external_image_id)
        if hit.similarity > best.get(key, float("-inf")):
            best[key] = hit.similarity
    results = [MatchResult(key, similarity) for key, similarity in best.items()]
    results.sort(key=lambda r: r.similarity, reverse=True)
    return [r for r in results if r.similarity >= min_similarity]


class FaceMatcher:
    """Finds the stored event images that contain the face in a reference image."""

    def __init__(
        self,
        recognizer: BaseFaceRecognizer,
        indexer: FaceIndexer,
        *,
        max_results: int = 50,
        min_similarity: float = 80.0,
    ) -> None:
        self._recognizer = recognizer
        self._indexer = indexer
        self._max_results = max_results
        self._min_similarity = min_similarity

    async def search(self, event_id: str, reference_key: str) -> list[MatchResult]:
        """Search the event's collection, indexing the event once if it has none yet.

        Raises:
            IndexingFailedError: if the cold-start pass indexed no images.
            CollectionNotFoundError: if the collection is still missing afterwards.
        """
        try:
            hits = await self._query(event_id, reference_key)
        except CollectionNotFoundError:
            Log.info(f"No face collection for event {event_id}, indexing stored images")
            indexed = await self._indexer.index_all_event_images(event_id)
            if not indexed.successful:
                raise IndexingFailedError(
                    f"No images were successfully indexed for event {event_id}"
                ) from None
            hits = await self._query(event_id, reference_key)

        results = fold_matches(event_id, hits, self._min_similarity)
        Log.info(
            f"Found {len(results)} images matching {reference_key} "
            f"in event {event_id} ({len(hits)} face hits)"
        )
        return results

    async def _query(self, event_id: str, reference_key: str) -> list[FaceMatch]:
        return await self._recognizer.search_by_image(
            self._indexer.collection_for(event_id),
            reference_key,
            self._max_results,
            self._min_similarity,
        )
