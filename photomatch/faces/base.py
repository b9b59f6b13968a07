from abc import ABC, abstractmethod

from photomatch.faces.models import FaceMatch


class BaseFaceRecognizer(ABC):
    """Contract for face-recognition services operating on stored images."""

    @abstractmethod
    async def create_collection(self, collection_id: str) -> bool:
        """Create a collection. Returns False when it already exists."""

    @abstractmethod
    async def index_image(self, collection_id: str, image_key: str, external_id: str) -> list[str]:
        """Register every face in a stored image and return the new face ids.

        Raises:
            CollectionNotFoundError: if the collection does not exist.
            RateLimitError: if the service throttles the request.
            FaceRecognitionError: on any other failure.
        """

    @abstractmethod
    async def search_by_image(
        self,
        collection_id: str,
        image_key: str,
        max_results: int,
        min_similarity: float,
    ) -> list[FaceMatch]:
        """Find indexed faces similar to the largest face in a stored image.

        Raises:
            CollectionNotFoundError: if the collection does not exist.
            NoFacesDetectedError: if the image has no detectable face.
            RateLimitError: if the service throttles the request.
        """

    @abstractmethod
    async def delete_faces(self, collection_id: str, face_ids: list[str]) -> None:
        """Remove faces from a collection."""
