class FaceRecognitionError(Exception):
    """Raised when the face-recognition service fails a request."""


class RateLimitError(FaceRecognitionError):
    """Raised when the face-recognition service throttles requests."""


class CollectionNotFoundError(FaceRecognitionError):
    """Raised when the event's face collection does not exist."""


class NoFacesDetectedError(FaceRecognitionError):
    """Raised when the submitted image contains no detectable face."""


class IndexingFailedError(FaceRecognitionError):
    """Raised when a full indexing pass indexes no images."""
