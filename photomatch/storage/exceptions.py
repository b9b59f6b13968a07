class StorageError(Exception):
    """Raised when the blob store rejects or fails a request."""


class StorageNetworkError(StorageError):
    """Raised when the blob store cannot be reached."""


class ObjectNotFoundError(StorageError):
    """Raised when a stored object is expected but missing."""
