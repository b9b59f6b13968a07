class UploadError(Exception):
    """Base exception for the upload pipeline."""


class FileValidationError(UploadError):
    """Raised when a file is rejected at intake; never retried."""

    UNSUPPORTED_FORMAT = "unsupported-format"
    TOO_LARGE = "too-large"
    DISALLOWED_NAME = "disallowed-name"

    def __init__(self, reason: str, message: str) -> None:
        super().__init__(message)
        self.reason = reason


class TransferError(UploadError):
    """Raised when pushing an asset to the blob store fails; retryable."""


class TransferTimeoutError(TransferError):
    """Raised when a transfer exceeds its size-proportional time budget."""
