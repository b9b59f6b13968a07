class ConversionError(Exception):
    """Raised when an image cannot be decoded or re-encoded."""
