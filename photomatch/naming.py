"""Storage keys and face external image ids.

The sanitized file name is the join key between the blob store and the
face collection: the basename of a stored image key is used verbatim as
the external image id, so a search hit maps back to exactly one key.
"""

import re

from photomatch.formats.classifier import file_extension, is_indexable_key

_DUPLICATE_SUFFIX = re.compile(r"\(\d+\)$")
_DISALLOWED_CHARS = re.compile(r"[^a-zA-Z0-9_.\-:]")
_UNDERSCORE_RUNS = re.compile(r"_{2,}")
_STORED_PREFIX = re.compile(r"^\d+-\d+-")

FALLBACK_NAME = "image"
CONVERTED_SUFFIX = ".jpg"


def sanitize_filename(filename: str) -> str:
    """Replace characters outside ``[a-zA-Z0-9_.-:]`` with underscores.

    Runs of underscores collapse to one and leading/trailing underscores are
    dropped. A trailing ``(n)`` duplicate marker is kept as-is.
    """
    match = _DUPLICATE_SUFFIX.search(filename)
    suffix = match.group(0) if match else ""
    body = filename[: len(filename) - len(suffix)]

    body = _DISALLOWED_CHARS.sub("_", body)
    body = _UNDERSCORE_RUNS.sub("_", body)
    body = body.strip("_")

    sanitized = body + suffix
    return sanitized or FALLBACK_NAME


def event_image_prefix(event_id: str) -> str:
    return f"events/shared/{event_id}/images/"


def event_image_key(event_id: str, timestamp_ms: int, batch_index: int, filename: str) -> str:
    """Build ``events/shared/{event}/images/{ts}-{index}-{sanitized name}``."""
    return (
        f"{event_image_prefix(event_id)}"
        f"{timestamp_ms}-{batch_index}-{sanitize_filename(filename)}"
    )


def selfie_key(user_id: str, timestamp_ms: int, original_name: str) -> str:
    return f"users/{user_id}/selfies/selfie-{timestamp_ms}-{original_name}"


def key_basename(key: str) -> str:
    return key.rsplit("/", 1)[-1]


def external_image_id(image_key: str) -> str:
    """External image id registered with the face collection for a stored key."""
    return sanitize_filename(key_basename(image_key))


def image_key_from_external_id(event_id: str, external_id: str) -> str:
    """Rebuild the stored image key for a face hit's external image id."""
    return f"{event_image_prefix(event_id)}{external_id}"


def stored_name_from_key(key: str) -> str:
    """Recover the sanitized original file name from a stored image key."""
    return _STORED_PREFIX.sub("", key_basename(key), count=1)


def collection_id(event_id: str, prefix: str = "event-") -> str:
    return f"{prefix}{event_id}"


def converted_filename(filename: str, content_type: str) -> str:
    """Name under which a normalized asset is stored.

    Files re-encoded to JPEG from a format the face service cannot read
    (HEIC, RAW, ...) get a ``.jpg`` suffix appended to the original name.
    """
    extension = file_extension(filename)
    if content_type == "image/jpeg" and extension and not is_indexable_key(filename):
        return f"{filename}{CONVERTED_SUFFIX}"
    return filename


def original_stored_name(stored_name: str) -> str:
    """Undo :func:`converted_filename` on a sanitized stored name."""
    if stored_name.endswith(CONVERTED_SUFFIX):
        candidate = stored_name[: -len(CONVERTED_SUFFIX)]
        if file_extension(candidate) and not is_indexable_key(candidate):
            return candidate
    return stored_name
