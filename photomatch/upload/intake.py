from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from photomatch.formats.classifier import classify
from photomatch.formats.models import FormatDescriptor
from photomatch.media.models import SourceFile
from photomatch.naming import original_stored_name, sanitize_filename, stored_name_from_key
from photomatch.upload.exceptions import FileValidationError
from photomatch.upload.models import FileResult, UploadOutcome


@dataclass(frozen=True)
class AcceptedFile:
    source: SourceFile
    descriptor: FormatDescriptor
    batch_index: int


@dataclass
class IntakeResult:
    accepted: list[AcceptedFile] = field(default_factory=list)
    rejected: list[FileResult] = field(default_factory=list)


def stored_names(keys: Iterable[str]) -> set[str]:
    """Sanitized original names of images already stored for an event."""
    return {original_stored_name(stored_name_from_key(key)) for key in keys}


class IntakeFilter:
    """Rejects invalid files and duplicates before any work is done."""

    def __init__(self, *, max_file_size: int, disallowed_patterns: Sequence[str] = ()) -> None:
        self._max_file_size = max_file_size
        self._disallowed = [p.lower() for p in disallowed_patterns if p]

    def validate(self, source: SourceFile) -> FormatDescriptor:
        """Return the file's format descriptor.

        Raises:
            FileValidationError: on unsupported format, oversize or disallowed name.
        """
        descriptor = classify(source.name, source.content_type)
        if descriptor is None:
            raise FileValidationError(
                FileValidationError.UNSUPPORTED_FORMAT,
                f"Unsupported file format: {source.name}",
            )
        if source.size > self._max_file_size:
            raise FileValidationError(
                FileValidationError.TOO_LARGE,
                f"{source.name} is {source.size} bytes, limit is {self._max_file_size}",
            )
        lowered = source.name.lower()
        for pattern in self._disallowed:
            if pattern in lowered:
                raise FileValidationError(
                    FileValidationError.DISALLOWED_NAME,
                    f"{source.name} matches disallowed pattern '{pattern}'",
                )
        return descriptor

    def filter(self, files: Sequence[SourceFile], existing_names: set[str]) -> IntakeResult:
        """Split a batch into accepted files and rejected results.

        A file is a duplicate when its sanitized name matches an earlier file
        in the batch or an image already stored for the event.
        """
        result = IntakeResult()
        seen: set[str] = set()
        for index, source in enumerate(files):
            try:
                descriptor = self.validate(source)
            except FileValidationError as exc:
                result.rejected.append(
                    _rejected(source, index, UploadOutcome.INVALID, f"{exc.reason}: {exc}")
                )
                continue

            name = sanitize_filename(source.name)
            if name in seen:
                result.rejected.append(
                    _rejected(source, index, UploadOutcome.DUPLICATE_SKIPPED, "duplicate in batch")
                )
                continue
            if name in existing_names:
                result.rejected.append(
                    _rejected(source, index, UploadOutcome.DUPLICATE_SKIPPED, "already stored")
                )
                continue
            seen.add(name)
            result.accepted.append(AcceptedFile(source, descriptor, index))
        return result


def _rejected(source: SourceFile, index: int, outcome: UploadOutcome, reason: str) -> FileResult:
    return FileResult(
        name=source.name,
        batch_index=index,
        outcome=outcome,
        reason=reason,
        original_size=source.size,
    )
