"""Error types for the upload pipeline.

Validation, capacity and decode problems are reported to the host as issue
objects (see `IngestReport`), never raised through `ingest()`. They are still
exceptions so that backend helpers can raise them and callers can catch them
uniformly.
"""

from __future__ import annotations


class UploaderError(Exception):
    """Base class for recoverable upload pipeline errors."""


class ValidationError(UploaderError):
    """A candidate file was rejected (bad MIME type, oversize, empty)."""

    def __init__(self, filename: str, reason: str, message: str) -> None:
        super().__init__(message)
        self.filename = filename
        self.reason = reason
        self.message = message

    def to_event(self) -> dict:
        return {
            "type": "event",
            "name": "validationError",
            "level": "warning",
            "filename": self.filename,
            "reason": self.reason,
            "message": self.message,
        }


class DecodeFailure(ValidationError):
    """The file passed validation but could not be decoded as an image."""

    def __init__(self, filename: str, message: str) -> None:
        super().__init__(filename, "decode", message)


class CapacityExceeded(UploaderError):
    """The batch was larger than the remaining slots; extras were dropped."""

    def __init__(self, dropped: int, max_files: int) -> None:
        super().__init__(f"{dropped} file(s) dropped, limit is {max_files} photos")
        self.dropped = dropped
        self.max_files = max_files

    def to_event(self) -> dict:
        return {
            "type": "event",
            "name": "capacityExceeded",
            "level": "warning",
            "dropped": self.dropped,
            "maxFiles": self.max_files,
            "message": str(self),
        }


class RasterizationFailure(UploaderError):
    """The crop surface could not produce an encoded image on confirm."""


class CompressionFailure(UploaderError):
    """An accepted photo could not be re-encoded; the original is uploaded instead."""
