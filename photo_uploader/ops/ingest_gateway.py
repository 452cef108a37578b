"""Validation and capacity filtering for incoming photo batches."""

from __future__ import annotations

import os
from collections.abc import Iterable

from photo_uploader.errors import CapacityExceeded, ValidationError
from photo_uploader.image_engine.metrics import INGEST_ACCEPTED, INGEST_DROPPED, INGEST_REJECTED, metrics
from photo_uploader.logger import get_logger
from photo_uploader.models import IngestReport, RawPhoto
from photo_uploader.settings_manager import UploaderConfig

_logger = get_logger("ingest")


def parse_accept(accept: str) -> list[str]:
    """Split an HTML-style accept string ("image/*,.png") into lowercase tokens."""
    tokens = [t.strip().lower() for t in str(accept or "").split(",")]
    return [t for t in tokens if t] or ["*/*"]


def mime_allowed(mime_type: str, filename: str, accept: Iterable[str]) -> bool:
    mime = (mime_type or "").strip().lower()
    ext = os.path.splitext(filename or "")[1].lower()
    for token in accept:
        if token == "*/*" or token == "*":
            return True
        if token.startswith("."):
            if ext and ext == token:
                return True
            continue
        if token.endswith("/*"):
            if mime.startswith(token[:-1]):
                return True
            continue
        if mime == token:
            return True
    return False


class IngestionGateway:
    """Filter a batch of candidates against type, size and remaining capacity.

    Never touches the store; only returns which files may be classified.
    """

    def __init__(self, config: UploaderConfig) -> None:
        self._config = config
        self._accept = parse_accept(config.accept)

    @property
    def config(self) -> UploaderConfig:
        return self._config

    def remaining_slots(self, current_count: int) -> int:
        return max(0, int(self._config.max_files) - int(current_count))

    def validate(self, photo: RawPhoto) -> ValidationError | None:
        if not mime_allowed(photo.mime_type, photo.filename, self._accept):
            return ValidationError(
                photo.filename,
                "mime",
                f"{photo.filename} is not an accepted image type ({photo.mime_type or 'unknown'})",
            )
        if photo.size <= 0:
            return ValidationError(photo.filename, "empty", f"{photo.filename} is empty")
        if photo.size > self._config.max_size_bytes:
            return ValidationError(
                photo.filename,
                "size",
                f"{photo.filename} exceeds the {self._config.max_size_kb}KB limit",
            )
        return None

    def filter(self, candidates: Iterable[RawPhoto], current_count: int) -> IngestReport:
        batch = list(candidates)
        slots = self.remaining_slots(current_count)
        kept = batch[:slots]
        report = IngestReport(dropped=len(batch) - len(kept))
        if report.dropped:
            report.capacity = CapacityExceeded(report.dropped, self._config.max_files)
            _logger.info(
                "capacity: %d candidate(s), %d slot(s) left, dropped %d",
                len(batch),
                slots,
                report.dropped,
            )

        for photo in kept:
            err = self.validate(photo)
            if err is None:
                report.accepted.append(photo)
                continue
            _logger.info("rejected %s: %s", photo.filename, err.reason)
            report.rejected.append(err)

        metrics.inc(INGEST_ACCEPTED, len(report.accepted))
        metrics.inc(INGEST_REJECTED, len(report.rejected))
        metrics.inc(INGEST_DROPPED, report.dropped)
        return report
