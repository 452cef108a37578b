"""Aspect classification of accepted photos.

Decoding runs on a thread pool; results come back to the Qt thread through a
queued signal and are released strictly in submission order, one whole batch
at a time.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence
from concurrent.futures import Executor, Future, ThreadPoolExecutor

from PySide6.QtCore import QObject, Signal, Slot

from photo_uploader.errors import DecodeFailure
from photo_uploader.image_engine.decoder import read_dimensions
from photo_uploader.image_engine.metrics import CLASSIFY_BATCH_DURATION, CLASSIFY_DECODE_FAILURES, metrics
from photo_uploader.image_engine.previews import PreviewRegistry
from photo_uploader.logger import get_logger
from photo_uploader.models import PhotoMetadata, RawPhoto

_logger = get_logger("classifier")


def needs_crop(width: int, height: int, target_ratio: float, tolerance: float) -> bool:
    if width <= 0 or height <= 0:
        return True
    return abs(width / height - float(target_ratio)) > float(tolerance)


def classify_photo(
    photo: RawPhoto, previews: PreviewRegistry, target_ratio: float, tolerance: float
) -> PhotoMetadata:
    """Decode one photo's size and seed its metadata.

    Raises:
        DecodeFailure: the file is not a decodable image.
    """
    width, height = read_dimensions(photo.data, photo.filename)
    flag = needs_crop(width, height, target_ratio, tolerance)
    _logger.debug("classified %s: %dx%d needs_crop=%s", photo.filename, width, height, flag)
    return PhotoMetadata(
        source_preview_url=previews.register(photo.data),
        pixel_width=width,
        pixel_height=height,
        needs_crop=flag,
        edited=False,
    )


def classify_batch(
    photos: Sequence[RawPhoto],
    previews: PreviewRegistry,
    target_ratio: float,
    tolerance: float,
    compress: Callable[[RawPhoto], RawPhoto] | None = None,
) -> tuple[list[tuple[RawPhoto, PhotoMetadata]], list[DecodeFailure]]:
    """Classify photos in order; undecodable files become failures and are skipped.

    `compress` maps each classified photo to its upload entry. Anything other
    than a DecodeFailure propagates and fails the whole batch, after revoking
    the previews registered so far.
    """
    entries: list[tuple[RawPhoto, PhotoMetadata]] = []
    failures: list[DecodeFailure] = []
    try:
        with metrics.timed(CLASSIFY_BATCH_DURATION):
            for photo in photos:
                try:
                    meta = classify_photo(photo, previews, target_ratio, tolerance)
                except DecodeFailure as e:
                    failures.append(e)
                    continue
                entries.append((photo, meta))
                if compress is not None:
                    entries[-1] = (compress(photo), meta)
    except BaseException:
        for _photo, meta in entries:
            previews.revoke(meta.source_preview_url)
        raise
    metrics.inc(CLASSIFY_DECODE_FAILURES, len(failures))
    return entries, failures


class AspectClassifier(QObject):
    """Classify batches off the Qt thread and hand them back in order."""

    # batch_id, list[(RawPhoto, PhotoMetadata)], list[DecodeFailure]
    batch_classified = Signal(int, object, object)
    # batch_id, message
    batch_failed = Signal(int, str)

    # Internal: worker thread -> Qt thread (queued).
    _batch_done = Signal(int, object, object)

    def __init__(
        self,
        previews: PreviewRegistry,
        target_ratio: float = 1.0,
        tolerance: float = 0.01,
        executor: Executor | None = None,
        parent: QObject | None = None,
        compress: Callable[[RawPhoto], RawPhoto] | None = None,
    ) -> None:
        super().__init__(parent)
        self._previews = previews
        self._target_ratio = float(target_ratio)
        self._tolerance = float(tolerance)
        self._compress = compress
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="classify")
        self._owns_executor = executor is None
        self._lock = threading.Lock()
        self._next_id = 1
        self._next_release = 1
        self._in_flight: dict[int, int] = {}  # batch_id -> photo count
        self._finished: dict[int, tuple[object, object]] = {}
        self._discarded: set[int] = set()
        self._batch_done.connect(self._on_batch_done)

    @property
    def pending_photos(self) -> int:
        """Photos submitted but not yet released to listeners."""
        with self._lock:
            return sum(n for bid, n in self._in_flight.items() if bid not in self._discarded)

    def submit(self, photos: Sequence[RawPhoto]) -> int:
        batch = list(photos)
        with self._lock:
            batch_id = self._next_id
            self._next_id += 1
            self._in_flight[batch_id] = len(batch)
        _logger.debug("submit batch=%d photos=%d", batch_id, len(batch))
        future = self._executor.submit(
            classify_batch, batch, self._previews, self._target_ratio, self._tolerance, self._compress
        )
        future.add_done_callback(lambda f, bid=batch_id: self._on_future_done(bid, f))
        return batch_id

    def _on_future_done(self, batch_id: int, future: Future) -> None:
        try:
            entries, failures = future.result()
        except Exception as e:  # noqa: BLE001 - forwarded to the Qt thread as a batch failure
            _logger.exception("classification batch %d failed", batch_id)
            self._batch_done.emit(batch_id, None, e)
            return
        self._batch_done.emit(batch_id, entries, failures)

    @Slot(int, object, object)
    def _on_batch_done(self, batch_id: int, entries: object, failures: object) -> None:
        with self._lock:
            self._finished[batch_id] = (entries, failures)
        self._release_ready()

    def _release_ready(self) -> None:
        while True:
            with self._lock:
                batch_id = self._next_release
                if batch_id not in self._finished:
                    return
                entries, failures = self._finished.pop(batch_id)
                self._in_flight.pop(batch_id, None)
                discarded = batch_id in self._discarded
                self._discarded.discard(batch_id)
                self._next_release += 1

            if discarded:
                _logger.debug("batch=%d discarded after reset", batch_id)
                for _photo, meta in entries or []:  # type: ignore[union-attr]
                    self._previews.revoke(meta.source_preview_url)
                continue
            if entries is None:
                self.batch_failed.emit(batch_id, str(failures))
                continue
            self.batch_classified.emit(batch_id, entries, failures)

    def discard_pending(self) -> None:
        """Drop every batch still in flight; its results are never released."""
        with self._lock:
            self._discarded.update(self._in_flight)

    def shutdown(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)
