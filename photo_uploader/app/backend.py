from __future__ import annotations

import contextlib
import functools
import json
import mimetypes
from collections.abc import Callable, Iterable
from concurrent.futures import Executor
from pathlib import Path
from typing import Any

from PySide6.QtCore import Property, QObject, QUrl, Signal, Slot

from photo_uploader.app.state.crop_state import CropSession
from photo_uploader.app.state.metadata_store import MetadataStore
from photo_uploader.errors import DecodeFailure
from photo_uploader.image_engine.classifier import AspectClassifier
from photo_uploader.image_engine.compressor import compress_upload, jpeg_name
from photo_uploader.image_engine.metrics import CROP_APPLIED, metrics
from photo_uploader.image_engine.previews import PreviewImageProvider, PreviewRegistry
from photo_uploader.logger import get_logger
from photo_uploader.models import IngestReport, PhotoMetadata, RawPhoto
from photo_uploader.ops.crop_sequencer import CropSequencer
from photo_uploader.ops.ingest_gateway import IngestionGateway
from photo_uploader.qml_models import PhotoListModel
from photo_uploader.settings_manager import SettingsManager, UploaderConfig

_logger = get_logger("backend")


def _upload_compressor(config: UploaderConfig) -> Callable[[RawPhoto], RawPhoto] | None:
    if not config.compress_uploads:
        return None
    return functools.partial(
        compress_upload,
        max_size=(config.compress_max_width, config.compress_max_height),
        quality=config.compress_quality,
        max_kb=config.compress_max_kb,
    )


def load_raw_photo(path: str) -> RawPhoto:
    """Read a picked file from disk; the MIME type is guessed from its name."""
    p = Path(path)
    mime, _enc = mimetypes.guess_type(p.name)
    return RawPhoto(data=p.read_bytes(), mime_type=mime or "application/octet-stream", filename=p.name)


class UploaderBackend(QObject):
    """Single backend object for one photo-upload widget.

    QML → Python: backend.dispatch(cmd, payload)
    Python → QML: backend.event(dict)
    QML bindings: backend.store / backend.crop / backend.photos (grid model)

    Pass `existing_urls` for the editor variant (an item that already has
    published photos); those count toward `max_files` but never enter the
    store.
    """

    # QObject already has an .event() handler method, so we must not shadow it.
    event_ = Signal(object, name="event")
    existingUrlsChanged = Signal()

    def __init__(
        self,
        config: UploaderConfig | None = None,
        settings: SettingsManager | None = None,
        existing_urls: Iterable[str] | None = None,
        executor: Executor | None = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)

        if config is None:
            config = UploaderConfig.from_settings(settings or SettingsManager())
        self._config = config

        self._previews = PreviewRegistry()
        self.preview_provider = PreviewImageProvider(self._previews)

        self._store = MetadataStore(self)
        self._crop = CropSession(self._store, self._previews, config, self)
        self._sequencer = CropSequencer(self._store, self._crop)
        self._gateway = IngestionGateway(config)
        self._photos = PhotoListModel(self._store, self)
        self._classifier = AspectClassifier(
            self._previews,
            target_ratio=config.target_aspect_ratio,
            tolerance=config.aspect_tolerance,
            executor=executor,
            parent=self,
            compress=_upload_compressor(config),
        )

        self._editor_mode = existing_urls is not None
        self._existing_urls: list[str] = [str(u) for u in (existing_urls or [])]

        self._setup_signals()

    def _setup_signals(self) -> None:
        self._classifier.batch_classified.connect(self._on_batch_classified)
        self._classifier.batch_failed.connect(self._on_batch_failed)
        self._crop.cropConfirmed.connect(self._on_crop_confirmed)
        self._crop.cropFailed.connect(self._on_crop_failed)

    # ---- expose state objects to QML ----
    def _get_store(self) -> QObject:
        return self._store

    store = Property(QObject, _get_store, constant=True)  # type: ignore[arg-type]

    def _get_crop(self) -> QObject:
        return self._crop

    crop = Property(QObject, _get_crop, constant=True)  # type: ignore[arg-type]

    def _get_photos(self) -> QObject:
        return self._photos

    photos = Property(QObject, _get_photos, constant=True)  # type: ignore[arg-type]

    # ---- python-side reads ----
    @property
    def config(self) -> UploaderConfig:
        return self._config

    @property
    def previews(self) -> PreviewRegistry:
        return self._previews

    @property
    def session(self) -> CropSession:
        return self._crop

    @property
    def metadata_store(self) -> MetadataStore:
        return self._store

    @property
    def photo_model(self) -> PhotoListModel:
        return self._photos

    @property
    def sequencer(self) -> CropSequencer:
        return self._sequencer

    @property
    def editor_mode(self) -> bool:
        return self._editor_mode

    def existing_urls(self) -> list[str]:
        return list(self._existing_urls)

    def occupancy(self) -> int:
        """Slots in use: published photos, stored photos and photos still classifying."""
        return len(self._existing_urls) + len(self._store) + self._classifier.pending_photos

    def current_upload_list(self) -> list[RawPhoto]:
        return self._store.upload_list

    def metadata(self) -> tuple[PhotoMetadata, ...]:
        return self._store.metadata

    def pending_crop_count(self) -> int:
        return self._store.pending_count

    # ---- host operations ----
    def ingest(self, files: Iterable[RawPhoto]) -> IngestReport:
        """Validate a picked/dropped batch and start classifying what passes.

        Validation and capacity problems are reported through the returned
        report and `event`; classification completes asynchronously and lands
        in the store as one ordered unit.
        """
        report = self._gateway.filter(files, self.occupancy())
        for err in report.rejected:
            self.event_.emit(err.to_event())
        if report.capacity is not None:
            self.event_.emit(report.capacity.to_event())
        if report.accepted:
            batch_id = self._classifier.submit(report.accepted)
            _logger.info("ingest batch=%d accepted=%d", batch_id, len(report.accepted))
        return report

    def confirm_crop(self, index: int, blob: bytes) -> PhotoMetadata:
        """Store a rasterized crop for `index` and move on to the next pending photo.

        The upload entry is replaced by the JPEG crop under the same .jpeg name.
        """
        photo, meta = self._store.get(index)
        if not blob:
            raise ValueError("empty crop result")
        if self._crop.is_open and self._crop.index == index:
            self._crop.close()

        cropped_url = self._previews.register(blob)
        cropped = RawPhoto(data=bytes(blob), mime_type="image/jpeg", filename=jpeg_name(photo.filename))
        updated = self._store.update(
            index,
            {"edited": True, "cropped_binary": cropped.data, "cropped_preview_url": cropped_url},
            upload=cropped,
        )
        self._revoke(meta.cropped_preview_url)
        metrics.inc(CROP_APPLIED)
        _logger.info("crop applied: index=%d bytes=%d pending=%d", index, len(blob), self._store.pending_count)
        self.event_.emit(
            {
                "type": "event",
                "name": "cropApplied",
                "level": "info",
                "index": index,
                "pending": self._store.pending_count,
            }
        )
        self._sequencer.advance(after=index)
        return updated

    def remove(self, index: int) -> RawPhoto:
        """Delete a new photo; higher indices shift down and an open session follows its photo."""
        self._store.get(index)
        session = self._crop
        target_removed = False
        if session.is_open:
            if session.index == index:
                target_removed = session.close()
            elif session.index > index:
                session.rebind(session.index - 1)

        photo, meta = self._store.remove(index)
        self._revoke(meta.source_preview_url)
        self._revoke(meta.cropped_preview_url)
        _logger.debug("removed index=%d remaining=%d", index, len(self._store))
        if target_removed:
            self._sequencer.rescan()
        return photo

    def reset(self) -> None:
        """Drop every new photo, in-flight batches included, and close any session."""
        self._crop.close()
        self._classifier.discard_pending()
        for meta in self._store.reset():
            self._revoke(meta.source_preview_url)
            self._revoke(meta.cropped_preview_url)
        _logger.debug("uploader reset")

    def open_crop(self, index: int) -> None:
        """User tapped a photo: crop (or re-crop) it regardless of its status."""
        self._store.get(index)
        self._crop.schedule(index, manual=True)

    def close_crop(self) -> None:
        """User dismissed the crop dialog; the photo stays pending."""
        if self._crop.is_open and self._crop.close():
            self._sequencer.pause()

    def remove_existing(self, url: str) -> bool:
        if url not in self._existing_urls:
            return False
        self._existing_urls.remove(url)
        self.existingUrlsChanged.emit()
        return True

    def shutdown(self) -> None:
        self._crop.close()
        self._classifier.shutdown()

    # ---- classifier / session callbacks ----
    def _on_batch_classified(self, batch_id: int, entries: object, failures: object) -> None:
        decode_failures: list[DecodeFailure] = list(failures or [])  # type: ignore[arg-type]
        for err in decode_failures:
            self.event_.emit(err.to_event())

        batch = list(entries or [])  # type: ignore[arg-type]
        indices = self._store.append(batch)
        flagged = sum(1 for _photo, meta in batch if meta.needs_crop)
        _logger.info(
            "batch=%d classified: added=%d needs_crop=%d failed=%d",
            batch_id,
            len(batch),
            flagged,
            len(decode_failures),
        )
        self.event_.emit(
            {
                "type": "event",
                "name": "batchClassified",
                "level": "info",
                "batch": batch_id,
                "indices": list(indices),
                "needsCrop": flagged,
                "failed": len(decode_failures),
                "pending": self._store.pending_count,
            }
        )
        if batch:
            self._sequencer.advance()

    def _on_batch_failed(self, batch_id: int, message: str) -> None:
        _logger.error("batch=%d failed: %s", batch_id, message)
        self.event_.emit(
            {
                "type": "event",
                "name": "ingestFailed",
                "level": "error",
                "batch": batch_id,
                "message": message,
            }
        )

    def _on_crop_confirmed(self, index: int, blob: object) -> None:
        self.confirm_crop(index, bytes(blob))  # type: ignore[arg-type]

    def _on_crop_failed(self, index: int, message: str) -> None:
        self.event_.emit(
            {
                "type": "event",
                "name": "cropFailed",
                "level": "warning",
                "index": index,
                "message": message,
            }
        )

    def _revoke(self, url: str | None) -> None:
        if not url:
            return
        self.preview_provider.evict(url)
        self._previews.revoke(url)

    # ---- QML command entry ----
    @Slot(str, "QVariant")  # type: ignore[call-overload]
    def dispatch(self, cmd: str, payload: object | None = None) -> None:  # noqa: PLR0911, PLR0912
        command = str(cmd or "").strip()
        if not command:
            self.event_.emit({"type": "event", "name": "error", "level": "error", "message": "Empty cmd"})
            return

        try:
            if command == "ingest":
                paths = _coerce_paths(_get_payload_value(payload, "paths", default=payload))
                self._cmd_ingest_paths(paths)
                return

            if command == "remove":
                self.remove(int(_get_payload_value(payload, "index", default=-1)))
                return

            if command == "removeExisting":
                self.remove_existing(str(_get_payload_value(payload, "url", default="")))
                return

            if command == "reset":
                self.reset()
                return

            if command == "openCrop":
                self.open_crop(int(_get_payload_value(payload, "index", default=-1)))
                return

            if command == "closeCrop":
                self.close_crop()
                return

            if command == "cropConfirm":
                self._crop.confirm()
                return

            if command == "cropBeginInteraction":
                self._crop.begin_interaction()
                return

            if command == "cropEndInteraction":
                self._crop.end_interaction()
                return

            if command == "cropSetRect":
                self._crop.set_rect(
                    float(_get_payload_value(payload, "x", default=self._crop._get_x())),
                    float(_get_payload_value(payload, "y", default=self._crop._get_y())),
                    float(_get_payload_value(payload, "w", default=self._crop._get_w())),
                    float(_get_payload_value(payload, "h", default=self._crop._get_h())),
                    str(_get_payload_value(payload, "anchor", default="center")),
                )
                return

            if command == "cropMove":
                self._crop.move(
                    float(_get_payload_value(payload, "dx", default=0.0)),
                    float(_get_payload_value(payload, "dy", default=0.0)),
                )
                return

            if command == "cropZoom":
                self._crop.zoom_to(float(_get_payload_value(payload, "value", default=1.0)))
                return

            if command == "cropZoomBy":
                self._crop.zoom_by(float(_get_payload_value(payload, "factor", default=1.0)))
                return

            if command == "cropRotate":
                self._crop.rotate(int(_get_payload_value(payload, "degrees", default=90)))
                return

            if command == "cropReset":
                self._crop.reset()
                return
        except (IndexError, ValueError, TypeError) as e:
            _logger.warning("command %s failed: %s", command, e)
            self.event_.emit({"type": "event", "name": "error", "level": "warning", "message": f"{command}: {e}"})
            return

        self.event_.emit(
            {
                "type": "event",
                "name": "error",
                "level": "warning",
                "message": f"Unknown cmd: {command}",
            }
        )

    def _cmd_ingest_paths(self, paths: list[str]) -> None:
        photos: list[RawPhoto] = []
        for raw in paths:
            path = raw
            if path.startswith("file:"):
                url = QUrl(path)
                if url.isLocalFile():
                    path = url.toLocalFile()
            try:
                photos.append(load_raw_photo(path))
            except OSError as e:
                _logger.warning("cannot read %s: %s", path, e)
                self.event_.emit(
                    {
                        "type": "event",
                        "name": "validationError",
                        "level": "warning",
                        "filename": Path(path).name,
                        "reason": "read",
                        "message": str(e),
                    }
                )
        if photos:
            self.ingest(photos)


def _coerce_paths(payload: object) -> list[str]:
    """Coerce a QML-provided payload into a list of file paths or file: URLs."""

    if payload is None:
        return []

    if payload.__class__.__name__ == "QJSValue" and hasattr(payload, "toVariant"):
        with contextlib.suppress(Exception):
            payload = payload.toVariant()  # type: ignore[attr-defined]

    if isinstance(payload, (list, tuple)):
        return [p.toString() if isinstance(p, QUrl) else str(p) for p in payload if p is not None]

    if isinstance(payload, QUrl):
        return [payload.toString()]

    if isinstance(payload, str):
        with contextlib.suppress(ValueError):
            v = json.loads(payload)
            if isinstance(v, list):
                return [str(p) for p in v if p is not None]
        return [payload]

    return [str(payload)]


def _get_payload_value(payload: object | None, key: str, *, default: Any) -> Any:
    """Extract a value from a QML payload (dict-like, QJSValue or None)."""

    if payload is None:
        return default

    # QML often passes a JS object which arrives as QJSValue/QVariant.
    if payload.__class__.__name__ == "QJSValue" and hasattr(payload, "toVariant"):
        with contextlib.suppress(Exception):
            payload = payload.toVariant()  # type: ignore[assignment, attr-defined]

    if isinstance(payload, dict):
        return payload.get(key, default)

    return default
