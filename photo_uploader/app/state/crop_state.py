from __future__ import annotations

from enum import Enum

from PySide6.QtCore import Property, QObject, QTimer, Signal

from photo_uploader.app.state.metadata_store import MetadataStore
from photo_uploader.errors import RasterizationFailure
from photo_uploader.image_engine.previews import PreviewRegistry
from photo_uploader.logger import get_logger
from photo_uploader.ops.crop_controller import CropSurface, RectN
from photo_uploader.settings_manager import UploaderConfig

_logger = get_logger("crop_session")


class SessionState(str, Enum):
    CLOSED = "closed"
    SCHEDULED = "scheduled"
    READY = "ready"
    CROPPING = "cropping"
    APPLYING = "applying"


_OPEN_STATES = frozenset({SessionState.SCHEDULED, SessionState.READY, SessionState.CROPPING, SessionState.APPLYING})
_MOUNTED_STATES = frozenset({SessionState.READY, SessionState.CROPPING})


class CropSession(QObject):
    """Crop lifecycle for exactly one photo, bound by the QML crop dialog.

    Design:
    - closed -> scheduled -> ready <-> cropping -> applying -> closed.
    - Mounting is deferred by `open_delay_ms` so the dialog finishes its open
      animation before the crop surface measures its viewport.
    - At most one CropSurface exists; it is destroyed before another is
      mounted and whenever the session closes.
    - The session never writes the store. A successful confirm emits
      `cropConfirmed(index, blob)` after the surface is gone; the owner applies it.
    """

    stateChanged = Signal(str)
    indexChanged = Signal(int)
    imageUrlChanged = Signal(str)
    imageWidthChanged = Signal(int)
    imageHeightChanged = Signal(int)

    rectXChanged = Signal(float)
    rectYChanged = Signal(float)
    rectWChanged = Signal(float)
    rectHChanged = Signal(float)

    zoomChanged = Signal(float)
    rotationChanged = Signal(int)

    # index, encoded JPEG bytes
    cropConfirmed = Signal(int, object)
    # index, message
    cropFailed = Signal(int, str)
    # index that was no longer a valid target when the open timer fired
    staleTarget = Signal(int)

    def __init__(
        self,
        store: MetadataStore,
        previews: PreviewRegistry,
        config: UploaderConfig,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._store = store
        self._previews = previews
        self._config = config
        self._state = SessionState.CLOSED
        self._index = -1
        self._manual = False
        self._surface: CropSurface | None = None

        self._image_url = ""
        self._image_w = 0
        self._image_h = 0
        self._rect = RectN(0.0, 0.0, 0.0, 0.0)
        self._zoom = 1.0
        self._rotation = 0

        self._open_timer = QTimer(self)
        self._open_timer.setSingleShot(True)
        self._open_timer.timeout.connect(self._on_open_timer)

    # ---- python-side reads ----
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def index(self) -> int:
        return self._index

    @property
    def is_open(self) -> bool:
        return self._state in _OPEN_STATES

    @property
    def manual(self) -> bool:
        return self._manual

    @property
    def surface(self) -> CropSurface | None:
        return self._surface

    # ---- read-only properties (mutate via session methods) ----
    def _get_state(self) -> str:
        return self._state.value

    sessionState = Property(str, _get_state, notify=stateChanged)  # type: ignore[arg-type]

    def _get_index(self) -> int:
        return int(self._index)

    photoIndex = Property(int, _get_index, notify=indexChanged)  # type: ignore[arg-type]

    def _get_image_url(self) -> str:
        return str(self._image_url)

    imageUrl = Property(str, _get_image_url, notify=imageUrlChanged)  # type: ignore[arg-type]

    def _get_image_width(self) -> int:
        return int(self._image_w)

    imageWidth = Property(int, _get_image_width, notify=imageWidthChanged)  # type: ignore[arg-type]

    def _get_image_height(self) -> int:
        return int(self._image_h)

    imageHeight = Property(int, _get_image_height, notify=imageHeightChanged)  # type: ignore[arg-type]

    def _get_x(self) -> float:
        return float(self._rect.x)

    rectX = Property(float, _get_x, notify=rectXChanged)  # type: ignore[arg-type]

    def _get_y(self) -> float:
        return float(self._rect.y)

    rectY = Property(float, _get_y, notify=rectYChanged)  # type: ignore[arg-type]

    def _get_w(self) -> float:
        return float(self._rect.w)

    rectW = Property(float, _get_w, notify=rectWChanged)  # type: ignore[arg-type]

    def _get_h(self) -> float:
        return float(self._rect.h)

    rectH = Property(float, _get_h, notify=rectHChanged)  # type: ignore[arg-type]

    def _get_zoom(self) -> float:
        return float(self._zoom)

    zoom = Property(float, _get_zoom, notify=zoomChanged)  # type: ignore[arg-type]

    def _get_rotation(self) -> int:
        return int(self._rotation)

    rotation = Property(int, _get_rotation, notify=rotationChanged)  # type: ignore[arg-type]

    def _get_aspect_ratio(self) -> float:
        return float(self._config.target_aspect_ratio)

    aspectRatio = Property(float, _get_aspect_ratio, constant=True)  # type: ignore[arg-type]

    # ---- lifecycle ----
    def schedule(self, index: int, *, manual: bool = False) -> None:
        """Request a session for `index`; mounting happens after the open delay."""
        if self._state is SessionState.APPLYING:
            raise RuntimeError("cannot reschedule while a crop is being applied")
        if self.is_open:
            self._teardown()
        self._manual = bool(manual)
        self._set_index(index)
        self._set_state(SessionState.SCHEDULED)
        _logger.debug("session scheduled: index=%d delay=%dms manual=%s", index, self._config.open_delay_ms, manual)
        self._open_timer.start(int(self._config.open_delay_ms))

    def rebind(self, index: int) -> None:
        """Follow the bound photo after a lower index was removed."""
        if not self.is_open or index == self._index:
            return
        _logger.debug("session rebound: %d -> %d", self._index, index)
        self._set_index(index)

    def close(self) -> bool:
        """Abandon the session without touching the store.

        Returns False while a crop is being applied (that step always completes).
        """
        if self._state is SessionState.APPLYING:
            _logger.debug("close ignored while applying index=%d", self._index)
            return False
        if self._state is SessionState.CLOSED:
            return True
        _logger.debug("session closed without confirm: index=%d state=%s", self._index, self._state.value)
        self._teardown()
        return True

    def _valid_target(self, index: int) -> bool:
        if self._manual:
            return 0 <= index < len(self._store)
        return self._store.is_pending(index)

    def _on_open_timer(self) -> None:
        if self._state is not SessionState.SCHEDULED:
            return
        index = self._index
        source = self._original_bytes(index) if self._valid_target(index) else None
        if source is None:
            self._teardown()
            self.staleTarget.emit(index)
            return
        self._mount(index, source)

    def _original_bytes(self, index: int) -> bytes | None:
        # The upload entry may already hold a crop; always reframe the original.
        _photo, meta = self._store.get(index)
        return self._previews.get(meta.source_preview_url)

    def _mount(self, index: int, source: bytes) -> None:
        if self._surface is not None:
            self._surface.destroy()
            self._surface = None
        _photo, meta = self._store.get(index)
        cfg = self._config
        self._surface = CropSurface(
            source,
            meta.pixel_width,
            meta.pixel_height,
            aspect_ratio=cfg.target_aspect_ratio,
            auto_crop_area=cfg.auto_crop_area,
            min_zoom=cfg.min_zoom,
            max_zoom=cfg.max_zoom,
        )
        self._set_image_url(meta.source_preview_url)
        self._sync_from_surface()
        self._set_state(SessionState.READY)
        _logger.debug("session ready: index=%d size=%dx%d", index, meta.pixel_width, meta.pixel_height)

    def _teardown(self) -> None:
        self._open_timer.stop()
        if self._surface is not None:
            self._surface.destroy()
            self._surface = None
        self._manual = False
        self._set_image_url("")
        self._set_image_size(0, 0)
        self._set_rect(RectN(0.0, 0.0, 0.0, 0.0))
        self._set_zoom(1.0)
        self._set_rotation(0)
        self._set_index(-1)
        self._set_state(SessionState.CLOSED)

    # ---- interaction ----
    def begin_interaction(self) -> None:
        # Interaction is internal; it does not notify listeners.
        if self._state is SessionState.READY:
            self._state = SessionState.CROPPING

    def end_interaction(self) -> None:
        if self._state is SessionState.CROPPING:
            self._state = SessionState.READY

    def _require_surface(self) -> CropSurface | None:
        if self._state not in _MOUNTED_STATES:
            return None
        return self._surface

    def set_rect(self, x: float, y: float, w: float, h: float, anchor: str = "center") -> None:
        surface = self._require_surface()
        if surface is None:
            return
        surface.set_rect(RectN(x, y, w, h), anchor)
        self._sync_from_surface()

    def move(self, dx: float, dy: float) -> None:
        surface = self._require_surface()
        if surface is None:
            return
        surface.move(dx, dy)
        self._sync_from_surface()

    def zoom_to(self, value: float) -> None:
        surface = self._require_surface()
        if surface is None:
            return
        surface.zoom_to(value)
        self._sync_from_surface()

    def zoom_by(self, factor: float) -> None:
        surface = self._require_surface()
        if surface is None:
            return
        surface.zoom_by(factor)
        self._sync_from_surface()

    def rotate(self, degrees: int) -> None:
        surface = self._require_surface()
        if surface is None:
            return
        surface.rotate(degrees)
        self._sync_from_surface()

    def reset(self) -> None:
        surface = self._require_surface()
        if surface is None:
            return
        surface.reset()
        self._sync_from_surface()

    def confirm(self) -> bytes | None:
        """Rasterize the crop box and close the session.

        On RasterizationFailure the session returns to ready and nothing is
        emitted besides `cropFailed`; the user may retry.
        """
        surface = self._require_surface()
        if surface is None:
            return None
        index = self._index
        self._set_state(SessionState.APPLYING)
        cfg = self._config
        try:
            blob = surface.rasterize((cfg.raster_max_width, cfg.raster_max_height), cfg.jpeg_quality)
        except RasterizationFailure as e:
            _logger.warning("crop failed for index=%d: %s", index, e)
            self._set_state(SessionState.READY)
            self.cropFailed.emit(index, str(e))
            return None

        self._teardown()
        self.cropConfirmed.emit(index, blob)
        return blob

    # ---- internal mutation helpers ----
    def _sync_from_surface(self) -> None:
        surface = self._surface
        if surface is None:
            return
        w, h = surface.image_size
        self._set_image_size(w, h)
        self._set_rect(surface.rect)
        self._set_zoom(surface.zoom)
        self._set_rotation(surface.rotation)

    def _set_state(self, state: SessionState) -> None:
        if state is self._state:
            return
        self._state = state
        self.stateChanged.emit(state.value)

    def _set_index(self, index: int) -> None:
        i = int(index)
        if i == self._index:
            return
        self._index = i
        self.indexChanged.emit(i)

    def _set_image_url(self, url: str) -> None:
        u = str(url)
        if u == self._image_url:
            return
        self._image_url = u
        self.imageUrlChanged.emit(u)

    def _set_image_size(self, w: int, h: int) -> None:
        iw = int(w)
        ih = int(h)
        if iw != self._image_w:
            self._image_w = iw
            self.imageWidthChanged.emit(iw)
        if ih != self._image_h:
            self._image_h = ih
            self.imageHeightChanged.emit(ih)

    def _set_rect(self, rect: RectN) -> None:
        old = self._rect
        self._rect = rect
        if rect.x != old.x:
            self.rectXChanged.emit(float(rect.x))
        if rect.y != old.y:
            self.rectYChanged.emit(float(rect.y))
        if rect.w != old.w:
            self.rectWChanged.emit(float(rect.w))
        if rect.h != old.h:
            self.rectHChanged.emit(float(rect.h))

    def _set_zoom(self, value: float) -> None:
        z = float(value)
        if z == self._zoom:
            return
        self._zoom = z
        self.zoomChanged.emit(z)

    def _set_rotation(self, value: int) -> None:
        r = int(value) % 360
        if r == self._rotation:
            return
        self._rotation = r
        self.rotationChanged.emit(r)
