from __future__ import annotations

import itertools
import threading
from collections import OrderedDict
from typing import Any

from PySide6.QtCore import Qt
from PySide6.QtGui import QPixmap
from PySide6.QtQuick import QQuickImageProvider

from photo_uploader.logger import get_logger

_logger = get_logger("previews")

PROVIDER_ID = "photos"
_URL_PREFIX = f"image://{PROVIDER_ID}/"


class PreviewRegistry:
    """Displayable references to in-memory image bytes.

    Each `register()` returns a fresh `image://photos/<n>` URL that stays valid
    until `revoke()` is called, mirroring object URLs in a browser.
    """

    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}
        self._ids = itertools.count(1)
        # Classification workers register from pool threads.
        self._lock = threading.Lock()

    def register(self, data: bytes) -> str:
        with self._lock:
            key = str(next(self._ids))
            self._data[key] = data
        return _URL_PREFIX + key

    def revoke(self, url: str | None) -> None:
        key = self.key_for(url)
        if key is None:
            return
        with self._lock:
            self._data.pop(key, None)

    def get(self, url_or_key: str) -> bytes | None:
        key = self.key_for(url_or_key) or str(url_or_key)
        with self._lock:
            return self._data.get(key)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    @staticmethod
    def key_for(url: str | None) -> str | None:
        if not url or not str(url).startswith(_URL_PREFIX):
            return None
        return str(url)[len(_URL_PREFIX) :]


def _placeholder() -> QPixmap:
    pix = QPixmap(1, 1)
    pix.fill(Qt.GlobalColor.transparent)
    return pix


class PreviewImageProvider(QQuickImageProvider):
    """QML image provider for `image://photos/<id>` preview references."""

    def __init__(self, registry: PreviewRegistry, *, max_cached_pixmaps: int = 32) -> None:
        super().__init__(QQuickImageProvider.ImageType.Pixmap)
        self._registry = registry
        self._max_cached_pixmaps = max(0, int(max_cached_pixmaps))
        # QML re-requests the same preview on every relayout.
        self._pixmap_cache: OrderedDict[str, QPixmap] = OrderedDict()
        self._cache_lock = threading.Lock()

    def _cache_get(self, key: str) -> QPixmap | None:
        with self._cache_lock:
            pix = self._pixmap_cache.get(key)
            if pix is not None:
                self._pixmap_cache.move_to_end(key)
            return pix

    def _cache_put(self, key: str, pix: QPixmap) -> None:
        if self._max_cached_pixmaps <= 0:
            return
        with self._cache_lock:
            self._pixmap_cache[key] = pix
            self._pixmap_cache.move_to_end(key)
            while len(self._pixmap_cache) > self._max_cached_pixmaps:
                self._pixmap_cache.popitem(last=False)

    def evict(self, url: str | None) -> None:
        key = PreviewRegistry.key_for(url)
        if key is None:
            return
        with self._cache_lock:
            self._pixmap_cache.pop(key, None)

    def requestPixmap(self, id: str, size: Any, requestedSize: Any) -> QPixmap:  # noqa: A002
        key = str(id)
        cached = self._cache_get(key)
        if cached is not None and not cached.isNull():
            return cached

        data = self._registry.get(key)
        if not data:
            return _placeholder()

        pix = QPixmap()
        if not pix.loadFromData(data):
            _logger.debug("preview %s could not be loaded into a pixmap", key)
            return _placeholder()

        self._cache_put(key, pix)
        return pix
