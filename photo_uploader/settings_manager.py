from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any

from .logger import get_logger

_logger = get_logger("settings")


class SettingsManager:
    """JSON-backed overrides for the uploader configuration."""

    def __init__(self, settings_path: str | None = None):
        self.settings_path = settings_path
        self._settings: dict[str, Any] = {}
        self.load()

    DEFAULTS: dict[str, Any] = {
        "max_files": 6,
        "max_size_kb": 5000,
        "target_aspect_ratio": 1.0,
        "accept": "image/*",
        "aspect_tolerance": 0.01,
        "open_delay_ms": 300,
        "raster_max_width": 1920,
        "raster_max_height": 1080,
        "jpeg_quality": 90,
        "min_zoom": 0.5,
        "max_zoom": 3.0,
        "auto_crop_area": 0.9,
        "compress_uploads": True,
        "compress_max_width": 1024,
        "compress_max_height": 1024,
        "compress_quality": 80,
        "compress_max_kb": 200,
    }

    def load(self) -> None:
        if not self.settings_path:
            self._settings = {}
            return
        try:
            if os.path.exists(self.settings_path):
                with open(self.settings_path, encoding="utf-8") as f:
                    data = json.load(f)
                    if isinstance(data, dict):
                        self._settings = data
                        _logger.debug("settings loaded: %s", self.settings_path)
                        return
        except (OSError, ValueError) as e:
            _logger.warning("settings load failed: %s", e)
        self._settings = {}

    def save(self) -> None:
        if not self.settings_path:
            return
        try:
            parent = os.path.dirname(self.settings_path)
            if parent:
                os.makedirs(parent, exist_ok=True)
            with open(self.settings_path, "w", encoding="utf-8") as f:
                json.dump(self._settings, f, ensure_ascii=False, indent=2)
            _logger.debug("settings saved: %s", self.settings_path)
        except OSError as e:
            _logger.error("settings save failed: %s", e)

    def get(self, key: str, default: Any = None) -> Any:
        if key in self._settings:
            return self._settings[key]
        if default is not None:
            return default
        return self.DEFAULTS.get(key)

    def has(self, key: str) -> bool:
        return key in self._settings

    def set(self, key: str, value: Any) -> None:
        self._settings[key] = value
        self.save()

    @property
    def data(self) -> dict[str, Any]:
        return self._settings


def parse_aspect_ratio(value: Any) -> float:
    """Accept 1.0, "1", "1:1", "4:3" or "16/9" and return width / height."""
    if isinstance(value, (int, float)):
        ratio = float(value)
    else:
        text = str(value or "").strip()
        sep = ":" if ":" in text else ("/" if "/" in text else None)
        if sep is None:
            ratio = float(text)
        else:
            w, h = text.split(sep, 1)
            ratio = float(w) / float(h)
    if ratio <= 0:
        raise ValueError(f"aspect ratio must be positive, got {value!r}")
    return ratio


@dataclass(frozen=True, slots=True)
class UploaderConfig:
    max_files: int = 6
    max_size_kb: int = 5000
    target_aspect_ratio: float = 1.0
    accept: str = "image/*"
    # Observed behavior is near-exact equality on width/height.
    aspect_tolerance: float = 0.01
    # Matches the host dialog's open animation.
    open_delay_ms: int = 300
    raster_max_width: int = 1920
    raster_max_height: int = 1080
    jpeg_quality: int = 90
    min_zoom: float = 0.5
    max_zoom: float = 3.0
    auto_crop_area: float = 0.9
    # Accepted photos are re-encoded before they join the upload list.
    compress_uploads: bool = True
    compress_max_width: int = 1024
    compress_max_height: int = 1024
    compress_quality: int = 80
    compress_max_kb: int = 200

    @property
    def max_size_bytes(self) -> int:
        return int(self.max_size_kb) * 1024

    @classmethod
    def from_settings(cls, settings: SettingsManager) -> UploaderConfig:
        d = SettingsManager.DEFAULTS
        try:
            ratio = parse_aspect_ratio(settings.get("target_aspect_ratio"))
        except (TypeError, ValueError, ZeroDivisionError) as e:
            _logger.warning("invalid target_aspect_ratio, using 1:1: %s", e)
            ratio = float(d["target_aspect_ratio"])
        return cls(
            max_files=max(0, int(settings.get("max_files"))),
            max_size_kb=max(0, int(settings.get("max_size_kb"))),
            target_aspect_ratio=ratio,
            accept=str(settings.get("accept") or d["accept"]),
            aspect_tolerance=max(0.0, float(settings.get("aspect_tolerance"))),
            open_delay_ms=max(0, int(settings.get("open_delay_ms"))),
            raster_max_width=max(1, int(settings.get("raster_max_width"))),
            raster_max_height=max(1, int(settings.get("raster_max_height"))),
            jpeg_quality=max(1, min(100, int(settings.get("jpeg_quality")))),
            min_zoom=float(settings.get("min_zoom")),
            max_zoom=float(settings.get("max_zoom")),
            auto_crop_area=max(0.1, min(1.0, float(settings.get("auto_crop_area")))),
            compress_uploads=bool(settings.get("compress_uploads")),
            compress_max_width=max(1, int(settings.get("compress_max_width"))),
            compress_max_height=max(1, int(settings.get("compress_max_height"))),
            compress_quality=max(1, min(100, int(settings.get("compress_quality")))),
            compress_max_kb=max(0, int(settings.get("compress_max_kb"))),
        )
