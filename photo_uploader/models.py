from __future__ import annotations

from dataclasses import dataclass, field

from photo_uploader.errors import CapacityExceeded, ValidationError


@dataclass(frozen=True, slots=True)
class RawPhoto:
    """A user-selected file prior to processing."""

    data: bytes
    mime_type: str
    filename: str
    size: int = -1

    def __post_init__(self) -> None:
        if self.size < 0:
            object.__setattr__(self, "size", len(self.data))


@dataclass(frozen=True, slots=True)
class PhotoMetadata:
    """Classification and crop result paired with one RawPhoto (same index)."""

    source_preview_url: str
    pixel_width: int
    pixel_height: int
    needs_crop: bool
    edited: bool = False
    cropped_preview_url: str | None = None
    cropped_binary: bytes | None = None

    @property
    def pending(self) -> bool:
        return self.needs_crop and not self.edited

    @property
    def preview_url(self) -> str:
        """Best preview to render: the crop when present, else the original."""
        return self.cropped_preview_url or self.source_preview_url


@dataclass(slots=True)
class IngestReport:
    """Synchronous outcome of filtering one batch of candidate files."""

    accepted: list[RawPhoto] = field(default_factory=list)
    rejected: list[ValidationError] = field(default_factory=list)
    dropped: int = 0
    capacity: CapacityExceeded | None = None

    @property
    def issues(self) -> list[Exception]:
        out: list[Exception] = list(self.rejected)
        if self.capacity is not None:
            out.append(self.capacity)
        return out
