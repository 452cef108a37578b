from __future__ import annotations

import dataclasses
from collections.abc import Iterable

from PySide6.QtCore import Property, QObject, Signal

from photo_uploader.models import PhotoMetadata, RawPhoto

_PATCHABLE = frozenset({"edited", "cropped_binary", "cropped_preview_url"})


class MetadataStore(QObject):
    """Index-aligned photo metadata and upload list.

    Design:
    - `metadata[i]` always describes `upload_list[i]`; every mutation keeps the
      two lists the same length.
    - Mutations are synchronous; signals fire only after both lists are
      updated, so listeners never observe a half-applied state.
    - `pendingCount` is derived on every read.
    """

    changed = Signal()
    countChanged = Signal(int)
    pendingCountChanged = Signal(int)
    # Row-level notifications for list models: first, last (inclusive).
    rowsAppended = Signal(int, int)
    rowRemoved = Signal(int)
    rowUpdated = Signal(int)
    cleared = Signal()

    def __init__(self, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._metadata: list[PhotoMetadata] = []
        self._uploads: list[RawPhoto] = []

    # ---- reads ----
    @property
    def metadata(self) -> tuple[PhotoMetadata, ...]:
        return tuple(self._metadata)

    @property
    def upload_list(self) -> list[RawPhoto]:
        return list(self._uploads)

    def __len__(self) -> int:
        return len(self._metadata)

    def get(self, index: int) -> tuple[RawPhoto, PhotoMetadata]:
        self._check_index(index)
        return self._uploads[index], self._metadata[index]

    def pending_indices(self) -> list[int]:
        return [i for i, m in enumerate(self._metadata) if m.pending]

    def is_pending(self, index: int) -> bool:
        return 0 <= index < len(self._metadata) and self._metadata[index].pending

    def _get_count(self) -> int:
        return len(self._metadata)

    count = Property(int, _get_count, notify=countChanged)  # type: ignore[arg-type]

    def _get_pending_count(self) -> int:
        return sum(1 for m in self._metadata if m.pending)

    pendingCount = Property(int, _get_pending_count, notify=pendingCountChanged)  # type: ignore[arg-type]

    @property
    def pending_count(self) -> int:
        return self._get_pending_count()

    # ---- mutations ----
    def append(self, entries: Iterable[tuple[RawPhoto, PhotoMetadata]]) -> range:
        """Append a classified batch; existing indices are untouched.

        Returns the range of indices the batch now occupies.
        """
        batch = list(entries)
        start = len(self._metadata)
        if not batch:
            return range(start, start)
        before = self._get_pending_count()
        self._uploads.extend(photo for photo, _ in batch)
        self._metadata.extend(meta for _, meta in batch)
        self.rowsAppended.emit(start, len(self._metadata) - 1)
        self._notify(before, count_changed=True)
        return range(start, len(self._metadata))

    def update(self, index: int, patch: dict, upload: RawPhoto | None = None) -> PhotoMetadata:
        """Replace crop fields of one entry in place.

        Raises:
            IndexError: index out of range.
            ValueError: patch touches a non-crop field or clears `edited`.
        """
        self._check_index(index)
        unknown = set(patch) - _PATCHABLE
        if unknown:
            raise ValueError(f"cannot patch fields: {sorted(unknown)}")
        current = self._metadata[index]
        if current.edited and patch.get("edited") is False:
            raise ValueError("edited cannot revert to False")

        updated = dataclasses.replace(current, **patch)
        before = self._get_pending_count()
        self._metadata[index] = updated
        if upload is not None:
            self._uploads[index] = upload
        self.rowUpdated.emit(index)
        self._notify(before, count_changed=False)
        return updated

    def remove(self, index: int) -> tuple[RawPhoto, PhotoMetadata]:
        """Delete one pair; higher indices shift down by one."""
        self._check_index(index)
        before = self._get_pending_count()
        photo = self._uploads.pop(index)
        meta = self._metadata.pop(index)
        self.rowRemoved.emit(index)
        self._notify(before, count_changed=True)
        return photo, meta

    def reset(self) -> list[PhotoMetadata]:
        removed = list(self._metadata)
        if not removed:
            return removed
        before = self._get_pending_count()
        self._metadata.clear()
        self._uploads.clear()
        self.cleared.emit()
        self._notify(before, count_changed=True)
        return removed

    # ---- helpers ----
    def _check_index(self, index: int) -> None:
        if not isinstance(index, int) or not 0 <= index < len(self._metadata):
            raise IndexError(f"photo index {index!r} out of range (0..{len(self._metadata) - 1})")

    def _notify(self, pending_before: int, *, count_changed: bool) -> None:
        if count_changed:
            self.countChanged.emit(len(self._metadata))
        pending = self._get_pending_count()
        if pending != pending_before:
            self.pendingCountChanged.emit(pending)
        self.changed.emit()
