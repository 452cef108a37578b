from __future__ import annotations

from PySide6.QtCore import QAbstractListModel, QModelIndex, QObject, Qt, Slot

from photo_uploader.app.state.metadata_store import MetadataStore
from photo_uploader.models import PhotoMetadata, RawPhoto


class PhotoListModel(QAbstractListModel):
    """QML list model over the photos in a MetadataStore, one row per index.

    The model mirrors the store through its row-level signals and keeps its
    own copy of the rows, so begin/end notifications always see the state
    the view last read.
    """

    class Roles:
        PreviewUrl = Qt.ItemDataRole.UserRole + 1
        SourceUrl = Qt.ItemDataRole.UserRole + 2
        FileName = Qt.ItemDataRole.UserRole + 3
        PixelWidth = Qt.ItemDataRole.UserRole + 4
        PixelHeight = Qt.ItemDataRole.UserRole + 5
        NeedsCrop = Qt.ItemDataRole.UserRole + 6
        Edited = Qt.ItemDataRole.UserRole + 7
        Pending = Qt.ItemDataRole.UserRole + 8

    def __init__(self, store: MetadataStore, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._store = store
        self._rows: list[tuple[RawPhoto, PhotoMetadata]] = [store.get(i) for i in range(len(store))]
        self._role_getters = {
            int(self.Roles.PreviewUrl): lambda p, m: m.preview_url,
            int(self.Roles.SourceUrl): lambda p, m: m.source_preview_url,
            int(self.Roles.FileName): lambda p, m: p.filename,
            int(self.Roles.PixelWidth): lambda p, m: int(m.pixel_width),
            int(self.Roles.PixelHeight): lambda p, m: int(m.pixel_height),
            int(self.Roles.NeedsCrop): lambda p, m: bool(m.needs_crop),
            int(self.Roles.Edited): lambda p, m: bool(m.edited),
            int(self.Roles.Pending): lambda p, m: bool(m.pending),
        }
        store.rowsAppended.connect(self._on_rows_appended)
        store.rowRemoved.connect(self._on_row_removed)
        store.rowUpdated.connect(self._on_row_updated)
        store.cleared.connect(self._on_cleared)

    # ---- Qt model basics -----------------------------------------
    def rowCount(self, parent: QModelIndex | None = None) -> int:  # type: ignore[override]
        if parent is not None and parent.isValid():
            return 0
        return len(self._rows)

    def roleNames(self) -> dict[int, bytes]:  # type: ignore[override]
        return {
            int(self.Roles.PreviewUrl): b"previewUrl",
            int(self.Roles.SourceUrl): b"sourceUrl",
            int(self.Roles.FileName): b"fileName",
            int(self.Roles.PixelWidth): b"pixelWidth",
            int(self.Roles.PixelHeight): b"pixelHeight",
            int(self.Roles.NeedsCrop): b"needsCrop",
            int(self.Roles.Edited): b"edited",
            int(self.Roles.Pending): b"pending",
        }

    def data(self, index: QModelIndex, role: int):  # type: ignore[override]
        if not index.isValid():
            return None
        row = int(index.row())
        if not (0 <= row < len(self._rows)):
            return None
        getter = self._role_getters.get(int(role))
        if getter is None:
            return None
        photo, meta = self._rows[row]
        return getter(photo, meta)

    # ---- store feeds ---------------------------------------------
    @Slot(int, int)
    def _on_rows_appended(self, first: int, last: int) -> None:
        self.beginInsertRows(QModelIndex(), first, last)
        try:
            self._rows.extend(self._store.get(i) for i in range(first, last + 1))
        finally:
            self.endInsertRows()

    @Slot(int)
    def _on_row_removed(self, row: int) -> None:
        self.beginRemoveRows(QModelIndex(), row, row)
        try:
            del self._rows[row]
        finally:
            self.endRemoveRows()

    @Slot(int)
    def _on_row_updated(self, row: int) -> None:
        self._rows[row] = self._store.get(row)
        qidx = self.index(row, 0)
        self.dataChanged.emit(
            qidx,
            qidx,
            [
                int(self.Roles.PreviewUrl),
                int(self.Roles.FileName),
                int(self.Roles.Edited),
                int(self.Roles.Pending),
            ],
        )

    @Slot()
    def _on_cleared(self) -> None:
        self.beginResetModel()
        try:
            self._rows = []
        finally:
            self.endResetModel()
