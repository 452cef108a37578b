from __future__ import annotations

import pytest

from photo_uploader.app.state.metadata_store import MetadataStore
from photo_uploader.models import PhotoMetadata, RawPhoto
from photo_uploader.qml_models import PhotoListModel


def _entry(name: str, needs_crop: bool = False) -> tuple[RawPhoto, PhotoMetadata]:
    photo = RawPhoto(data=b"\xff\xd8" + name.encode(), mime_type="image/jpeg", filename=name)
    meta = PhotoMetadata(
        source_preview_url=f"image://photos/{name}",
        pixel_width=400 if needs_crop else 300,
        pixel_height=300,
        needs_crop=needs_crop,
    )
    return photo, meta


@pytest.fixture
def store():
    s = MetadataStore()
    s.append([_entry("a.jpg", needs_crop=True), _entry("b.jpg")])
    return s


def test_existing_rows_and_role_names(qtbot, store) -> None:  # noqa: ARG001
    model = PhotoListModel(store)
    roles = model.roleNames()

    assert model.rowCount() == 2
    assert roles[int(model.Roles.PreviewUrl)] == b"previewUrl"
    assert roles[int(model.Roles.Pending)] == b"pending"

    first = model.index(0, 0)
    assert model.data(first, int(model.Roles.FileName)) == "a.jpg"
    assert model.data(first, int(model.Roles.PixelWidth)) == 400
    assert model.data(first, int(model.Roles.NeedsCrop)) is True
    assert model.data(first, int(model.Roles.Pending)) is True
    assert model.data(model.index(5, 0), int(model.Roles.FileName)) is None


def test_append_inserts_rows(qtbot, store) -> None:
    model = PhotoListModel(store)

    with qtbot.waitSignal(model.rowsInserted, timeout=1000) as blocker:
        store.append([_entry("c.jpg"), _entry("d.jpg")])

    assert blocker.args[1:] == [2, 3]
    assert model.rowCount() == 4
    assert model.data(model.index(3, 0), int(model.Roles.FileName)) == "d.jpg"


def test_remove_shifts_rows(qtbot, store) -> None:
    model = PhotoListModel(store)

    with qtbot.waitSignal(model.rowsRemoved, timeout=1000) as blocker:
        store.remove(0)

    assert blocker.args[1:] == [0, 0]
    assert model.rowCount() == 1
    assert model.data(model.index(0, 0), int(model.Roles.FileName)) == "b.jpg"


def test_update_reports_data_changed(qtbot, store) -> None:
    model = PhotoListModel(store)
    cropped = RawPhoto(data=b"\xff\xd8crop", mime_type="image/jpeg", filename="a.jpeg")

    with qtbot.waitSignal(model.dataChanged, timeout=1000) as blocker:
        store.update(
            0,
            {"edited": True, "cropped_binary": cropped.data, "cropped_preview_url": "image://photos/crop"},
            upload=cropped,
        )

    assert blocker.args[0].row() == 0
    first = model.index(0, 0)
    assert model.data(first, int(model.Roles.PreviewUrl)) == "image://photos/crop"
    assert model.data(first, int(model.Roles.SourceUrl)) == "image://photos/a.jpg"
    assert model.data(first, int(model.Roles.FileName)) == "a.jpeg"
    assert model.data(first, int(model.Roles.Pending)) is False


def test_reset_clears_rows(qtbot, store) -> None:
    model = PhotoListModel(store)

    with qtbot.waitSignal(model.modelReset, timeout=1000):
        store.reset()

    assert model.rowCount() == 0
