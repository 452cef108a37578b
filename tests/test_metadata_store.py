from __future__ import annotations

import pytest

from photo_uploader.app.state.metadata_store import MetadataStore
from photo_uploader.models import PhotoMetadata, RawPhoto


def _entry(name: str, needs_crop: bool) -> tuple[RawPhoto, PhotoMetadata]:
    photo = RawPhoto(data=name.encode(), mime_type="image/jpeg", filename=name)
    meta = PhotoMetadata(
        source_preview_url=f"image://photos/{name}",
        pixel_width=400 if needs_crop else 300,
        pixel_height=300,
        needs_crop=needs_crop,
    )
    return photo, meta


def _store(*flags: bool) -> MetadataStore:
    store = MetadataStore()
    store.append(_entry(f"p{i}.jpg", f) for i, f in enumerate(flags))
    return store


def test_append_preserves_existing_indices() -> None:
    store = _store(False, True)

    added = store.append([_entry("late.jpg", True)])

    assert list(added) == [2]
    assert [p.filename for p in store.upload_list] == ["p0.jpg", "p1.jpg", "late.jpg"]
    assert len(store.metadata) == len(store.upload_list) == 3


def test_pending_count_is_derived_and_idempotent() -> None:
    store = _store(True, False, True)

    assert store.pending_count == 2
    assert store.pending_count == 2
    assert store.pendingCount == 2
    assert store.pending_indices() == [0, 2]


def test_update_marks_edited_and_replaces_upload() -> None:
    store = _store(True, False)
    cropped = RawPhoto(data=b"jpeg", mime_type="image/jpeg", filename="p0.jpg")

    updated = store.update(
        0, {"edited": True, "cropped_binary": b"jpeg", "cropped_preview_url": "image://photos/9"}, upload=cropped
    )

    assert updated.edited is True
    assert updated.needs_crop is True
    assert store.upload_list[0] is cropped
    assert store.upload_list[1].filename == "p1.jpg"
    assert store.pending_count == 0


def test_update_refuses_to_change_classification_or_revert_edited() -> None:
    store = _store(True)
    store.update(0, {"edited": True})

    with pytest.raises(ValueError):
        store.update(0, {"needs_crop": False})
    with pytest.raises(ValueError):
        store.update(0, {"edited": False})
    assert store.metadata[0].edited is True


def test_remove_shifts_higher_indices_down() -> None:
    store = _store(False, False, True, False)

    photo, _meta = store.remove(1)

    assert photo.filename == "p1.jpg"
    assert [p.filename for p in store.upload_list] == ["p0.jpg", "p2.jpg", "p3.jpg"]
    assert store.pending_indices() == [1]
    assert len(store.metadata) == len(store.upload_list)


def test_out_of_range_index_raises() -> None:
    store = _store(True)

    with pytest.raises(IndexError):
        store.remove(1)
    with pytest.raises(IndexError):
        store.update(-1, {"edited": True})
    with pytest.raises(IndexError):
        store.get(5)


def test_reset_empties_both_lists() -> None:
    store = _store(True, False)

    removed = store.reset()

    assert len(removed) == 2
    assert store.metadata == ()
    assert store.upload_list == []
    assert store.pending_count == 0


def test_signals_fire_after_mutation_completes() -> None:
    store = _store(True, True)
    seen: list[tuple[int, int, int]] = []

    def snapshot() -> None:
        seen.append((len(store.metadata), len(store.upload_list), store.pending_count))

    store.changed.connect(snapshot)
    pending: list[int] = []
    store.pendingCountChanged.connect(pending.append)

    store.remove(0)
    store.update(0, {"edited": True})

    assert seen == [(1, 1, 1), (1, 1, 0)]
    assert pending == [1, 0]
