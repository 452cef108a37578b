from __future__ import annotations

import pytest
from conftest import wait_ready

from photo_uploader.app.state.crop_state import CropSession, SessionState
from photo_uploader.app.state.metadata_store import MetadataStore
from photo_uploader.errors import RasterizationFailure
from photo_uploader.image_engine.classifier import classify_photo
from photo_uploader.image_engine.previews import PreviewRegistry
from photo_uploader.settings_manager import UploaderConfig


@pytest.fixture
def wired(make_photo):
    """Store holding a 4:3 photo, a square photo and another 4:3 photo."""

    def _wire(delay_ms: int = 0):
        previews = PreviewRegistry()
        store = MetadataStore()
        photos = [make_photo(400, 300, "a.jpg"), make_photo(300, 300, "b.jpg"), make_photo(800, 600, "c.jpg")]
        store.append((p, classify_photo(p, previews, 1.0, 0.01)) for p in photos)
        session = CropSession(store, previews, UploaderConfig(open_delay_ms=delay_ms))
        return store, previews, session

    return _wire


def test_mount_waits_for_open_delay(qtbot, wired) -> None:
    _store, _previews, session = wired(delay_ms=60_000)

    session.schedule(0)
    qtbot.wait(50)

    assert session.state is SessionState.SCHEDULED
    assert session.surface is None
    assert session.imageUrl == ""
    session.close()
    assert session.state is SessionState.CLOSED


def test_session_mounts_surface_with_photo_geometry(qtbot, wired) -> None:
    store, _previews, session = wired()

    session.schedule(0)
    assert wait_ready(qtbot, session) == 0

    meta = store.metadata[0]
    assert session.imageUrl == meta.source_preview_url
    assert (session.imageWidth, session.imageHeight) == (400, 300)
    assert session.rectW > 0
    assert session.sessionState == "ready"


def test_close_leaves_store_untouched(qtbot, wired) -> None:
    store, _previews, session = wired()
    before = store.metadata
    session.schedule(2)
    wait_ready(qtbot, session)

    assert session.close() is True

    assert session.state is SessionState.CLOSED
    assert session.index == -1
    assert store.metadata == before
    assert store.pending_count == 2


def test_confirm_emits_jpeg_and_closes(qtbot, wired) -> None:
    store, _previews, session = wired()
    session.schedule(0)
    wait_ready(qtbot, session)

    with qtbot.waitSignal(session.cropConfirmed, timeout=3000) as blocker:
        blob = session.confirm()

    index, emitted = blocker.args
    assert index == 0
    assert emitted == blob
    assert blob[:2] == b"\xff\xd8"
    assert session.state is SessionState.CLOSED
    # The session never writes the store itself.
    assert store.metadata[0].edited is False


def test_rasterization_failure_returns_to_ready(qtbot, wired, monkeypatch) -> None:
    _store, _previews, session = wired()
    session.schedule(0)
    wait_ready(qtbot, session)

    def fail(*_args, **_kwargs):
        raise RasterizationFailure("encoder exploded")

    monkeypatch.setattr(session.surface, "rasterize", fail)
    confirmed: list[int] = []
    session.cropConfirmed.connect(lambda i, _b: confirmed.append(i))

    with qtbot.waitSignal(session.cropFailed, timeout=1000) as blocker:
        assert session.confirm() is None

    assert blocker.args == [0, "encoder exploded"]
    assert session.state is SessionState.READY
    assert session.surface is not None
    assert confirmed == []


def test_close_is_ignored_while_applying(qtbot, wired, monkeypatch) -> None:
    _store, _previews, session = wired()
    session.schedule(0)
    wait_ready(qtbot, session)
    results: list[bool] = []

    real = session.surface.rasterize

    def slow(*args, **kwargs):
        results.append(session.close())
        return real(*args, **kwargs)

    monkeypatch.setattr(session.surface, "rasterize", slow)

    assert session.confirm() is not None
    assert results == [False]
    assert session.state is SessionState.CLOSED


def test_interaction_updates_properties(qtbot, wired) -> None:
    _store, _previews, session = wired()
    session.schedule(0)
    wait_ready(qtbot, session)
    start_w = session.rectW

    session.begin_interaction()
    assert session.state is SessionState.CROPPING
    session.zoom_to(2.0)
    session.end_interaction()

    assert session.state is SessionState.READY
    assert session.zoom == 2.0
    assert session.rectW < start_w

    with qtbot.waitSignal(session.rotationChanged, timeout=1000):
        session.rotate(90)
    assert (session.imageWidth, session.imageHeight) == (300, 400)

    session.reset()
    assert session.zoom == 1.0
    assert session.rotation == 0


def test_rebind_follows_photo(qtbot, wired) -> None:
    store, _previews, session = wired(delay_ms=60_000)
    session.schedule(2)

    store.remove(0)
    session.rebind(1)

    assert session.index == 1
    assert session.state is SessionState.SCHEDULED
    session.close()


def test_manual_session_opens_photo_that_needs_no_crop(qtbot, wired) -> None:
    _store, _previews, session = wired()

    session.schedule(1, manual=True)

    assert wait_ready(qtbot, session) == 1
    assert session.manual is True


def test_stale_auto_target_is_not_mounted(qtbot, wired) -> None:
    _store, _previews, session = wired()

    # Index 1 is already square: an automatic session must not open it.
    with qtbot.waitSignal(session.staleTarget, timeout=1000) as blocker:
        session.schedule(1)

    assert blocker.args == [1]
    assert session.state is SessionState.CLOSED
