"""Pytest configuration.

The uploader state objects are QObjects driven by QTimer and queued signals,
so a single `QApplication` is created for the whole session as early as
possible and shut down cleanly at the end. Tests default to the offscreen
platform so they run headless.
"""

from __future__ import annotations

import os
from concurrent.futures import Future
from typing import Any

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

_APP: Any | None = None


def pytest_configure(config) -> None:  # noqa: ARG001
    """Ensure a QApplication exists before collecting/running tests."""

    try:
        from PySide6.QtWidgets import QApplication
    except ImportError:
        return

    global _APP

    app = QApplication.instance()
    # Keep a strong ref so it isn't GC'd mid-session.
    _APP = QApplication([]) if app is None else app


def pytest_sessionfinish(session, exitstatus) -> None:  # noqa: ARG001
    """Attempt a clean Qt shutdown to avoid lingering threads at interpreter exit."""

    try:
        from PySide6.QtWidgets import QApplication
    except ImportError:
        return

    app = QApplication.instance()
    if app is None:
        return
    app.quit()
    app.processEvents()


class ImmediateExecutor:
    """Executor that runs work inline, so classification lands inside ingest()."""

    def submit(self, fn, /, *args, **kwargs):  # noqa: ANN001
        fut: Future = Future()
        try:
            fut.set_result(fn(*args, **kwargs))
        except BaseException as e:  # noqa: BLE001
            fut.set_exception(e)
        return fut

    def shutdown(self, wait: bool = True, *, cancel_futures: bool = False) -> None:  # noqa: ARG002
        return None


class ManualExecutor:
    """Executor whose submitted work only runs when the test says so."""

    def __init__(self) -> None:
        self.calls: list[tuple[Future, Any, tuple]] = []

    def submit(self, fn, /, *args, **kwargs):  # noqa: ANN001
        fut: Future = Future()
        self.calls.append((fut, fn, args))
        return fut

    def run(self, i: int) -> None:
        fut, fn, args = self.calls[i]
        try:
            fut.set_result(fn(*args))
        except BaseException as e:  # noqa: BLE001
            fut.set_exception(e)

    def shutdown(self, wait: bool = True, *, cancel_futures: bool = False) -> None:  # noqa: ARG002
        return None


@pytest.fixture(scope="session")
def pyvips_mod():
    return pytest.importorskip("pyvips")


@pytest.fixture
def make_jpeg(pyvips_mod):
    """Factory for encoded JPEG bytes of a given size."""

    def _make(width: int, height: int, color: tuple[int, int, int] = (40, 90, 160)) -> bytes:
        img = pyvips_mod.Image.black(width, height, bands=3) + list(color)
        return bytes(img.cast("uchar").jpegsave_buffer(Q=85))

    return _make


@pytest.fixture
def make_photo(make_jpeg):
    """Factory for RawPhoto objects backed by real JPEG bytes."""
    from photo_uploader.models import RawPhoto

    counter = {"n": 0}

    def _make(width: int, height: int, filename: str | None = None) -> RawPhoto:
        counter["n"] += 1
        name = filename or f"photo_{counter['n']}.jpg"
        return RawPhoto(data=make_jpeg(width, height), mime_type="image/jpeg", filename=name)

    return _make


@pytest.fixture
def fast_config():
    from photo_uploader.settings_manager import UploaderConfig

    return UploaderConfig(open_delay_ms=0)


@pytest.fixture
def backend(fast_config):
    from photo_uploader.app.backend import UploaderBackend

    b = UploaderBackend(config=fast_config, executor=ImmediateExecutor())
    yield b
    b.shutdown()


@pytest.fixture
def events(backend):
    captured: list[dict] = []
    backend.event_.connect(captured.append)
    return captured


def wait_ready(qtbot, session, timeout: int = 3000) -> int:
    """Wait until the crop session mounted its surface; return the bound index."""
    from photo_uploader.app.state.crop_state import SessionState

    qtbot.waitUntil(lambda: session.state is SessionState.READY, timeout=timeout)
    return session.index
