"""Decide which pending photo to present next.

Sequencing is synchronous: the backend calls `advance()` right after every
store mutation that can change the pending set. Timers are only used by the
crop session for the dialog open delay.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from photo_uploader.logger import get_logger
from photo_uploader.models import PhotoMetadata

if TYPE_CHECKING:
    from photo_uploader.app.state.crop_state import CropSession
    from photo_uploader.app.state.metadata_store import MetadataStore

_logger = get_logger("sequencer")


def pending_indices(metadata: Sequence[PhotoMetadata]) -> list[int]:
    return [i for i, m in enumerate(metadata) if m.needs_crop and not m.edited]


def next_pending(metadata: Sequence[PhotoMetadata], after: int | None = None) -> int | None:
    """First pending index, scanning strictly after `after` before wrapping to 0."""
    if after is not None:
        for i in range(max(0, after + 1), len(metadata)):
            if metadata[i].pending:
                return i
    for i, m in enumerate(metadata):
        if m.pending:
            return i
    return None


class CropSequencer:
    """Walk every pending photo left to right, one session at a time."""

    def __init__(self, store: MetadataStore, session: CropSession) -> None:
        self._store = store
        self._session = session
        self._paused = False
        self._session.staleTarget.connect(self._on_stale_target)

    @property
    def paused(self) -> bool:
        return self._paused

    def pause(self) -> None:
        """Stop auto-advancing until the next append or confirmation."""
        self._paused = True

    def target(self, after: int | None = None) -> int | None:
        return next_pending(self._store.metadata, after)

    def advance(self, after: int | None = None) -> int | None:
        """Schedule a session for the next pending photo, if any.

        Returns the index the session is (or stays) bound to, else None.
        """
        self._paused = False
        return self._advance(after)

    def _advance(self, after: int | None) -> int | None:
        session = self._session
        target = self.target(after)
        if target is None:
            if session.is_open and not session.manual:
                _logger.debug("no pending photos, closing session at %s", session.index)
                session.close()
            return None
        if session.is_open:
            return session.index
        _logger.debug("next crop target: %d (after=%s)", target, after)
        session.schedule(target)
        return target

    def rescan(self) -> int | None:
        """Full rescan that honors a pause set by a user cancel."""
        if self._paused:
            return None
        return self._advance(None)

    def _on_stale_target(self, index: int) -> None:
        _logger.debug("stale crop target %d, rescanning", index)
        self.rescan()
