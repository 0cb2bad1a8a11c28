"""
Replay recorder.

Captures every qualifying edit as a ReplayEvent for later playback. Runs of
single-character typing on one line are coalesced into one event to keep
the replay log small; pastes and multi-character edits are never merged.

The replay log is visualization data, not evidence: flushes are best effort.
"""

from __future__ import annotations

import logging
from typing import Iterable

from ..models import DocumentChange, Position, ReplayChange, ReplayEvent
from ..pathfilter import PathFilter
from .storage import ChainStore

logger = logging.getLogger(__name__)

FLUSH_INTERVAL_SECONDS = 5.0
COALESCE_WINDOW_MS = 500


class ReplayRecorder:
    """Buffers replay events and flushes them to the store."""

    def __init__(self, store: ChainStore | None, exclude_patterns: Iterable[str] = ()):
        self.store = store
        self._filter = PathFilter(exclude_patterns)
        self._buffer: list[ReplayEvent] = []
        self._recording = False

    @property
    def is_recording(self) -> bool:
        return self._recording

    @property
    def pending_count(self) -> int:
        return len(self._buffer)

    def start(self) -> None:
        self._recording = True

    def stop(self) -> None:
        """Stop recording and flush whatever is buffered."""
        if not self._recording:
            return
        self._recording = False
        self.flush()

    def set_exclude_patterns(self, patterns: Iterable[str]) -> None:
        self._filter = PathFilter(patterns)

    def record(self, change: DocumentChange) -> ReplayEvent | None:
        """Buffer one edit. Returns the event it was stored in, or None if ignored."""
        if not self._recording or not change.addressable or not change.edits:
            return None
        if self._filter.is_excluded(change.filename):
            return None

        event = ReplayEvent(
            timestamp=change.timestamp_ms,
            filename=change.filename,
            changes=[ReplayChange.from_edit(edit) for edit in change.edits],
        )
        merged = self._try_coalesce(event)
        if merged is not None:
            return merged

        self._buffer.append(event)
        return event

    def _try_coalesce(self, event: ReplayEvent) -> ReplayEvent | None:
        """Merge a one-character insert into the last buffered event if it continues it."""
        if not self._buffer:
            return None
        last = self._buffer[-1]

        if last.filename != event.filename:
            return None
        if event.timestamp - last.timestamp > COALESCE_WINDOW_MS:
            return None
        if len(last.changes) != 1 or len(event.changes) != 1:
            return None

        previous, current = last.changes[0], event.changes[0]
        if previous.range_length != 0 or current.range_length != 0:
            return None
        if "\n" in previous.text or len(current.text) != 1:
            return None
        if current.range_start.line != previous.range_start.line:
            return None
        if current.range_start.character != previous.range_start.character + len(previous.text):
            return None

        previous.text += current.text
        previous.range_end = Position(
            previous.range_start.line,
            previous.range_start.character + len(previous.text),
        )
        return last

    def flush(self) -> int:
        """Write buffered events to the store. Returns the number written."""
        if not self._buffer:
            return 0

        events, self._buffer = self._buffer, []
        if self.store is None:
            return 0

        try:
            self.store.append_replay_events(events)
        except OSError:
            logger.exception("Dropped %d replay events: flush failed", len(events))
            return 0

        logger.debug("Flushed %d replay events", len(events))
        return len(events)

    def get_events(self) -> list[ReplayEvent]:
        """Buffered (not yet flushed) events."""
        return list(self._buffer)
