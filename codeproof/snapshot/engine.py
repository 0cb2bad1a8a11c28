"""
Snapshot engine.

Owns the classifier, the aggregator, the snapshot builder and the session
lifecycle. Edit handling only touches in-memory state; tick() is the single
place that diffs, hashes and persists, and it is serialized by a lock so the
chain cursor has exactly one writer.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable

from ..config import CodeProofConfig
from ..models import ChangeType, DocumentChange, Session, Snapshot
from ..pathfilter import PathFilter
from ..util import MonotonicClock, format_timestamp, new_ulid, utc_now
from .aggregator import Aggregator
from .builder import SnapshotBuilder
from .chain import GENESIS_HASH
from .classifier import ChangeClassifier
from .storage import ChainStore

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[Snapshot], None]


@dataclass(frozen=True)
class EngineStats:
    is_running: bool
    is_paused: bool
    session_id: str | None
    snapshot_count: int
    tracked_files: int
    dirty_files: int


class SnapshotEngine:
    """Turns a stream of DocumentChange events into chained snapshots."""

    def __init__(
        self,
        store: ChainStore | None = None,
        config: CodeProofConfig | None = None,
        *,
        clock: MonotonicClock | None = None,
    ):
        self.store = store
        self.config = config or CodeProofConfig()
        self._clock = clock or MonotonicClock()
        self._classifier = ChangeClassifier(self.config.paste_threshold)
        self._filter = PathFilter(self.config.effective_exclude_patterns)
        self._aggregator = Aggregator()
        self._builder: SnapshotBuilder | None = None
        self._session: Session | None = None
        self._emitted: list[Snapshot] = []
        self._listeners: list[SnapshotListener] = []
        self._paused = False
        self._last_closed: Session | None = None
        self._lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._session is not None

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def interval(self) -> float:
        return self.config.snapshot_interval

    def on_snapshot(self, listener: SnapshotListener) -> None:
        """Register a callback invoked after each snapshot is persisted."""
        self._listeners.append(listener)

    def start(self, project_name: str = "unknown") -> Session:
        """Open a session and start accepting edits. Idempotent while running."""
        if self._session is not None:
            return self._session

        seed = GENESIS_HASH
        if self.store is not None:
            last = self.store.last_snapshot()
            if last is not None:
                seed = last.chain_hash
                self._clock.advance_past(last.timestamp)
            session = self.store.create_session(project_name, started_at=self._clock.timestamp())
        else:
            session = Session(
                id=new_ulid(),
                started_at=self._clock.timestamp(),
                project_name=project_name,
            )

        self._session = session
        self._builder = SnapshotBuilder(session.id, seed_hash=seed, clock=self._clock)
        self._emitted = []
        self._paused = False
        logger.info("Recording started (session %s, project %s)", session.id, project_name)
        return session

    def stop(self) -> list[Snapshot]:
        """
        Flush pending changes once, close the session and release state.

        Flushes even while paused. A second call is a no-op returning [].
        """
        if self._session is None:
            return []

        try:
            flushed = self._flush()
        finally:
            self._close_session()
        return flushed

    def _close_session(self) -> None:
        session = self._session
        assert session is not None
        ended_at = format_timestamp(utc_now())
        try:
            if self.store is not None:
                closed = self.store.end_session(session.id, ended_at)
            else:
                closed = session.closed(ended_at, self._emitted)
        finally:
            self._session = None
            self._builder = None
            self._paused = False
            self._aggregator.reset()
        self._last_closed = closed
        logger.info(
            "Recording stopped (session %s, %d snapshots, %d files)",
            closed.id, closed.total_snapshots, len(closed.files_touched),
        )

    @property
    def last_closed_session(self) -> Session | None:
        return self._last_closed

    def pause(self) -> None:
        if self._session is not None and not self._paused:
            self._paused = True
            logger.info("Recording paused")

    def resume(self) -> None:
        if self._paused:
            self._paused = False
            logger.info("Recording resumed")

    def apply_config(self, config: CodeProofConfig) -> None:
        """Apply new settings without restarting the session."""
        self._classifier.set_paste_threshold(config.paste_threshold)
        self._filter = PathFilter(config.effective_exclude_patterns)
        self.config = config
        logger.debug(
            "Applied config: interval=%ss paste_threshold=%d",
            config.snapshot_interval, config.paste_threshold,
        )

    # -------------------------------------------------------------------------
    # Edit intake (no I/O)
    # -------------------------------------------------------------------------

    def is_excluded(self, filename: str) -> bool:
        return self._filter.is_excluded(filename)

    def track_document(self, filename: str, text: str) -> None:
        """Seed the baseline for a document opened before it was edited."""
        if self._builder is None or self.is_excluded(filename):
            return
        self._builder.track(filename, text)

    def handle_change(self, change: DocumentChange) -> ChangeType | None:
        """
        Classify one edit and add it to the file's pending change-set.

        Returns the classification, or None if the event was ignored.
        """
        if self._session is None or not change.addressable or not change.edits:
            return None
        if self.is_excluded(change.filename):
            return None

        change_type = self._classifier.classify(change)
        self._aggregator.add(
            change.filename,
            change_type,
            change.chars_added,
            change.chars_removed,
            change.text,
        )
        return change_type

    # -------------------------------------------------------------------------
    # Tick
    # -------------------------------------------------------------------------

    def tick(self) -> list[Snapshot]:
        """Emit snapshots for all pending files, unless paused or stopped."""
        if self._session is None or self._paused:
            return []
        return self._flush()

    def _flush(self) -> list[Snapshot]:
        with self._lock:
            builder = self._builder
            if builder is None:
                return []

            emitted: list[Snapshot] = []
            for filename, pending in self._aggregator.items():
                current = self._aggregator.live_text(filename)
                if current is None:
                    self._aggregator.discard(filename)
                    continue

                try:
                    snapshot = builder.build(filename, pending, current)
                except Exception:
                    logger.exception("Failed to build snapshot for %s", filename)
                    continue

                if snapshot is None:
                    logger.debug("No content change for %s, skipping", filename)
                    self._aggregator.discard(filename)
                    continue

                if self.store is not None:
                    self.store.append_snapshot(snapshot)
                builder.commit(snapshot, current)
                self._aggregator.discard(filename)
                self._emitted.append(snapshot)
                emitted.append(snapshot)
                logger.debug(
                    "Snapshot %s: %s (%s, +%d/-%d)",
                    snapshot.id, filename, snapshot.change_type.value,
                    snapshot.lines_added, snapshot.lines_removed,
                )
                self._notify(snapshot)

            return emitted

    def _notify(self, snapshot: Snapshot) -> None:
        for listener in self._listeners:
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Snapshot listener failed")

    def stats(self) -> EngineStats:
        return EngineStats(
            is_running=self.is_running,
            is_paused=self._paused,
            session_id=self._session.id if self._session else None,
            snapshot_count=len(self._emitted),
            tracked_files=len(self._builder.tracked_files) if self._builder else 0,
            dirty_files=len(self._aggregator),
        )
