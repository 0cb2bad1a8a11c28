"""
Snapshot builder.

Turns a pending change-set plus the live file content into an immutable
Snapshot. The builder owns the two pieces of mutable state the chain depends
on: the per-file baseline (last recorded content) and the chain cursor
(previous chain hash). Both move only through commit(), after the snapshot
has been persisted.
"""

from __future__ import annotations

from typing import Callable

from ..models import Snapshot
from ..util import MonotonicClock, new_ulid
from .aggregator import PendingChange
from .chain import GENESIS_HASH, compute_chain_hash, compute_content_hash
from .diff import count_diff_lines, line_count, unified_diff


class SnapshotBuilder:
    """Builds chained snapshots for one recording session."""

    def __init__(
        self,
        session_id: str,
        *,
        seed_hash: str = GENESIS_HASH,
        clock: MonotonicClock | None = None,
        id_factory: Callable[[], str] = new_ulid,
    ):
        self.session_id = session_id
        self._previous_chain_hash = seed_hash
        self._baselines: dict[str, str] = {}
        self._clock = clock or MonotonicClock()
        self._new_id = id_factory

    @property
    def previous_chain_hash(self) -> str:
        return self._previous_chain_hash

    @property
    def tracked_files(self) -> list[str]:
        return list(self._baselines)

    def baseline(self, filename: str) -> str:
        """Last recorded content for a file; empty until first tracked."""
        return self._baselines.get(filename, "")

    def track(self, filename: str, text: str) -> None:
        """Seed the baseline for a file opened before any edit was recorded."""
        self._baselines.setdefault(filename, text)

    def build(self, filename: str, pending: PendingChange, current: str) -> Snapshot | None:
        """
        Build the next snapshot for `filename`, or None if its content is
        unchanged since the last recorded snapshot.

        Does not modify builder state; call commit() once persisted.
        """
        previous = self.baseline(filename)
        if current == previous:
            return None

        diff = unified_diff(filename, previous, current)
        lines_added, lines_removed = count_diff_lines(diff)
        content_hash = compute_content_hash(current)
        timestamp = self._clock.timestamp()

        return Snapshot(
            id=self._new_id(),
            timestamp=timestamp,
            filename=filename,
            content_hash=content_hash,
            diff=diff,
            lines_added=lines_added,
            lines_removed=lines_removed,
            total_lines=line_count(current),
            change_type=pending.change_type,
            change_size=pending.change_size,
            chain_hash=compute_chain_hash(self._previous_chain_hash, content_hash, timestamp),
            session_id=self.session_id,
        )

    def commit(self, snapshot: Snapshot, current: str) -> None:
        """Advance the baseline and chain cursor past a persisted snapshot."""
        expected = compute_chain_hash(
            self._previous_chain_hash, snapshot.content_hash, snapshot.timestamp
        )
        if snapshot.chain_hash != expected:
            raise ValueError(
                f"snapshot {snapshot.id} was not built from the current chain cursor"
            )
        self._baselines[snapshot.filename] = current
        self._previous_chain_hash = snapshot.chain_hash
