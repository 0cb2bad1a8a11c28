"""Per-file accumulation of classified edits between snapshot ticks."""

from __future__ import annotations

from dataclasses import dataclass

from ..models import ChangeType


@dataclass
class PendingChange:
    """Accumulated change data for one file since its last snapshot."""

    change_type: ChangeType
    chars_added: int = 0
    chars_removed: int = 0

    @property
    def change_size(self) -> int:
        return self.chars_added + self.chars_removed

    def merge(self, change_type: ChangeType, chars_added: int, chars_removed: int) -> None:
        """Keep the most significant change type and add to the counters."""
        if change_type.priority > self.change_type.priority:
            self.change_type = change_type
        self.chars_added += chars_added
        self.chars_removed += chars_removed


class Aggregator:
    """
    Coalesces many raw edits per file into one pending change-set.

    Also remembers the latest full text reported for each file; that is the
    live content the snapshot builder reads at tick time.

    Only mutates in-memory state; never blocks on I/O.
    """

    def __init__(self) -> None:
        self._pending: dict[str, PendingChange] = {}
        self._live_text: dict[str, str] = {}

    def add(
        self,
        filename: str,
        change_type: ChangeType,
        chars_added: int,
        chars_removed: int,
        text: str | None = None,
    ) -> PendingChange:
        """Record one classified edit for `filename`."""
        if text is not None:
            self._live_text[filename] = text

        pending = self._pending.get(filename)
        if pending is None:
            pending = PendingChange(change_type, chars_added, chars_removed)
            self._pending[filename] = pending
        else:
            pending.merge(change_type, chars_added, chars_removed)
        return pending

    def get(self, filename: str) -> PendingChange | None:
        return self._pending.get(filename)

    def items(self) -> list[tuple[str, PendingChange]]:
        """Pending entries in first-edit order (a copy, safe to mutate during)."""
        return list(self._pending.items())

    def live_text(self, filename: str) -> str | None:
        return self._live_text.get(filename)

    def discard(self, filename: str) -> None:
        """Drop the pending entry for a file (after emission or skip)."""
        self._pending.pop(filename, None)

    def reset(self) -> None:
        self._pending.clear()
        self._live_text.clear()

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, filename: object) -> bool:
        return filename in self._pending
