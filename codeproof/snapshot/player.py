"""
Headless replay player.

Rebuilds a document from its replay events so playback is deterministic and
testable without a UI. Each change replaces `range_length` characters from
its start position; multi-range events are applied back to front so earlier
offsets stay valid.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator

from ..models import Position, ReplayChange, ReplayEvent

PASTE_LABEL_THRESHOLD = 50


def position_to_offset(text: str, position: Position) -> int:
    """Character offset of a line/character position, clamped to the text."""
    offset = 0
    for _ in range(position.line):
        newline = text.find("\n", offset)
        if newline == -1:
            return len(text)
        offset = newline + 1

    line_end = text.find("\n", offset)
    if line_end == -1:
        line_end = len(text)
    return min(offset + max(position.character, 0), line_end)


def apply_change(text: str, change: ReplayChange) -> str:
    start = position_to_offset(text, change.range_start)
    end = min(start + change.range_length, len(text))
    return text[:start] + change.text + text[end:]


def apply_event(text: str, event: ReplayEvent) -> str:
    ordered = sorted(
        event.changes,
        key=lambda c: (c.range_start.line, c.range_start.character),
        reverse=True,
    )
    for change in ordered:
        text = apply_change(text, change)
    return text


def event_label(event: ReplayEvent) -> str:
    """Rough action label for display: paste, delete, edit or typing."""
    inserted = sum(len(c.text) for c in event.changes)
    deleted = sum(c.range_length for c in event.changes)
    if inserted >= PASTE_LABEL_THRESHOLD:
        return "paste"
    if deleted > 0 and inserted == 0:
        return "delete"
    if deleted > 0:
        return "edit"
    return "typing"


@dataclass(frozen=True)
class ReplayFrame:
    index: int
    timestamp: int
    label: str
    text: str


@dataclass(frozen=True)
class ReplayStats:
    filename: str | None
    event_count: int
    duration_ms: int
    chars_inserted: int
    chars_deleted: int
    labels: dict[str, int]
    final_lines: int

    def to_dict(self) -> dict:
        return {
            "filename": self.filename,
            "event_count": self.event_count,
            "duration_ms": self.duration_ms,
            "chars_inserted": self.chars_inserted,
            "chars_deleted": self.chars_deleted,
            "labels": dict(self.labels),
            "final_lines": self.final_lines,
        }


class ReplayPlayer:
    """Plays one file's replay events over an in-memory document."""

    def __init__(
        self,
        events: Iterable[ReplayEvent],
        filename: str | None = None,
        initial_text: str = "",
    ):
        selected = [e for e in events if filename is None or e.filename == filename]
        self.events = sorted(selected, key=lambda e: e.timestamp)
        self.filename = filename
        self.initial_text = initial_text

    def __len__(self) -> int:
        return len(self.events)

    def frames(self) -> Iterator[ReplayFrame]:
        text = self.initial_text
        for index, event in enumerate(self.events):
            text = apply_event(text, event)
            yield ReplayFrame(index, event.timestamp, event_label(event), text)

    def seek(self, index: int) -> str:
        """Document text after applying events [0, index)."""
        if index < 0:
            raise IndexError(f"replay index must be >= 0, got {index}")
        text = self.initial_text
        for event in self.events[:index]:
            text = apply_event(text, event)
        return text

    def text_at(self, timestamp_ms: int) -> str:
        """Document text after every event at or before `timestamp_ms`."""
        text = self.initial_text
        for event in self.events:
            if event.timestamp > timestamp_ms:
                break
            text = apply_event(text, event)
        return text

    def final_text(self) -> str:
        return self.seek(len(self.events))

    def stats(self) -> ReplayStats:
        labels: dict[str, int] = {}
        inserted = deleted = 0
        for event in self.events:
            label = event_label(event)
            labels[label] = labels.get(label, 0) + 1
            inserted += sum(len(c.text) for c in event.changes)
            deleted += sum(c.range_length for c in event.changes)

        duration = self.events[-1].timestamp - self.events[0].timestamp if self.events else 0
        return ReplayStats(
            filename=self.filename,
            event_count=len(self.events),
            duration_ms=duration,
            chars_inserted=inserted,
            chars_deleted=deleted,
            labels=labels,
            final_lines=self.final_text().count("\n") + 1,
        )
