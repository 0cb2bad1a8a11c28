"""
Data models for recorded coding activity.

Evidence types (Snapshot, Session, ReplayEvent) are written once to the
append-only logs. Flags are derived from snapshots and carry a separate,
mutable review layer (FlagWithContext) that never touches the evidence.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Iterable

from .util import now_ms


class ChangeType(str, Enum):
    """Classification of an edit, ordered by aggregation priority."""

    TYPING = "typing"
    DELETE = "delete"
    REFACTOR = "refactor"
    PASTE = "paste"

    @property
    def priority(self) -> int:
        return _CHANGE_TYPE_PRIORITY[self]


_CHANGE_TYPE_PRIORITY = {
    ChangeType.TYPING: 0,
    ChangeType.DELETE: 1,
    ChangeType.REFACTOR: 2,
    ChangeType.PASTE: 3,
}


class FlagSeverity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class FlagCategory(str, Enum):
    LARGE_PASTE = "large_paste"
    RAPID_COMPLETION = "rapid_completion"
    FULLY_FORMED_CODE = "fully_formed_code"
    LONG_GAP = "long_gap"
    STYLE_INCONSISTENCY = "style_inconsistency"
    NO_DEBUGGING = "no_debugging"
    UNUSUAL_TYPING_SPEED = "unusual_typing_speed"


class FlagStatus(str, Enum):
    """Review status after the author has looked at a flag."""

    ACKNOWLEDGED = "acknowledged"
    DISMISSED = "dismissed"
    CONTEXT_ADDED = "context_added"


# -----------------------------------------------------------------------------
# Inbound edit events
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class Position:
    """Zero-based line/character position in a document."""

    line: int
    character: int

    def to_dict(self) -> dict[str, int]:
        return {"line": self.line, "character": self.character}

    @classmethod
    def from_dict(cls, data: dict) -> Position:
        return cls(line=int(data["line"]), character=int(data["character"]))


@dataclass(frozen=True)
class TextEdit:
    """One range replacement: [start, end) replaced by `text`."""

    start: Position
    end: Position
    text: str
    range_length: int  # length of the replaced text

    @classmethod
    def insert(cls, line: int, character: int, text: str) -> TextEdit:
        pos = Position(line, character)
        return cls(start=pos, end=pos, text=text, range_length=0)


@dataclass(frozen=True)
class DocumentChange:
    """A single edit notification from a document change source."""

    filename: str  # workspace-relative path, stable file identity
    text: str  # full document text after the edit
    edits: tuple[TextEdit, ...] = ()
    timestamp_ms: int = field(default_factory=now_ms)
    addressable: bool = True  # False for output panels, untitled buffers, etc.

    @property
    def chars_added(self) -> int:
        return sum(len(edit.text) for edit in self.edits)

    @property
    def chars_removed(self) -> int:
        return sum(edit.range_length for edit in self.edits)


# -----------------------------------------------------------------------------
# Evidence
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class Snapshot:
    """One hash-chained record of a file's content at a point in time."""

    id: str
    timestamp: str  # ISO-8601 UTC
    filename: str
    content_hash: str  # sha256 of the full content
    diff: str  # unified diff from the previous recorded content
    lines_added: int
    lines_removed: int
    total_lines: int
    change_type: ChangeType
    change_size: int  # characters added + removed
    chain_hash: str  # sha256(previous chain_hash + content_hash + timestamp)
    session_id: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "filename": self.filename,
            "content_hash": self.content_hash,
            "diff": self.diff,
            "lines_added": self.lines_added,
            "lines_removed": self.lines_removed,
            "total_lines": self.total_lines,
            "change_type": self.change_type.value,
            "change_size": self.change_size,
            "chain_hash": self.chain_hash,
            "session_id": self.session_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Snapshot:
        return cls(
            id=data["id"],
            timestamp=data["timestamp"],
            filename=data["filename"],
            content_hash=data["content_hash"],
            diff=data.get("diff", ""),
            lines_added=int(data.get("lines_added", 0)),
            lines_removed=int(data.get("lines_removed", 0)),
            total_lines=int(data.get("total_lines", 0)),
            change_type=ChangeType(data.get("change_type", "typing")),
            change_size=int(data.get("change_size", 0)),
            chain_hash=data["chain_hash"],
            session_id=data.get("session_id", ""),
        )


@dataclass(frozen=True)
class Session:
    """
    A bounded recording period.

    files_touched and total_snapshots are materialized from the snapshot log
    when the session closes; they are never incremented as snapshots arrive.
    """

    id: str
    started_at: str
    project_name: str
    ended_at: str = ""  # empty while the session is open
    files_touched: tuple[str, ...] = ()
    total_snapshots: int = 0

    @property
    def is_open(self) -> bool:
        return not self.ended_at

    def closed(self, ended_at: str, snapshots: Iterable[Snapshot]) -> Session:
        """Return the closed session with aggregates recomputed from `snapshots`."""
        files: dict[str, None] = {}
        total = 0
        for snapshot in snapshots:
            if snapshot.session_id != self.id:
                continue
            files.setdefault(snapshot.filename, None)
            total += 1
        return replace(
            self,
            ended_at=ended_at,
            files_touched=tuple(files),
            total_snapshots=total,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "project_name": self.project_name,
            "files_touched": list(self.files_touched),
            "total_snapshots": self.total_snapshots,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Session:
        return cls(
            id=data["id"],
            started_at=data["started_at"],
            ended_at=data.get("ended_at", ""),
            project_name=data.get("project_name", ""),
            files_touched=tuple(data.get("files_touched", [])),
            total_snapshots=int(data.get("total_snapshots", 0)),
        )


# -----------------------------------------------------------------------------
# Replay
# -----------------------------------------------------------------------------


@dataclass
class ReplayChange:
    """A single range replacement captured for playback."""

    range_start: Position
    range_end: Position
    text: str
    range_length: int

    @classmethod
    def from_edit(cls, edit: TextEdit) -> ReplayChange:
        return cls(
            range_start=edit.start,
            range_end=edit.end,
            text=edit.text,
            range_length=edit.range_length,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "range_start": self.range_start.to_dict(),
            "range_end": self.range_end.to_dict(),
            "text": self.text,
            "range_length": self.range_length,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ReplayChange:
        return cls(
            range_start=Position.from_dict(data["range_start"]),
            range_end=Position.from_dict(data["range_end"]),
            text=data.get("text", ""),
            range_length=int(data.get("range_length", 0)),
        )


@dataclass
class ReplayEvent:
    """Every qualifying edit, for visualization. Not part of the hash chain."""

    timestamp: int  # epoch milliseconds
    filename: str
    changes: list[ReplayChange] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "filename": self.filename,
            "changes": [change.to_dict() for change in self.changes],
        }

    @classmethod
    def from_dict(cls, data: dict) -> ReplayEvent:
        return cls(
            timestamp=int(data["timestamp"]),
            filename=data["filename"],
            changes=[ReplayChange.from_dict(c) for c in data.get("changes", [])],
        )


# -----------------------------------------------------------------------------
# Flags
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class Flag:
    """An advisory, re-derivable annotation over a set of snapshots."""

    id: str
    category: FlagCategory
    severity: FlagSeverity
    timestamp: str
    filename: str
    description: str
    snapshot_ids: tuple[str, ...]
    suggested_context: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category.value,
            "severity": self.severity.value,
            "timestamp": self.timestamp,
            "filename": self.filename,
            "description": self.description,
            "snapshot_ids": list(self.snapshot_ids),
            "suggested_context": self.suggested_context,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Flag:
        return cls(
            id=data["id"],
            category=FlagCategory(data["category"]),
            severity=FlagSeverity(data["severity"]),
            timestamp=data.get("timestamp", ""),
            filename=data.get("filename", ""),
            description=data.get("description", ""),
            snapshot_ids=tuple(data.get("snapshot_ids", [])),
            suggested_context=data.get("suggested_context", ""),
        )


@dataclass(frozen=True)
class FlagWithContext:
    """A flag plus the author's review: explanation text and status."""

    flag: Flag
    student_context: str = ""
    status: FlagStatus = FlagStatus.ACKNOWLEDGED

    @property
    def id(self) -> str:
        return self.flag.id

    def with_review(
        self,
        *,
        status: FlagStatus,
        student_context: str | None = None,
    ) -> FlagWithContext:
        return replace(
            self,
            status=status,
            student_context=self.student_context if student_context is None else student_context,
        )

    def to_dict(self) -> dict[str, Any]:
        d = self.flag.to_dict()
        d["student_context"] = self.student_context
        d["status"] = self.status.value
        return d

    @classmethod
    def from_dict(cls, data: dict) -> FlagWithContext:
        return cls(
            flag=Flag.from_dict(data),
            student_context=data.get("student_context", ""),
            status=FlagStatus(data.get("status", FlagStatus.ACKNOWLEDGED.value)),
        )
