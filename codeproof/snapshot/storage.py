"""
Append-only chain store.

Evidence lives in JSONL logs that are only ever appended to:

    .codeproof/snapshots.jsonl   hash-chained snapshots
    .codeproof/sessions.jsonl    session states (latest record per id wins)
    .codeproof/replay.jsonl      fine-grained replay events

The flag review layer is a separate, rewritable document:

    .codeproof/flags.json        FlagWithContext records keyed by flag id

INVARIANT: nothing here modifies or deletes an existing log line. Review
updates go to flags.json only and never touch snapshot evidence.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Iterator, Sequence

from ..config import CodeProofConfig, get_storage_dir
from ..models import FlagWithContext, ReplayEvent, Session, Snapshot
from ..util import format_timestamp, new_ulid, parse_timestamp, utc_now
from .chain import GENESIS_HASH, ChainVerification, verify_snapshots

logger = logging.getLogger(__name__)

SNAPSHOTS_FILE = "snapshots.jsonl"
SESSIONS_FILE = "sessions.jsonl"
REPLAY_FILE = "replay.jsonl"
FLAGS_FILE = "flags.json"


class FlagStoreError(Exception):
    """flags.json exists but cannot be read as a flag review document."""


def _as_datetime(value: str | datetime | None) -> datetime | None:
    return None if value is None else parse_timestamp(value)


def _append_lines(path: Path, records: Iterable[dict[str, Any]]) -> None:
    lines = [json.dumps(record, ensure_ascii=False) + "\n" for record in records]
    if not lines:
        return
    with path.open("a", encoding="utf-8") as f:
        f.writelines(lines)


def _read_lines(path: Path) -> Iterator[tuple[int, str]]:
    if not path.exists():
        return
    with path.open("r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, 1):
            line = line.strip()
            if line:
                yield lineno, line


class ChainStore:
    """
    Persistence for snapshots, sessions, replay events and flag reviews.

    Snapshot queries always return ascending timestamp order; records with
    equal timestamps keep their append order.
    """

    def __init__(self, storage_dir: Path):
        self.storage_dir = storage_dir
        self.snapshots_path = storage_dir / SNAPSHOTS_FILE
        self.sessions_path = storage_dir / SESSIONS_FILE
        self.replay_path = storage_dir / REPLAY_FILE
        self.flags_path = storage_dir / FLAGS_FILE

    @classmethod
    def for_workspace(cls, workspace: Path, config: CodeProofConfig | None = None) -> ChainStore:
        return cls(get_storage_dir(workspace, config))

    def _ensure_dir(self) -> None:
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    def append_snapshot(self, snapshot: Snapshot) -> None:
        """
        Append one snapshot to the log.

        Raises OSError if the write fails; the caller must not advance its
        chain cursor in that case.
        """
        self._ensure_dir()
        _append_lines(self.snapshots_path, [snapshot.to_dict()])

    def append_snapshots(self, snapshots: Sequence[Snapshot]) -> None:
        """Append several snapshots in a single file operation."""
        if not snapshots:
            return
        self._ensure_dir()
        _append_lines(self.snapshots_path, (s.to_dict() for s in snapshots))

    def _load_snapshots(self) -> tuple[list[Snapshot], list[str]]:
        """All parseable snapshots in timestamp order, plus malformed-line notes."""
        records: list[tuple[datetime, Snapshot]] = []
        problems: list[str] = []

        for lineno, line in _read_lines(self.snapshots_path):
            try:
                snapshot = Snapshot.from_dict(json.loads(line))
                moment = parse_timestamp(snapshot.timestamp)
            except (ValueError, KeyError, TypeError) as e:
                problems.append(f"{self.snapshots_path.name} line {lineno}: {e!r}")
                continue
            records.append((moment, snapshot))

        records.sort(key=lambda r: r[0])
        return [snapshot for _, snapshot in records], problems

    def iter_snapshots(self) -> Iterator[Snapshot]:
        """Iterate over all readable snapshots in ascending timestamp order."""
        snapshots, problems = self._load_snapshots()
        for problem in problems:
            logger.warning("Skipping malformed snapshot record (%s)", problem)
        yield from snapshots

    def snapshots(
        self,
        *,
        filename: str | None = None,
        after: str | datetime | None = None,
        before: str | datetime | None = None,
        session_id: str | None = None,
        limit: int | None = None,
    ) -> list[Snapshot]:
        """
        Query snapshots with composable filters.

        Args:
            filename: Only snapshots of this workspace-relative file
            after: Only snapshots strictly after this timestamp
            before: Only snapshots strictly before this timestamp
            session_id: Only snapshots recorded in this session
            limit: Keep only the most recent N matches (still ascending)

        Returns:
            Matching snapshots in ascending timestamp order
        """
        after_dt = _as_datetime(after)
        before_dt = _as_datetime(before)

        results: list[Snapshot] = []
        for snapshot in self.iter_snapshots():
            if filename is not None and snapshot.filename != filename:
                continue
            if session_id is not None and snapshot.session_id != session_id:
                continue
            if after_dt is not None or before_dt is not None:
                moment = parse_timestamp(snapshot.timestamp)
                if after_dt is not None and moment <= after_dt:
                    continue
                if before_dt is not None and moment >= before_dt:
                    continue
            results.append(snapshot)

        if limit is not None:
            results = results[-limit:] if limit > 0 else []
        return results

    def get_snapshot(self, snapshot_id: str) -> Snapshot | None:
        for snapshot in self.iter_snapshots():
            if snapshot.id == snapshot_id:
                return snapshot
        return None

    def snapshot_count(self, session_id: str | None = None) -> int:
        return len(self.snapshots(session_id=session_id))

    def files_for_session(self, session_id: str | None = None) -> list[str]:
        """Distinct filenames in order of first snapshot."""
        seen: dict[str, None] = {}
        for snapshot in self.snapshots(session_id=session_id):
            seen.setdefault(snapshot.filename, None)
        return list(seen)

    def distinct_file_count(self, session_id: str | None = None) -> int:
        return len(self.files_for_session(session_id))

    def last_snapshot(self) -> Snapshot | None:
        last = None
        for last in self.iter_snapshots():
            pass
        return last

    def last_chain_hash(self) -> str:
        """Chain hash a new snapshot must link to (empty seed for a new log)."""
        last = self.last_snapshot()
        return last.chain_hash if last else GENESIS_HASH

    def verify_chain(self) -> ChainVerification:
        """
        Recompute the whole chain from the empty seed.

        Never raises for tampering and never repairs anything: a broken chain
        is reported as a normal result.
        """
        snapshots, problems = self._load_snapshots()
        result = verify_snapshots(snapshots)
        if not problems:
            return result

        reason = f"malformed snapshot record ({problems[0]})"
        if not result.valid:
            return ChainVerification(
                valid=False,
                checked=result.checked,
                broken_at=result.broken_at,
                broken_id=result.broken_id,
                invalid_count=result.invalid_count,
                reason=f"{result.reason}; {reason}",
            )
        return ChainVerification(
            valid=False,
            checked=result.checked,
            invalid_count=len(problems),
            reason=reason,
        )

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    def save_session(self, session: Session) -> None:
        """Record the current state of a session (append; latest wins)."""
        self._ensure_dir()
        _append_lines(self.sessions_path, [session.to_dict()])

    def _load_sessions(self) -> dict[str, Session]:
        sessions: dict[str, Session] = {}
        for lineno, line in _read_lines(self.sessions_path):
            try:
                session = Session.from_dict(json.loads(line))
            except (ValueError, KeyError, TypeError) as e:
                logger.warning("Skipping malformed session record at line %d: %r", lineno, e)
                continue
            sessions[session.id] = session
        return sessions

    def sessions(self) -> list[Session]:
        """All sessions, oldest first."""
        return sorted(self._load_sessions().values(), key=lambda s: parse_timestamp(s.started_at))

    def get_session(self, session_id: str) -> Session | None:
        return self._load_sessions().get(session_id)

    def current_session(self) -> Session | None:
        """The open session, if any."""
        open_sessions = [s for s in self.sessions() if s.is_open]
        return open_sessions[-1] if open_sessions else None

    def create_session(self, project_name: str, *, started_at: str | None = None) -> Session:
        """
        Open a new session.

        Any session left open (e.g. by a crashed recorder) is closed first so
        that exactly one session is open at a time.
        """
        for stale in [s for s in self.sessions() if s.is_open]:
            logger.warning("Closing session %s left open by a previous run", stale.id)
            self.end_session(stale.id)

        session = Session(
            id=new_ulid(),
            started_at=started_at or format_timestamp(utc_now()),
            project_name=project_name,
        )
        self.save_session(session)
        return session

    def end_session(self, session_id: str, ended_at: str | None = None) -> Session:
        """
        Close a session, recomputing files_touched and total_snapshots from
        the snapshot log.

        Raises:
            KeyError: if the session does not exist
        """
        session = self.get_session(session_id)
        if session is None:
            raise KeyError(f"Unknown session: {session_id}")
        if not session.is_open:
            return session

        closed = session.closed(
            ended_at or format_timestamp(utc_now()),
            self.snapshots(session_id=session_id),
        )
        self.save_session(closed)
        return closed

    # -------------------------------------------------------------------------
    # Replay events
    # -------------------------------------------------------------------------

    def append_replay_events(self, events: Sequence[ReplayEvent]) -> None:
        if not events:
            return
        self._ensure_dir()
        _append_lines(self.replay_path, (e.to_dict() for e in events))

    def replay_events(
        self,
        *,
        filename: str | None = None,
        after: int | None = None,
        before: int | None = None,
    ) -> list[ReplayEvent]:
        """Replay events in ascending timestamp order (bounds are epoch ms, exclusive)."""
        events: list[ReplayEvent] = []
        for lineno, line in _read_lines(self.replay_path):
            try:
                event = ReplayEvent.from_dict(json.loads(line))
            except (ValueError, KeyError, TypeError) as e:
                logger.warning("Skipping malformed replay record at line %d: %r", lineno, e)
                continue
            if filename is not None and event.filename != filename:
                continue
            if after is not None and event.timestamp <= after:
                continue
            if before is not None and event.timestamp >= before:
                continue
            events.append(event)

        events.sort(key=lambda e: e.timestamp)
        return events

    # -------------------------------------------------------------------------
    # Flag reviews
    # -------------------------------------------------------------------------

    def _load_flags(self) -> dict[str, FlagWithContext]:
        if not self.flags_path.exists():
            return {}
        try:
            data = json.loads(self.flags_path.read_text(encoding="utf-8"))
            records = [FlagWithContext.from_dict(r) for r in data.get("flags", [])]
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise FlagStoreError(f"{self.flags_path}: {e}") from e
        return {flag.id: flag for flag in records}

    def _write_flags(self, flags: dict[str, FlagWithContext]) -> None:
        self._ensure_dir()
        serialized = json.dumps(
            {"flags": [f.to_dict() for f in flags.values()]},
            indent=2,
            ensure_ascii=False,
        )
        # Write atomically (write to temp, then rename)
        temp_path = self.flags_path.with_suffix(".tmp")
        temp_path.write_text(serialized, encoding="utf-8")
        temp_path.replace(self.flags_path)

    def save_flag(self, flag: FlagWithContext) -> None:
        """Insert or replace the review record for a flag."""
        self.save_flags([flag])

    def save_flags(self, flags: Iterable[FlagWithContext]) -> None:
        current = self._load_flags()
        for flag in flags:
            current[flag.id] = flag
        self._write_flags(current)

    def get_flag(self, flag_id: str) -> FlagWithContext | None:
        return self._load_flags().get(flag_id)

    def flags(self, session_id: str | None = None) -> list[FlagWithContext]:
        """Saved flag reviews, optionally only those over a session's snapshots."""
        flags = list(self._load_flags().values())
        if session_id is None:
            return flags
        ids = {s.id for s in self.snapshots(session_id=session_id)}
        return [f for f in flags if ids.intersection(f.flag.snapshot_ids)]
