"""Pytest configuration and fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from itertools import count
from pathlib import Path
from typing import Callable

import pytest

from codeproof.models import ChangeType, Snapshot
from codeproof.snapshot.chain import GENESIS_HASH, compute_chain_hash, compute_content_hash
from codeproof.snapshot.storage import ChainStore
from codeproof.util import MonotonicClock, format_timestamp

BASE_TIME = datetime(2025, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def store(tmp_path: Path) -> ChainStore:
    """A fresh, empty chain store."""
    return ChainStore(tmp_path / ".codeproof")


@pytest.fixture
def fixed_clock() -> MonotonicClock:
    """Clock frozen at BASE_TIME; successive timestamps differ by 1 microsecond."""
    return MonotonicClock(now=lambda: BASE_TIME)


@pytest.fixture
def make_snapshot() -> Callable[..., Snapshot]:
    """
    Factory for analyzer-style snapshots.

    `minutes` is the offset from BASE_TIME. Chain hashes are placeholders;
    use `chained_snapshots` when the chain has to verify.
    """
    ids = count(1)

    def _make(
        filename: str = "a.py",
        *,
        minutes: float = 0,
        lines_added: int = 0,
        lines_removed: int = 0,
        change_type: ChangeType = ChangeType.TYPING,
        change_size: int = 0,
        diff: str = "",
        session_id: str = "session-1",
        timestamp: str | None = None,
    ) -> Snapshot:
        n = next(ids)
        return Snapshot(
            id=f"snap-{n:03d}",
            timestamp=timestamp or format_timestamp(BASE_TIME + timedelta(minutes=minutes)),
            filename=filename,
            content_hash=f"content-{n}",
            diff=diff,
            lines_added=lines_added,
            lines_removed=lines_removed,
            total_lines=lines_added + 1,
            change_type=change_type,
            change_size=change_size,
            chain_hash=f"chain-{n}",
            session_id=session_id,
        )

    return _make


def chain(contents: list[tuple[str, str]], session_id: str = "session-1") -> list[Snapshot]:
    """Build correctly chained snapshots from (filename, content) pairs, one second apart."""
    snapshots = []
    previous = GENESIS_HASH
    for i, (filename, content) in enumerate(contents):
        timestamp = format_timestamp(BASE_TIME + timedelta(seconds=i))
        content_hash = compute_content_hash(content)
        chain_hash = compute_chain_hash(previous, content_hash, timestamp)
        snapshots.append(
            Snapshot(
                id=f"chain-{i:03d}",
                timestamp=timestamp,
                filename=filename,
                content_hash=content_hash,
                diff="",
                lines_added=content.count("\n"),
                lines_removed=0,
                total_lines=content.count("\n") + 1,
                change_type=ChangeType.TYPING,
                change_size=len(content),
                chain_hash=chain_hash,
                session_id=session_id,
            )
        )
        previous = chain_hash
    return snapshots


@pytest.fixture
def chained_snapshots() -> Callable[..., list[Snapshot]]:
    return chain
