"""
Hash chain construction and verification.

Each snapshot's chain_hash is sha256(previous chain_hash + content_hash +
timestamp), seeded with the empty string. Recomputing the chain over the
stored log detects any edited, removed, or reordered snapshot.

This is tamper evidence, not authentication: the hashes are unsalted and
unsigned.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Any, Iterable

from ..models import Snapshot

GENESIS_HASH = ""


def compute_content_hash(content: str) -> str:
    """SHA-256 hex digest of file content."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def compute_chain_hash(previous_chain_hash: str, content_hash: str, timestamp: str) -> str:
    """SHA-256 hex digest linking one snapshot to its predecessor."""
    return hashlib.sha256(
        (previous_chain_hash + content_hash + timestamp).encode("utf-8")
    ).hexdigest()


@dataclass(frozen=True)
class ChainVerification:
    """
    Result of recomputing the hash chain.

    A mismatch at position i invalidates every snapshot from i onward;
    `invalid_count` is the size of that suffix. Truthy when the chain is intact.
    """

    valid: bool
    checked: int
    broken_at: int | None = None  # index in timestamp order
    broken_id: str | None = None
    invalid_count: int = 0
    reason: str | None = None

    def __bool__(self) -> bool:
        return self.valid

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"valid": self.valid, "checked": self.checked}
        if not self.valid:
            d["broken_at"] = self.broken_at
            d["broken_id"] = self.broken_id
            d["invalid_count"] = self.invalid_count
            d["reason"] = self.reason
        return d


def verify_snapshots(snapshots: Iterable[Snapshot]) -> ChainVerification:
    """Recompute the chain over snapshots already sorted by timestamp."""
    ordered = list(snapshots)
    previous = GENESIS_HASH

    for index, snapshot in enumerate(ordered):
        expected = compute_chain_hash(previous, snapshot.content_hash, snapshot.timestamp)
        if expected != snapshot.chain_hash:
            return ChainVerification(
                valid=False,
                checked=index + 1,
                broken_at=index,
                broken_id=snapshot.id,
                invalid_count=len(ordered) - index,
                reason=f"chain hash mismatch at snapshot {snapshot.id} ({snapshot.filename})",
            )
        previous = snapshot.chain_hash

    return ChainVerification(valid=True, checked=len(ordered))
