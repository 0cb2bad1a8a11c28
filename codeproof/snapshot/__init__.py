"""Edit classification, aggregation, hash-chained snapshots and replay capture."""

from .chain import ChainVerification, compute_chain_hash, compute_content_hash
from .classifier import ChangeClassifier, classify_edits
from .engine import EngineStats, SnapshotEngine
from .replay import ReplayRecorder
from .storage import ChainStore

__all__ = [
    "ChainStore",
    "ChainVerification",
    "ChangeClassifier",
    "EngineStats",
    "ReplayRecorder",
    "SnapshotEngine",
    "classify_edits",
    "compute_chain_hash",
    "compute_content_hash",
]
