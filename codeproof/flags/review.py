"""
Flag review layer.

Flags are re-derived from the snapshot log on every analysis; the author's
review (explanation text and status) is stored separately and re-attached by
flag id. Reviewing a flag never touches snapshot evidence.
"""

from __future__ import annotations

import logging
from typing import Iterable, Literal

from ..models import Flag, FlagStatus, FlagWithContext
from ..snapshot.storage import ChainStore
from .analyzer import analyze

logger = logging.getLogger(__name__)

ReportMode = Literal["annotated", "clean"]


class FlagNotFoundError(KeyError):
    """No current or saved flag has the requested id."""


def merge_reviews(flags: Iterable[Flag], saved: Iterable[FlagWithContext]) -> list[FlagWithContext]:
    """Attach saved reviews to freshly derived flags (unreviewed flags get defaults)."""
    reviews = {r.id: r for r in saved}
    merged = []
    for flag in flags:
        review = reviews.get(flag.id)
        if review is None:
            merged.append(FlagWithContext(flag))
        else:
            merged.append(FlagWithContext(flag, review.student_context, review.status))
    return merged


class FlagReview:
    """Derives flags from a store and records the author's reviews of them."""

    def __init__(self, store: ChainStore):
        self.store = store

    def load(self, session_id: str | None = None) -> list[FlagWithContext]:
        """Analyze the snapshot log and merge in saved reviews."""
        snapshots = self.store.snapshots(session_id=session_id)
        return merge_reviews(analyze(snapshots), self.store.flags())

    def get(self, flag_id: str, session_id: str | None = None) -> FlagWithContext:
        """
        Find a flag by id.

        Flags depend on the snapshot sequence they were derived from, so an
        id shown for one session may not exist in the whole-log analysis.
        Searches the given session first, then the whole log, then every
        session, then the saved review records.
        """
        scopes: list[str | None] = [session_id, None]
        scopes.extend(s.session_id for s in self.store.iter_snapshots())

        for scope in dict.fromkeys(scopes):
            for flag in self.load(scope):
                if flag.id == flag_id:
                    return flag

        saved = self.store.get_flag(flag_id)
        if saved is None:
            raise FlagNotFoundError(flag_id)
        return saved

    def _update(
        self,
        flag_id: str,
        status: FlagStatus,
        context: str | None = None,
        session_id: str | None = None,
    ) -> FlagWithContext:
        updated = self.get(flag_id, session_id).with_review(status=status, student_context=context)
        self.store.save_flag(updated)
        logger.info("Flag %s marked %s", flag_id, status.value)
        return updated

    def add_context(self, flag_id: str, context: str, session_id: str | None = None) -> FlagWithContext:
        if not context.strip():
            raise ValueError("context must not be empty")
        return self._update(flag_id, FlagStatus.CONTEXT_ADDED, context.strip(), session_id)

    def acknowledge(self, flag_id: str, session_id: str | None = None) -> FlagWithContext:
        return self._update(flag_id, FlagStatus.ACKNOWLEDGED, session_id=session_id)

    def dismiss(self, flag_id: str, session_id: str | None = None) -> FlagWithContext:
        return self._update(flag_id, FlagStatus.DISMISSED, session_id=session_id)

    def report_flags(
        self,
        mode: ReportMode = "annotated",
        session_id: str | None = None,
    ) -> list[FlagWithContext]:
        """
        Flags to include in a report.

        annotated: every non-dismissed flag with the author's context
        clean: no flags at all, only the evidence
        """
        if mode == "clean":
            return []
        if mode != "annotated":
            raise ValueError(f"unknown report mode: {mode!r}")
        return [f for f in self.load(session_id) if f.status != FlagStatus.DISMISSED]
