"""
Edit classifier.

Maps one edit notification to a ChangeType. This is a shape heuristic over
the edited ranges, not a semantic diff.
"""

from __future__ import annotations

from typing import Sequence

from ..config import DEFAULT_PASTE_THRESHOLD, DELETE_CHAR_THRESHOLD
from ..models import ChangeType, DocumentChange, TextEdit


def classify_edits(
    edits: Sequence[TextEdit],
    paste_threshold: int = DEFAULT_PASTE_THRESHOLD,
) -> ChangeType:
    """Classify the ranges of one edit notification.

    Rules (checked in order, first match wins):
    - no ranges: typing
    - more than one range: refactor (multi-cursor edit, rename)
    - inserted text >= paste_threshold characters: paste
    - 30+ characters removed with nothing inserted: delete
    - anything else: typing
    """
    if not edits:
        return ChangeType.TYPING

    if len(edits) > 1:
        return ChangeType.REFACTOR

    edit = edits[0]
    chars_added = len(edit.text)
    chars_removed = edit.range_length

    if chars_added >= paste_threshold:
        return ChangeType.PASTE

    if chars_removed >= DELETE_CHAR_THRESHOLD and chars_added == 0:
        return ChangeType.DELETE

    return ChangeType.TYPING


class ChangeClassifier:
    """Edit classifier with a paste threshold adjustable at runtime."""

    def __init__(self, paste_threshold: int = DEFAULT_PASTE_THRESHOLD):
        self._paste_threshold = DEFAULT_PASTE_THRESHOLD
        self.set_paste_threshold(paste_threshold)

    @property
    def paste_threshold(self) -> int:
        return self._paste_threshold

    def set_paste_threshold(self, threshold: int) -> None:
        if isinstance(threshold, bool) or not isinstance(threshold, int) or threshold <= 0:
            raise ValueError(f"paste threshold must be a positive integer, got {threshold!r}")
        self._paste_threshold = threshold

    def classify(self, change: DocumentChange | Sequence[TextEdit]) -> ChangeType:
        edits = change.edits if isinstance(change, DocumentChange) else change
        return classify_edits(edits, self._paste_threshold)
