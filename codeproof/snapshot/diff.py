"""
Unified diff helpers.

Diffs are line based. A final line without a trailing newline is marked the
way git and patch do, so "a" -> "a\\n" still shows up as a change.
"""

from __future__ import annotations

import difflib
from typing import Iterator

NO_NEWLINE_MARKER = "\\ No newline at end of file"


def _diff_lines(text: str) -> list[str]:
    parts = text.split("\n")
    lines = [part + "\n" for part in parts[:-1]]
    if parts[-1]:
        lines.append(f"{parts[-1]}\n{NO_NEWLINE_MARKER}\n")
    return lines


def unified_diff(filename: str, previous: str, current: str) -> str:
    """Unified diff from `previous` to `current`, headed with `filename`."""
    return "".join(
        difflib.unified_diff(
            _diff_lines(previous),
            _diff_lines(current),
            fromfile=filename,
            tofile=filename,
        )
    )


def _body_lines(diff: str) -> Iterator[str]:
    """Yield hunk body lines, skipping file headers and hunk markers."""
    lines = diff.split("\n")
    if not any(line.startswith("@@") for line in lines):
        # Header-less fragment: only the --- / +++ lines need excluding
        for line in lines:
            if not line.startswith(("+++", "---")):
                yield line
        return

    in_hunk = False
    for line in lines:
        if line.startswith("@@"):
            in_hunk = True
            continue
        if in_hunk:
            yield line


def count_diff_lines(diff: str) -> tuple[int, int]:
    """Return (lines_added, lines_removed) from a unified diff."""
    added = removed = 0
    for line in _body_lines(diff):
        if line.startswith("+"):
            added += 1
        elif line.startswith("-"):
            removed += 1
    return added, removed


def added_lines(diff: str) -> list[str]:
    """Text of the lines a diff adds (without the leading '+')."""
    return [line[1:] for line in _body_lines(diff) if line.startswith("+")]


def line_count(text: str) -> int:
    """Editor line count: an empty document has one line."""
    return text.count("\n") + 1
