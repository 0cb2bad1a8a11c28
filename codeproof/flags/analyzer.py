"""
Heuristic flag analysis over a snapshot sequence.

Each rule is an independent pure function taking the chronologically sorted
snapshot list and returning zero or more Flags. New rules are added by
appending to RULES. Flags are advisory signals, not judgments.

Rules never raise: a rule that cannot evaluate part of the input (missing
diff, unparseable timestamp) abstains for that part.
"""

from __future__ import annotations

import hashlib
import logging
import math
import re
from collections import defaultdict
from typing import Callable, Sequence

from ..models import ChangeType, Flag, FlagCategory, FlagSeverity, Snapshot
from ..snapshot.diff import added_lines
from ..util import parse_timestamp

logger = logging.getLogger(__name__)

LARGE_PASTE_LINES = 30
FULLY_FORMED_LINES = 50
LONG_GAP_MS = 2 * 60 * 60 * 1000
POST_GAP_WINDOW_MS = 30 * 60 * 1000
POST_GAP_LINES = 30
STYLE_MIN_MATCHES = 5
STYLE_CAMEL_RATIO = 0.7
STYLE_SNAKE_RATIO = 0.3
NO_DEBUGGING_LINES = 100
UNUSUAL_SPEED_CPM = 200
SPEED_WINDOW_MS = 5 * 60 * 1000
RAPID_COMPLETION_LINES = 200
RAPID_COMPLETION_MS = 60 * 60 * 1000

CAMEL_CASE = re.compile(r"[a-z][A-Z]")
SNAKE_CASE = re.compile(r"[a-z]_[a-z]")

Rule = Callable[[Sequence[Snapshot]], list[Flag]]


def make_flag_id(category: FlagCategory, filename: str, key_ids: Sequence[str]) -> str:
    """Deterministic id so saved reviews re-attach when flags are re-derived."""
    material = "\x1f".join([category.value, filename, *key_ids])
    return hashlib.sha256(material.encode("utf-8")).hexdigest()[:16]


def _time_ms(snapshot: Snapshot) -> int | None:
    try:
        return int(parse_timestamp(snapshot.timestamp).timestamp() * 1000)
    except (ValueError, TypeError, AttributeError):
        logger.debug("Unreadable timestamp on snapshot %s: %r", snapshot.id, snapshot.timestamp)
        return None


def _clock_time(snapshot: Snapshot) -> str:
    try:
        return parse_timestamp(snapshot.timestamp).strftime("%H:%M:%S UTC")
    except (ValueError, TypeError, AttributeError):
        return snapshot.timestamp


def _flag(
    category: FlagCategory,
    severity: FlagSeverity,
    anchor: Snapshot,
    snapshots: Sequence[Snapshot],
    description: str,
    suggested_context: str,
    *,
    key: Sequence[Snapshot] | None = None,
) -> Flag:
    filename = anchor.filename
    snapshot_ids = tuple(s.id for s in snapshots)
    key_ids = snapshot_ids if key is None else tuple(s.id for s in key)
    return Flag(
        id=make_flag_id(category, filename, key_ids),
        category=category,
        severity=severity,
        timestamp=anchor.timestamp,
        filename=filename,
        description=description,
        snapshot_ids=snapshot_ids,
        suggested_context=suggested_context,
    )


def _by_file(snapshots: Sequence[Snapshot]) -> dict[str, list[Snapshot]]:
    groups: dict[str, list[Snapshot]] = defaultdict(list)
    for snapshot in snapshots:
        groups[snapshot.filename].append(snapshot)
    return groups


# -----------------------------------------------------------------------------
# Rules
# -----------------------------------------------------------------------------


def detect_large_paste(snapshots: Sequence[Snapshot]) -> list[Flag]:
    """A paste that added 30+ lines in one snapshot."""
    flags = []
    for snapshot in snapshots:
        if snapshot.change_type != ChangeType.PASTE or snapshot.lines_added < LARGE_PASTE_LINES:
            continue
        flags.append(_flag(
            FlagCategory.LARGE_PASTE,
            FlagSeverity.MEDIUM,
            snapshot,
            [snapshot],
            f"A paste event added {snapshot.lines_added} lines to {snapshot.filename} "
            "in a single change. Large pastes have many legitimate sources, such as "
            "lecture notes, starter templates or documentation.",
            "Where did this code come from? e.g. \"Pasted from the lecture starter "
            "template\" or \"Copied from my earlier project to reuse utility functions\"",
        ))
    return flags


def detect_fully_formed_code(snapshots: Sequence[Snapshot]) -> list[Flag]:
    """50+ lines added and the file never touched again afterwards."""
    flags = []
    last_index = {s.filename: i for i, s in enumerate(snapshots)}
    for i, snapshot in enumerate(snapshots):
        if snapshot.lines_added < FULLY_FORMED_LINES or last_index[snapshot.filename] != i:
            continue
        flags.append(_flag(
            FlagCategory.FULLY_FORMED_CODE,
            FlagSeverity.HIGH,
            snapshot,
            [snapshot],
            f"{snapshot.lines_added} lines were added to {snapshot.filename} in a single "
            "snapshot with no subsequent edits. Most development involves corrections "
            "and refinements, so code that appears fully formed is unusual.",
            "Why was this code added without further changes? e.g. \"This is an "
            "algorithm I have written several times before\" or \"I drafted this in a "
            "separate file first, then moved it here\"",
        ))
    return flags


def detect_long_gap_then_completion(snapshots: Sequence[Snapshot]) -> list[Flag]:
    """A 2h+ pause followed by 30+ lines within 30 minutes of resuming."""
    flags = []
    times = [_time_ms(s) for s in snapshots]

    for i in range(1, len(snapshots)):
        previous, current = times[i - 1], times[i]
        if previous is None or current is None:
            continue
        gap = current - previous
        if gap < LONG_GAP_MS:
            continue

        window_end = current + POST_GAP_WINDOW_MS
        window: list[Snapshot] = []
        for j in range(i, len(snapshots)):
            moment = times[j]
            if moment is None:
                continue
            if moment > window_end:
                break
            window.append(snapshots[j])

        lines = sum(s.lines_added for s in window)
        if lines < POST_GAP_LINES:
            continue

        hours = round(gap / 3_600_000, 1)
        flags.append(_flag(
            FlagCategory.LONG_GAP,
            FlagSeverity.MEDIUM,
            snapshots[i],
            window,
            f"After {hours} hours of inactivity, {lines} lines were added within 30 "
            "minutes of resuming. A burst of productivity after a long break can "
            "sometimes indicate code prepared elsewhere.",
            "What happened during the gap? e.g. \"I was planning the solution on paper "
            "before coding\" or \"I took a long break and came back with a clear idea\"",
            key=window[:1],
        ))
    return flags


def naming_convention(snapshots: Sequence[Snapshot]) -> str | None:
    """camelCase, snake_case, or None when there is too little signal or a mix."""
    camel = snake = 0
    for snapshot in snapshots:
        for line in added_lines(snapshot.diff or ""):
            camel += len(CAMEL_CASE.findall(line))
            snake += len(SNAKE_CASE.findall(line))

    total = camel + snake
    if total < STYLE_MIN_MATCHES:
        return None
    ratio = camel / total
    if ratio > STYLE_CAMEL_RATIO:
        return "camelCase"
    if ratio < STYLE_SNAKE_RATIO:
        return "snake_case"
    return None


def detect_style_inconsistency(snapshots: Sequence[Snapshot]) -> list[Flag]:
    """Dominant naming convention differs between a file's early and late halves."""
    flags = []
    for filename, file_snapshots in _by_file(snapshots).items():
        if len(file_snapshots) < 2:
            continue

        split = math.ceil(len(file_snapshots) / 2)
        early, late = file_snapshots[:split], file_snapshots[split:]
        early_style, late_style = naming_convention(early), naming_convention(late)
        if early_style is None or late_style is None or early_style == late_style:
            continue

        flags.append(_flag(
            FlagCategory.STYLE_INCONSISTENCY,
            FlagSeverity.MEDIUM,
            late[0],
            file_snapshots,
            f"Naming convention in {filename} appears to change from {early_style} to "
            f"{late_style} partway through development. Inconsistent style can "
            "indicate code from different sources.",
            "Why did the coding style change? e.g. \"I switched to a different style "
            "guide midway\" or \"I refactored to match the project conventions\"",
            key=file_snapshots[:1],
        ))
    return flags


def detect_no_debugging(snapshots: Sequence[Snapshot]) -> list[Flag]:
    """100+ lines added to a file with nothing ever removed."""
    flags = []
    for filename, file_snapshots in _by_file(snapshots).items():
        added = sum(s.lines_added for s in file_snapshots)
        removed = sum(s.lines_removed for s in file_snapshots)
        if added < NO_DEBUGGING_LINES or removed != 0:
            continue

        flags.append(_flag(
            FlagCategory.NO_DEBUGGING,
            FlagSeverity.LOW,
            file_snapshots[0],
            file_snapshots,
            f"{added} lines were added to {filename} across the session with zero "
            "lines deleted or modified. Most development involves some trial and "
            "error, so this is unusual but not impossible.",
            "Why was no code removed or changed? e.g. \"I planned the logic carefully "
            "beforehand\" or \"I was following a tutorial step by step\"",
            key=file_snapshots[:1],
        ))
    return flags


def detect_unusual_speed(snapshots: Sequence[Snapshot]) -> list[Flag]:
    """200+ characters per minute sustained over a 5 minute window."""
    flags = []
    flagged: set[str] = set()
    times = [_time_ms(s) for s in snapshots]
    window_minutes = SPEED_WINDOW_MS / 60_000

    for i, start in enumerate(times):
        if start is None or snapshots[i].id in flagged:
            continue

        window: list[Snapshot] = []
        for j in range(i, len(snapshots)):
            moment = times[j]
            if moment is None:
                continue
            if moment > start + SPEED_WINDOW_MS:
                break
            window.append(snapshots[j])

        cpm = sum(s.change_size for s in window) / window_minutes
        if cpm < UNUSUAL_SPEED_CPM or len(window) < 2:
            continue

        flagged.add(snapshots[i].id)
        flags.append(_flag(
            FlagCategory.UNUSUAL_TYPING_SPEED,
            FlagSeverity.LOW,
            snapshots[i],
            window,
            f"Sustained typing speed of about {round(cpm)} characters per minute over "
            f"a 5-minute window starting at {_clock_time(snapshots[i])}. This is above "
            "the typical range for manual coding.",
            "What explains the fast coding speed? e.g. \"I was typing boilerplate I "
            "know well\" or \"I used snippets and autocomplete extensively\"",
            key=window[:1],
        ))
    return flags


def detect_rapid_completion(snapshots: Sequence[Snapshot]) -> list[Flag]:
    """200+ lines over a whole sequence spanning at most one hour."""
    if len(snapshots) < 2:
        return []

    first, last = _time_ms(snapshots[0]), _time_ms(snapshots[-1])
    if first is None or last is None:
        return []

    elapsed = last - first
    lines = sum(s.lines_added for s in snapshots)
    if elapsed > RAPID_COMPLETION_MS or lines < RAPID_COMPLETION_LINES:
        return []

    minutes = round(elapsed / 60_000)
    return [_flag(
        FlagCategory.RAPID_COMPLETION,
        FlagSeverity.LOW,
        snapshots[0],
        snapshots,
        f"The recording produced {lines} lines of code in approximately {minutes} "
        "minutes. Completing a substantial amount of code very quickly is notable, "
        "though not necessarily suspicious.",
        "Why was the code completed so quickly? e.g. \"I had already designed the "
        "solution on paper\" or \"This was a rebuild of a previous attempt\"",
        key=snapshots[:1],
    )]


RULES: list[Rule] = [
    detect_large_paste,
    detect_fully_formed_code,
    detect_long_gap_then_completion,
    detect_style_inconsistency,
    detect_no_debugging,
    detect_unusual_speed,
    detect_rapid_completion,
]


def analyze(snapshots: Sequence[Snapshot], rules: Sequence[Rule] = RULES) -> list[Flag]:
    """Run every rule over one chronologically sorted snapshot list."""
    if not snapshots:
        return []

    ordered = list(snapshots)
    flags: list[Flag] = []
    for rule in rules:
        try:
            flags.extend(rule(ordered))
        except Exception:
            logger.warning("Flag rule %s failed and was skipped", rule.__name__, exc_info=True)
    return flags
