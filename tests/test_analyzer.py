"""
Tests for the flag analyzer.

Each rule is exercised on hand-built snapshot sequences; timestamps are
offsets in minutes from a fixed base time.
"""

from __future__ import annotations

from codeproof.flags.analyzer import (
    RULES,
    analyze,
    detect_large_paste,
    detect_long_gap_then_completion,
    detect_style_inconsistency,
    naming_convention,
)
from codeproof.models import ChangeType, FlagCategory, FlagSeverity
from codeproof.snapshot.diff import unified_diff


def categories(flags):
    return [f.category for f in flags]


class TestPasteRules:
    def test_large_paste_below_fully_formed_threshold(self, make_snapshot):
        snapshot = make_snapshot(lines_added=42, change_type=ChangeType.PASTE, change_size=900)
        flags = analyze([snapshot])

        assert categories(flags) == [FlagCategory.LARGE_PASTE]
        assert flags[0].severity == FlagSeverity.MEDIUM
        assert flags[0].snapshot_ids == (snapshot.id,)
        assert "42 lines" in flags[0].description

    def test_large_untouched_paste_is_also_fully_formed(self, make_snapshot):
        flags = analyze([make_snapshot(lines_added=52, change_type=ChangeType.PASTE)])

        by_category = {f.category: f for f in flags}
        assert by_category[FlagCategory.LARGE_PASTE].severity == FlagSeverity.MEDIUM
        assert by_category[FlagCategory.FULLY_FORMED_CODE].severity == FlagSeverity.HIGH

    def test_later_edit_clears_fully_formed(self, make_snapshot):
        flags = analyze([
            make_snapshot(lines_added=60, change_type=ChangeType.PASTE),
            make_snapshot(minutes=10, lines_added=1, lines_removed=1),
        ])
        assert FlagCategory.FULLY_FORMED_CODE not in categories(flags)

    def test_typed_lines_are_not_a_paste(self, make_snapshot):
        assert detect_large_paste([make_snapshot(lines_added=40)]) == []


class TestNoDebugging:
    def test_single_flag_per_file(self, make_snapshot):
        snapshots = [make_snapshot(minutes=m * 10, lines_added=30) for m in range(5)]
        snapshots.append(make_snapshot("b.py", minutes=60, lines_added=5))

        flags = [f for f in analyze(snapshots) if f.category == FlagCategory.NO_DEBUGGING]

        assert len(flags) == 1
        assert flags[0].filename == "a.py"
        assert flags[0].severity == FlagSeverity.LOW
        assert len(flags[0].snapshot_ids) == 5
        assert "150 lines" in flags[0].description

    def test_any_removal_clears_flag(self, make_snapshot):
        snapshots = [make_snapshot(minutes=m * 10, lines_added=30) for m in range(4)]
        snapshots.append(make_snapshot(minutes=50, lines_added=30, lines_removed=1))
        assert FlagCategory.NO_DEBUGGING not in categories(analyze(snapshots))


class TestTimingRules:
    def test_long_gap_then_burst(self, make_snapshot):
        snapshots = [
            make_snapshot(minutes=0, lines_added=5),
            make_snapshot(minutes=150, lines_added=20),
            make_snapshot(minutes=160, lines_added=15),
            make_snapshot(minutes=200, lines_added=40),
        ]
        flags = detect_long_gap_then_completion(snapshots)

        assert len(flags) == 1
        assert flags[0].snapshot_ids == (snapshots[1].id, snapshots[2].id)
        assert "2.5 hours" in flags[0].description
        assert "35 lines" in flags[0].description

    def test_long_gap_with_small_followup(self, make_snapshot):
        snapshots = [
            make_snapshot(minutes=0, lines_added=5),
            make_snapshot(minutes=180, lines_added=10),
        ]
        assert detect_long_gap_then_completion(snapshots) == []

    def test_unusual_speed(self, make_snapshot):
        snapshots = [
            make_snapshot(minutes=0, change_size=600),
            make_snapshot(minutes=1, change_size=600),
        ]
        flags = [f for f in analyze(snapshots) if f.category == FlagCategory.UNUSUAL_TYPING_SPEED]

        assert len(flags) == 1
        assert "240 characters per minute" in flags[0].description

    def test_speed_needs_two_snapshots(self, make_snapshot):
        flags = analyze([make_snapshot(change_size=5000)])
        assert FlagCategory.UNUSUAL_TYPING_SPEED not in categories(flags)

    def test_rapid_completion(self, make_snapshot):
        snapshots = [
            make_snapshot(minutes=0, lines_added=100),
            make_snapshot(minutes=20, lines_added=100),
            make_snapshot(minutes=40, lines_added=10),
        ]
        flags = [f for f in analyze(snapshots) if f.category == FlagCategory.RAPID_COMPLETION]

        assert len(flags) == 1
        assert "210 lines" in flags[0].description
        assert "40 minutes" in flags[0].description

    def test_slow_sessions_not_rapid(self, make_snapshot):
        snapshots = [
            make_snapshot(minutes=0, lines_added=150),
            make_snapshot(minutes=90, lines_added=150),
        ]
        assert FlagCategory.RAPID_COMPLETION not in categories(analyze(snapshots))


class TestStyle:
    CAMEL = "let myValue = someOther + thingOne;\n"
    SNAKE = "my_value = some_other + thing_one\n"

    def test_naming_convention(self, make_snapshot):
        assert naming_convention([make_snapshot(diff=unified_diff("a.js", "", self.CAMEL * 2))]) == "camelCase"
        assert naming_convention([make_snapshot(diff=unified_diff("a.py", "", self.SNAKE * 2))]) == "snake_case"
        assert naming_convention([make_snapshot(diff=unified_diff("a.py", "", self.SNAKE))]) is None

    def test_style_change_between_halves(self, make_snapshot):
        snapshots = [
            make_snapshot("a.js", minutes=0, diff=unified_diff("a.js", "", self.CAMEL)),
            make_snapshot("a.js", minutes=5, diff=unified_diff("a.js", "", self.CAMEL)),
            make_snapshot("a.js", minutes=10, diff=unified_diff("a.js", "", self.SNAKE)),
            make_snapshot("a.js", minutes=15, diff=unified_diff("a.js", "", self.SNAKE)),
        ]
        flags = detect_style_inconsistency(snapshots)

        assert len(flags) == 1
        assert "from camelCase to snake_case" in flags[0].description
        assert flags[0].timestamp == snapshots[2].timestamp

    def test_consistent_style(self, make_snapshot):
        snapshots = [
            make_snapshot("a.js", minutes=m, diff=unified_diff("a.js", "", self.CAMEL))
            for m in range(4)
        ]
        assert detect_style_inconsistency(snapshots) == []


class TestRobustness:
    def test_empty_input(self):
        assert analyze([]) == []

    def test_malformed_timestamp_abstains(self, make_snapshot):
        snapshots = [
            make_snapshot(timestamp="not-a-time", lines_added=100),
            make_snapshot(minutes=1, lines_added=100, change_size=2000),
            make_snapshot(minutes=2, lines_added=10, change_size=2000),
        ]
        flags = analyze(snapshots)
        assert FlagCategory.RAPID_COMPLETION not in categories(flags)
        assert FlagCategory.UNUSUAL_TYPING_SPEED in categories(flags)

    def test_failing_rule_is_skipped(self, make_snapshot):
        def broken(snapshots):
            raise RuntimeError("boom")

        snapshot = make_snapshot(lines_added=42, change_type=ChangeType.PASTE)
        flags = analyze([snapshot], rules=[broken, detect_large_paste])
        assert categories(flags) == [FlagCategory.LARGE_PASTE]

    def test_analysis_is_idempotent(self, make_snapshot):
        snapshots = [
            make_snapshot(minutes=0, lines_added=60, change_type=ChangeType.PASTE, change_size=1500),
            make_snapshot("b.py", minutes=1, lines_added=120, change_size=1500),
            make_snapshot("b.py", minutes=200, lines_added=40),
        ]
        first = analyze(snapshots)
        second = analyze(snapshots)

        assert first == second
        assert len({f.id for f in first}) == len(first)
        assert len(RULES) == 7
