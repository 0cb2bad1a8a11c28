"""
Tests for the CLI commands.

Command functions are called directly and their output captured; a few
tests go through the click group to check option handling and exit codes.
"""

from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path

import pytest
from click.testing import CliRunner

from codeproof.cli import cli
from codeproof.commands.flags_cmd import run_flags, run_review
from codeproof.commands.log_cmd import run_log, run_sessions, run_summary, run_verify
from codeproof.commands.replay_cmd import run_replay
from codeproof.models import ChangeType, Position, ReplayChange, ReplayEvent
from codeproof.snapshot.storage import ChainStore


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    return tmp_path


@pytest.fixture
def recorded(store: ChainStore, chained_snapshots) -> ChainStore:
    """Store holding a verified chain with one large paste."""
    session = store.create_session("demo")
    snapshots = chained_snapshots([("a.py", "x\n" * 40), ("b.py", "y\n")], session_id=session.id)
    snapshots[0] = replace(snapshots[0], change_type=ChangeType.PASTE)
    store.append_snapshots(snapshots)
    store.end_session(session.id)
    return store


def test_log_json(recorded, capsys):
    assert run_log(recorded, output_json=True) == 2
    data = json.loads(capsys.readouterr().out)
    assert [d["filename"] for d in data] == ["a.py", "b.py"]


def test_log_filters_and_empty(recorded, capsys):
    assert run_log(recorded, filename="b.py") == 1
    assert "b.py" in capsys.readouterr().out
    assert run_log(recorded, filename="missing.py") == 0
    assert "No snapshots" in capsys.readouterr().out


def test_summary_and_sessions(recorded, capsys):
    assert run_summary(recorded) == 2
    out = capsys.readouterr().out
    assert "Total snapshots" in out
    assert "valid" in out

    assert run_sessions(recorded) == 1
    assert "Sessions" in capsys.readouterr().out


def test_verify(recorded, capsys):
    assert run_verify(recorded) == 0
    assert "Chain valid" in capsys.readouterr().out

    lines = recorded.snapshots_path.read_text(encoding="utf-8").splitlines()
    record = json.loads(lines[0])
    record["content_hash"] = "0" * 64
    lines[0] = json.dumps(record)
    recorded.snapshots_path.write_text("\n".join(lines) + "\n", encoding="utf-8")

    assert run_verify(recorded, output_json=True) == 1
    report = json.loads(capsys.readouterr().out)
    assert report["valid"] is False
    assert report["broken_at"] == 0
    assert report["invalid_count"] == 2


def test_flag_review_flow(recorded, capsys):
    assert run_flags(recorded, output_json=True) == 1
    (flag,) = json.loads(capsys.readouterr().out)
    assert flag["category"] == "large_paste"

    assert run_review(recorded, flag["id"], context="Starter template from the lecture") == 0
    assert "Starter template" in capsys.readouterr().out

    run_flags(recorded, output_json=True)
    (reviewed,) = json.loads(capsys.readouterr().out)
    assert reviewed["status"] == "context_added"
    assert reviewed["student_context"] == "Starter template from the lecture"

    assert run_review(recorded, flag["id"], dismiss=True) == 0
    capsys.readouterr()
    assert run_flags(recorded, output_json=True) == 0
    assert run_flags(recorded, include_dismissed=True, output_json=True) == 1
    assert run_flags(recorded, clean=True, output_json=True) == 0


def test_review_errors(recorded, capsys):
    assert run_review(recorded, "nope", acknowledge=True) == 1
    assert "No flag" in capsys.readouterr().out

    run_flags(recorded, output_json=True)
    (flag,) = json.loads(capsys.readouterr().out)
    assert run_review(recorded, flag["id"], context="  ") == 1


def test_review_flag_listed_for_one_session(store, make_snapshot, capsys):
    store.append_snapshots([
        make_snapshot("a.py", minutes=0, lines_added=60, change_type=ChangeType.PASTE, session_id="s1"),
        make_snapshot("a.py", minutes=10, lines_added=1, lines_removed=1, session_id="s2"),
    ])
    run_flags(store, session_id="s1", output_json=True)
    listed = {f["category"]: f["id"] for f in json.loads(capsys.readouterr().out)}
    flag_id = listed["fully_formed_code"]

    assert run_review(store, flag_id, session_id="s1", context="Drafted in a scratch file") == 0
    assert "Drafted in a scratch file" in capsys.readouterr().out

    run_flags(store, session_id="s1", output_json=True)
    (reviewed,) = [f for f in json.loads(capsys.readouterr().out) if f["id"] == flag_id]
    assert reviewed["status"] == "context_added"


def test_replay(store, capsys):
    start = Position(0, 0)
    store.append_replay_events([
        ReplayEvent(100, "a.py", [ReplayChange(start, start, "print(1)\n", 0)]),
        ReplayEvent(200, "a.py", [ReplayChange(Position(1, 0), Position(1, 0), "print(2)\n", 0)]),
    ])

    assert run_replay(store, "a.py") == 0
    assert capsys.readouterr().out == "print(1)\nprint(2)\n"

    assert run_replay(store, "a.py", at_ms=150) == 0
    assert capsys.readouterr().out == "print(1)\n"

    assert run_replay(store, "a.py", show_stats=True, output_json=True) == 0
    assert json.loads(capsys.readouterr().out)["event_count"] == 2

    assert run_replay(store, "other.py") == 1


class TestGroup:
    def test_verify_exit_code(self, workspace):
        result = CliRunner().invoke(cli, ["-w", str(workspace), "verify", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output) == {"valid": True, "checked": 0}

    def test_missing_workspace(self, tmp_path):
        result = CliRunner().invoke(cli, ["-w", str(tmp_path / "missing"), "summary"])
        assert result.exit_code == 2

    def test_invalid_config(self, workspace):
        (workspace / ".codeproof").mkdir()
        (workspace / ".codeproof" / "config.toml").write_text("paste_threshold = 0\n", encoding="utf-8")

        result = CliRunner().invoke(cli, ["-w", str(workspace), "log"])
        assert result.exit_code == 1
        assert "Invalid configuration" in result.output

    def test_review_options_are_exclusive(self, workspace):
        result = CliRunner().invoke(cli, ["-w", str(workspace), "review", "abc", "--dismiss", "--acknowledge"])
        assert result.exit_code == 2

    def test_review_unknown_flag(self, workspace):
        result = CliRunner().invoke(cli, ["-w", str(workspace), "review", "abc", "--dismiss"])
        assert result.exit_code == 1

    @pytest.mark.parametrize("args", [["flags"], ["review", "abc", "--dismiss"]])
    def test_unreadable_flag_reviews(self, workspace, args):
        (workspace / ".codeproof").mkdir()
        (workspace / ".codeproof" / "flags.json").write_text("{truncated", encoding="utf-8")

        result = CliRunner().invoke(cli, ["-w", str(workspace), *args])
        assert result.exit_code == 1
        assert "Unreadable flag reviews" in result.output
        assert "Traceback" not in result.output
