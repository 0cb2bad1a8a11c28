"""Tests for the LSP adapter's document tracking."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from codeproof.lsp.server import CodeProofLanguageServer, apply_content_changes, uri_to_path
from codeproof.models import DocumentChange, Position
from codeproof.snapshot.engine import SnapshotEngine
from codeproof.snapshot.replay import ReplayRecorder
from codeproof.watcher import DocumentOpened, RecordingLoop


def ranged(start: tuple[int, int], end: tuple[int, int], text: str) -> SimpleNamespace:
    return SimpleNamespace(
        range=SimpleNamespace(
            start=SimpleNamespace(line=start[0], character=start[1]),
            end=SimpleNamespace(line=end[0], character=end[1]),
        ),
        text=text,
    )


def whole(text: str) -> SimpleNamespace:
    return SimpleNamespace(text=text)


class TestApplyContentChanges:
    def test_insert(self):
        text, (edit,) = apply_content_changes("ab\ncd", [ranged((1, 1), (1, 1), "X")])
        assert text == "ab\ncXd"
        assert edit.start == Position(1, 1)
        assert edit.range_length == 0

    def test_replace_across_lines(self):
        text, (edit,) = apply_content_changes("ab\ncd", [ranged((0, 1), (1, 1), "-")])
        assert text == "a-d"
        assert edit.range_length == 3

    def test_changes_apply_in_order(self):
        text, edits = apply_content_changes("abc", [
            ranged((0, 0), (0, 0), "1"),
            ranged((0, 4), (0, 4), "2"),
        ])
        assert text == "1abc2"
        assert len(edits) == 2

    def test_full_replacement_reduced_to_changed_span(self):
        text, (edit,) = apply_content_changes("x = 1\n", [whole("x = 10\n")])
        assert text == "x = 10\n"
        assert edit.text == "0"
        assert edit.range_length == 0


class TestLanguageServer:
    @pytest.fixture
    def loop(self, fixed_clock) -> RecordingLoop:
        return RecordingLoop(SnapshotEngine(clock=fixed_clock), ReplayRecorder(None))

    @pytest.fixture
    def server(self, loop, tmp_path) -> CodeProofLanguageServer:
        return CodeProofLanguageServer(loop, tmp_path)

    def test_uri_to_path(self):
        assert uri_to_path("file:///home/me/my%20file.py").as_posix() == "/home/me/my file.py"

    def test_open_and_change_post_to_loop(self, server, loop, tmp_path):
        uri = (tmp_path / "src" / "a.py").as_uri()
        server.open_document(uri, "x = 1\n")
        change = server.change_document(uri, [ranged((1, 0), (1, 0), "y = 2\n")])

        assert loop.inbound.get_nowait() == DocumentOpened("src/a.py", "x = 1\n")
        posted = loop.inbound.get_nowait()
        assert isinstance(posted, DocumentChange)
        assert posted is change
        assert posted.filename == "src/a.py"
        assert posted.text == "x = 1\ny = 2\n"
        assert posted.addressable

    def test_documents_outside_workspace_not_addressable(self, server, loop):
        server.open_document("untitled:Untitled-1", "")
        change = server.change_document("untitled:Untitled-1", [whole("scratch")])

        assert change.addressable is False
        assert loop.inbound.get_nowait() is change

    def test_change_for_unopened_document_ignored(self, server, loop, tmp_path):
        assert server.change_document((tmp_path / "a.py").as_uri(), [whole("x")]) is None
        assert loop.inbound.empty()

    def test_close_forgets_document(self, server, tmp_path):
        uri = (tmp_path / "a.py").as_uri()
        server.open_document(uri, "x")
        server.close_document(uri)
        assert uri not in server.documents
