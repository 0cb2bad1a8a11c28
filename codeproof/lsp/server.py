"""
LSP adapter: records edits made in any LSP-capable editor.

The server keeps its own copy of each open document, applies incoming
didChange events to it, and posts DocumentChange items to the recording
loop. Recording itself runs on the loop's thread, never in a handler.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Sequence
from urllib.parse import unquote, urlparse

from lsprotocol import types as lsp
from pygls.lsp.server import LanguageServer

from .. import __version__
from ..config import CodeProofConfig
from ..models import DocumentChange, Position, TextEdit
from ..snapshot.engine import SnapshotEngine
from ..snapshot.player import position_to_offset
from ..snapshot.replay import ReplayRecorder
from ..snapshot.storage import ChainStore
from ..util import now_ms
from ..watcher import DocumentOpened, RecordingLoop, text_edits_between

logger = logging.getLogger(__name__)


def uri_to_path(uri: str) -> Path:
    """Convert a file URI to a Path."""
    parsed = urlparse(uri)
    path = unquote(parsed.path)
    if path.startswith("/") and len(path) > 2 and path[2] == ":":
        path = path[1:]  # Windows drive letter
    return Path(path)


def apply_content_changes(text: str, changes: Sequence[Any]) -> tuple[str, tuple[TextEdit, ...]]:
    """
    Apply LSP content changes in order.

    Returns the new text and one TextEdit per change. A change without a
    range replaces the whole document and is reduced to the span that
    actually differs.
    """
    edits: list[TextEdit] = []
    for change in changes:
        change_range = getattr(change, "range", None)
        if change_range is None:
            edits.extend(text_edits_between(text, change.text))
            text = change.text
            continue

        start = Position(change_range.start.line, change_range.start.character)
        end = Position(change_range.end.line, change_range.end.character)
        start_offset = position_to_offset(text, start)
        end_offset = max(position_to_offset(text, end), start_offset)
        edits.append(TextEdit(start, end, change.text, end_offset - start_offset))
        text = text[:start_offset] + change.text + text[end_offset:]
    return text, tuple(edits)


class CodeProofLanguageServer(LanguageServer):
    """Language server that feeds document edits to a recording loop."""

    def __init__(self, loop: RecordingLoop, workspace: Path | None = None):
        super().__init__(name="codeproof-lsp", version=__version__)
        self.loop = loop
        self.workspace_root = workspace.resolve() if workspace else None
        self.documents: dict[str, str] = {}  # uri -> text

    def set_workspace(self, path: Path) -> None:
        self.workspace_root = path.resolve()

    def relative_name(self, uri: str) -> tuple[str, bool]:
        """Workspace-relative filename and whether it is addressable."""
        if urlparse(uri).scheme != "file" or self.workspace_root is None:
            return uri, False
        path = uri_to_path(uri).resolve()
        try:
            return path.relative_to(self.workspace_root).as_posix(), True
        except ValueError:
            return path.as_posix(), False

    def open_document(self, uri: str, text: str) -> None:
        self.documents[uri] = text
        filename, addressable = self.relative_name(uri)
        if addressable:
            self.loop.submit(DocumentOpened(filename, text))

    def change_document(self, uri: str, changes: Sequence[Any]) -> DocumentChange | None:
        if uri not in self.documents:
            logger.debug("Change for unopened document %s", uri)
            return None
        text, edits = apply_content_changes(self.documents[uri], changes)
        self.documents[uri] = text

        filename, addressable = self.relative_name(uri)
        change = DocumentChange(filename, text, edits, now_ms(), addressable)
        self.loop.submit(change)
        return change

    def close_document(self, uri: str) -> None:
        self.documents.pop(uri, None)


def create_server(loop: RecordingLoop, workspace: Path | None = None) -> CodeProofLanguageServer:
    """Create and configure the LSP server."""
    server = CodeProofLanguageServer(loop, workspace)

    @server.feature(lsp.INITIALIZE)
    def initialize(params: lsp.InitializeParams) -> None:
        """Use the client's workspace root when none was given."""
        if server.workspace_root is None and params.root_uri:
            server.set_workspace(uri_to_path(params.root_uri))

    @server.feature(lsp.TEXT_DOCUMENT_DID_OPEN)
    def did_open(params: lsp.DidOpenTextDocumentParams) -> None:
        server.open_document(params.text_document.uri, params.text_document.text)

    @server.feature(lsp.TEXT_DOCUMENT_DID_CHANGE)
    def did_change(params: lsp.DidChangeTextDocumentParams) -> None:
        server.change_document(params.text_document.uri, params.content_changes)

    @server.feature(lsp.TEXT_DOCUMENT_DID_CLOSE)
    def did_close(params: lsp.DidCloseTextDocumentParams) -> None:
        server.close_document(params.text_document.uri)

    return server


def start_server(
    workspace: Path,
    store: ChainStore,
    config: CodeProofConfig | None = None,
    transport: str = "stdio",
    project_name: str | None = None,
) -> None:
    """Start the LSP server and record until the client disconnects.

    Args:
        workspace: Workspace root; filenames are recorded relative to it
        store: Where snapshots, sessions and replay events are written
        config: Recording settings (defaults if omitted)
        transport: Transport method ("stdio" or "tcp")
        project_name: Session project name (defaults to the workspace name)
    """
    config = config or CodeProofConfig()
    engine = SnapshotEngine(store, config)
    recorder = ReplayRecorder(store, config.effective_exclude_patterns)
    loop = RecordingLoop(engine, recorder, workspace)
    server = create_server(loop, workspace)

    loop.start(project_name or workspace.resolve().name)
    worker = threading.Thread(target=_run_loop, args=(loop,), name="codeproof-recorder", daemon=True)
    worker.start()

    try:
        if transport == "stdio":
            server.start_io()
        else:
            # TCP transport for debugging
            server.start_tcp("localhost", 2087)
    finally:
        loop.request_stop()
        worker.join()
        loop.stop()


def _run_loop(loop: RecordingLoop) -> None:
    try:
        loop.run_forever()
    except Exception:
        logger.exception("Recording loop stopped unexpectedly")
        raise
