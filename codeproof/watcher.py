"""
Edit sources and the recording loop.

Event sources (the watchdog file observer here, the LSP server in
codeproof.lsp) never touch recording state directly. They post items onto
one inbound queue:

- DocumentChange: an edit, with the full text after it
- DocumentOpened: a document's text before any edit (seeds the baseline)
- RELOAD_CONFIG: config.toml changed

RecordingLoop drains that queue on a single thread, feeds the snapshot
engine and the replay recorder, and fires the snapshot tick and the replay
flush from monotonic deadlines.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Union

from watchdog.events import (
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .config import CodeProofConfig, ConfigError, get_config_path, load_config
from .models import DocumentChange, Position, Session, Snapshot, TextEdit
from .pathfilter import PathFilter
from .snapshot.engine import SnapshotEngine
from .snapshot.replay import FLUSH_INTERVAL_SECONDS, ReplayRecorder
from .snapshot.storage import ChainStore
from .util import now_ms

logger = logging.getLogger(__name__)

POLL_SECONDS = 0.5


@dataclass(frozen=True)
class DocumentOpened:
    filename: str
    text: str


class _ReloadConfig:
    def __repr__(self) -> str:
        return "RELOAD_CONFIG"


RELOAD_CONFIG = _ReloadConfig()

InboundItem = Union[DocumentChange, DocumentOpened, _ReloadConfig]


# -----------------------------------------------------------------------------
# Text diffing for file-level sources
# -----------------------------------------------------------------------------


def offset_to_position(text: str, offset: int) -> Position:
    line = text.count("\n", 0, offset)
    line_start = text.rfind("\n", 0, offset) + 1
    return Position(line, offset - line_start)


def text_edits_between(old: str, new: str) -> tuple[TextEdit, ...]:
    """
    Express old -> new as a single range replacement.

    Used where only whole-file content is known (file watching); the range
    covers everything between the common prefix and the common suffix.
    """
    if old == new:
        return ()

    limit = min(len(old), len(new))
    prefix = 0
    while prefix < limit and old[prefix] == new[prefix]:
        prefix += 1

    suffix = 0
    while (
        suffix < limit - prefix
        and old[len(old) - 1 - suffix] == new[len(new) - 1 - suffix]
    ):
        suffix += 1

    old_end = len(old) - suffix
    return (
        TextEdit(
            start=offset_to_position(old, prefix),
            end=offset_to_position(old, old_end),
            text=new[prefix:len(new) - suffix],
            range_length=old_end - prefix,
        ),
    )


# -----------------------------------------------------------------------------
# File system source
# -----------------------------------------------------------------------------


class WorkspaceEventHandler(FileSystemEventHandler):
    """
    Turns file system events into DocumentChange items.

    Key behaviors:
    - Debounces rapid modifications (editor save cycles)
    - Filters by extension and exclude patterns
    - Diffs against the last seen text of each file
    - Treats moves as delete + create
    """

    DEBOUNCE_SECONDS = 1.0

    def __init__(
        self,
        workspace: Path,
        inbound: queue.Queue,
        config: CodeProofConfig | None = None,
    ):
        super().__init__()
        self.workspace = workspace.resolve()
        self.inbound = inbound
        self.config_path = get_config_path(self.workspace).resolve()
        self.apply_config(config or CodeProofConfig())

        self.texts: dict[str, str] = {}  # relative path -> last seen text
        self.pending: dict[str, float] = {}  # relative path -> last event time
        self._lock = threading.Lock()

    def apply_config(self, config: CodeProofConfig) -> None:
        self.include_extensions = {e.lower() for e in config.include_extensions}
        self._filter = PathFilter(config.effective_exclude_patterns)

    def relative(self, path: str | Path) -> str | None:
        try:
            return Path(path).resolve().relative_to(self.workspace).as_posix()
        except ValueError:
            return None

    def _is_relevant(self, relative_path: str) -> bool:
        if Path(relative_path).suffix.lower() not in self.include_extensions:
            return False
        return not self._filter.is_excluded(relative_path)

    def _read(self, relative_path: str) -> str | None:
        try:
            return (self.workspace / relative_path).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.debug("Cannot read %s: %s", relative_path, e)
            return None

    def prime(self) -> int:
        """Post the current text of every relevant file as its baseline."""
        count = 0
        for path in sorted(self.workspace.rglob("*")):
            if not path.is_file():
                continue
            relative_path = path.relative_to(self.workspace).as_posix()
            if not self._is_relevant(relative_path):
                continue
            text = self._read(relative_path)
            if text is None:
                continue
            self.texts[relative_path] = text
            self.inbound.put(DocumentOpened(relative_path, text))
            count += 1
        return count

    def _touch(self, src_path: str) -> None:
        if Path(src_path).resolve() == self.config_path:
            self.inbound.put(RELOAD_CONFIG)
            return

        relative_path = self.relative(src_path)
        if relative_path is None or not self._is_relevant(relative_path):
            return
        with self._lock:
            self.pending[relative_path] = time.time()

    def flush_pending(self, now: float | None = None) -> int:
        """Post changes for files whose debounce window has passed."""
        now = time.time() if now is None else now
        with self._lock:
            ready = [p for p, t in self.pending.items() if now - t >= self.DEBOUNCE_SECONDS]
            for relative_path in ready:
                del self.pending[relative_path]

        posted = 0
        for relative_path in ready:
            old = self.texts.get(relative_path, "")
            new = self._read(relative_path)
            if new is None:
                new = ""
            edits = text_edits_between(old, new)
            if not edits:
                continue

            if new or (self.workspace / relative_path).exists():
                self.texts[relative_path] = new
            else:
                self.texts.pop(relative_path, None)

            self.inbound.put(DocumentChange(relative_path, new, edits, now_ms()))
            posted += 1
        return posted

    def on_created(self, event: FileCreatedEvent) -> None:
        if not event.is_directory:
            self._touch(event.src_path)

    def on_modified(self, event: FileModifiedEvent) -> None:
        if not event.is_directory:
            self._touch(event.src_path)

    def on_deleted(self, event: FileDeletedEvent) -> None:
        if not event.is_directory:
            self._touch(event.src_path)

    def on_moved(self, event: FileMovedEvent) -> None:
        if event.is_directory:
            return
        self._touch(event.src_path)
        self._touch(event.dest_path)


# -----------------------------------------------------------------------------
# Recording loop
# -----------------------------------------------------------------------------


class RecordingLoop:
    """
    Single consumer of the inbound queue.

    All engine and recorder calls happen on the thread running this loop,
    so edit intake and ticks form one serialized timeline.
    """

    def __init__(
        self,
        engine: SnapshotEngine,
        recorder: ReplayRecorder,
        workspace: Path | None = None,
        inbound: queue.Queue | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.engine = engine
        self.recorder = recorder
        self.workspace = workspace
        self.inbound: queue.Queue = inbound if inbound is not None else queue.Queue()
        self._clock = clock
        self._next_tick = 0.0
        self._next_flush = 0.0
        self._stop = threading.Event()
        self.on_config_reload: list[Callable[[CodeProofConfig], None]] = []

    def submit(self, item: InboundItem) -> None:
        self.inbound.put(item)

    def start(self, project_name: str = "unknown") -> Session:
        session = self.engine.start(project_name)
        self.recorder.start()
        now = self._clock()
        self._next_tick = now + self.engine.interval
        self._next_flush = now + FLUSH_INTERVAL_SECONDS
        self._stop.clear()
        return session

    def stop(self) -> list[Snapshot]:
        """
        Process anything still queued, then flush and close the session.

        Call from the loop thread, or after run_forever() has returned.
        """
        self._stop.set()
        self._drain()
        self.recorder.stop()
        return self.engine.stop()

    def _dispatch(self, item: InboundItem) -> None:
        if isinstance(item, DocumentChange):
            self.engine.handle_change(item)
            self.recorder.record(item)
        elif isinstance(item, DocumentOpened):
            self.engine.track_document(item.filename, item.text)
        elif item is RELOAD_CONFIG:
            self.reload_config()
        else:
            logger.warning("Ignoring unknown inbound item: %r", item)

    def _drain(self) -> int:
        count = 0
        while True:
            try:
                item = self.inbound.get_nowait()
            except queue.Empty:
                return count
            self._dispatch(item)
            count += 1

    def run_once(self, now: float | None = None) -> list[Snapshot]:
        """Handle all queued items, then fire whichever timers are due."""
        self._drain()
        now = self._clock() if now is None else now

        emitted: list[Snapshot] = []
        if now >= self._next_tick:
            self._next_tick = now + self.engine.interval
            emitted = self.engine.tick()
        if now >= self._next_flush:
            self._next_flush = now + FLUSH_INTERVAL_SECONDS
            self.recorder.flush()
        return emitted

    def run_forever(self) -> None:
        """Block on the queue until stop() is called from another thread."""
        while not self._stop.is_set():
            timeout = max(0.0, min(self._next_tick, self._next_flush) - self._clock())
            try:
                item = self.inbound.get(timeout=min(timeout, POLL_SECONDS))
            except queue.Empty:
                pass
            else:
                self._dispatch(item)
            self.run_once()

    def request_stop(self) -> None:
        self._stop.set()

    def reload_config(self) -> CodeProofConfig | None:
        """Re-read config.toml and apply it. Invalid files keep the current settings."""
        if self.workspace is None:
            return None
        try:
            config = load_config(self.workspace)
        except ConfigError as e:
            logger.error("Config reload failed, keeping current settings: %s", e)
            return None

        previous_interval = self.engine.interval
        self.engine.apply_config(config)
        self.recorder.set_exclude_patterns(config.effective_exclude_patterns)
        if config.snapshot_interval != previous_interval:
            self._next_tick = self._clock() + config.snapshot_interval
        for callback in self.on_config_reload:
            callback(config)
        logger.info("Reloaded configuration")
        return config


def run_watch_loop(
    workspace: Path,
    store: ChainStore,
    config: CodeProofConfig | None = None,
    project_name: str | None = None,
    on_snapshot: Callable[[Snapshot], None] | None = None,
) -> Session | None:
    """
    Record edits to files in `workspace` until interrupted.

    Blocking: polls the debounced file events and the recording loop every
    half second. Returns the closed session.
    """
    config = config or CodeProofConfig()
    engine = SnapshotEngine(store, config)
    if on_snapshot:
        engine.on_snapshot(on_snapshot)
    recorder = ReplayRecorder(store, config.effective_exclude_patterns)
    loop = RecordingLoop(engine, recorder, workspace)

    handler = WorkspaceEventHandler(workspace, loop.inbound, config)
    loop.on_config_reload.append(handler.apply_config)

    observer = Observer()
    observer.schedule(handler, str(workspace), recursive=True)

    loop.start(project_name or workspace.resolve().name)
    primed = handler.prime()
    logger.info("Watching %s (%d files)", workspace, primed)
    observer.start()

    try:
        while True:
            time.sleep(POLL_SECONDS)
            handler.flush_pending()
            loop.run_once()
    except KeyboardInterrupt:
        pass
    finally:
        observer.stop()
        observer.join()
        loop.stop()

    return engine.last_closed_session
