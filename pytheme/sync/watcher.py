"""Mirror local edits to the store as they happen.

A watchdog observer thread only queues filesystem events. The coordinator
takes them off the queue one at a time and runs each to completion,
including its remote calls, before looking at the next one.
"""

import logging
import queue
import threading
from enum import Enum
from pathlib import Path
from typing import Callable, NamedTuple, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from ..exceptions import BranchChangedError
from .engine import ThemeSync, TransferOutcome

logger = logging.getLogger(__name__)


class WatchEventKind(str, Enum):
    """Kinds of filesystem events the coordinator reacts to."""

    CREATED = "created"
    CHANGED = "changed"
    DELETED = "deleted"


class WatchEvent(NamedTuple):
    path: str
    kind: WatchEventKind


class WatchOutcome(str, Enum):
    """What handling a single event amounted to."""

    IGNORED = "ignored"
    UPLOADED = "uploaded"
    DELETED = "deleted"
    SKIPPED = "skipped"
    FAILED = "failed"


class FileChangeHandler(FileSystemEventHandler):
    """Translates watchdog events into queued WatchEvents."""

    def __init__(self, events: "queue.Queue[WatchEvent]"):
        super().__init__()
        self.events = events

    def _put(self, path, kind: WatchEventKind) -> None:
        if isinstance(path, bytes):
            path = path.decode()
        self.events.put(WatchEvent(str(path), kind))

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._put(event.src_path, WatchEventKind.CREATED)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._put(event.src_path, WatchEventKind.CHANGED)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._put(event.src_path, WatchEventKind.DELETED)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._put(event.src_path, WatchEventKind.DELETED)
            self._put(event.dest_path, WatchEventKind.CREATED)


class WatchCoordinator:
    """Turns local filesystem events into uploads and remote deletions."""

    def __init__(
        self,
        engine: ThemeSync,
        branch_provider: Callable[[], str],
        allow_drift: bool = False,
        keep_files: bool = False,
        poll_interval: float = 0.5,
    ):
        """Initialize the coordinator.

        Args:
            engine: Sync engine used for transfers and reconciliation
            branch_provider: Returns the current git branch
            allow_drift: Act even if the store has unimported changes
            keep_files: Never delete remote assets on local deletions
            poll_interval: Seconds between checks for a stop request
        """
        self.engine = engine
        self.branch_provider = branch_provider
        self.allow_drift = allow_drift
        self.keep_files = keep_files
        self.poll_interval = poll_interval
        self.branch = branch_provider()
        self.known_keys: set[str] = set(engine.local_asset_keys())
        self.events: queue.Queue[WatchEvent] = queue.Queue()
        self._stop = threading.Event()

    def check_branch(self) -> None:
        """Raise BranchChangedError if the checked out branch changed."""
        branch = self.branch_provider()
        if branch != self.branch:
            raise BranchChangedError(self.branch, branch)

    def _key_for(self, path: str) -> Optional[str]:
        return self.engine.local.key_for(path)

    def should_handle(self, key: str, kind: WatchEventKind) -> bool:
        """Whether an event passes the validation step.

        Deletions are handled for files seen before and for anything in a
        theme directory, which covers files created and removed between
        two scans. Other events need a file that passes the policy.
        """
        if kind == WatchEventKind.DELETED:
            return key in self.known_keys or self.engine.policy.in_theme_directory(key)
        return self.engine.local.exists(key) and self.engine.policy.permits(key)

    def handle_event(self, path: str, kind: WatchEventKind) -> WatchOutcome:
        """Process a single filesystem event to completion.

        Raises:
            BranchChangedError: If the git branch changed since watching began
            RemoteDriftConflictError: If the store has unimported changes and
                ``allow_drift`` is not set
        """
        self.check_branch()

        key = self._key_for(path)
        if key is None or not self.should_handle(key, kind):
            logger.debug(f"Ignoring {kind.value} event for {path}")
            return WatchOutcome.IGNORED

        if kind == WatchEventKind.DELETED and self.keep_files:
            logger.debug(f"Keeping remote copy of {key}")
            return WatchOutcome.IGNORED

        if not self.allow_drift:
            self.engine.ensure_no_drift()

        if kind == WatchEventKind.DELETED:
            outcome = self.engine.delete_asset(key)
        else:
            outcome = self.engine.send_asset(key, force=True)

        if outcome in (TransferOutcome.FAILED, TransferOutcome.INVALID):
            return WatchOutcome.FAILED
        if outcome == TransferOutcome.SKIPPED:
            return WatchOutcome.SKIPPED

        self.known_keys = set(self.engine.local_asset_keys())
        self.engine.refresh_snapshot()
        if outcome == TransferOutcome.DELETED:
            return WatchOutcome.DELETED
        return WatchOutcome.UPLOADED

    def process_pending(self) -> int:
        """Handle every queued event; returns how many were handled."""
        handled = 0
        while True:
            try:
                event = self.events.get_nowait()
            except queue.Empty:
                return handled
            self.handle_event(event.path, event.kind)
            handled += 1

    def stop(self) -> None:
        self._stop.set()

    def run(self) -> None:
        """Watch the local theme until stopped or a fatal error occurs."""
        root = Path(self.engine.local.root)
        observer = Observer()
        observer.schedule(FileChangeHandler(self.events), str(root), recursive=True)
        observer.start()
        logger.debug(f"Watching {root}")
        try:
            while not self._stop.is_set():
                try:
                    event = self.events.get(timeout=self.poll_interval)
                except queue.Empty:
                    continue
                self.handle_event(event.path, event.kind)
        finally:
            observer.stop()
            observer.join()
