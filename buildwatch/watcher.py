# BuildWatch - Supervised build-and-run loop
# Copyright (C) 2026 BuildWatch Authors
# SPDX-License-Identifier: Apache-2.0

"""Change source: a watchdog observer feeding raw events into the loop.

Only files matching the watch patterns are reported and dot-files or
anything under a dot-directory are ignored. No debouncing happens here;
the trigger coordinator owns that.
"""

from __future__ import annotations

import asyncio
import fnmatch
import logging
import os
from collections.abc import Callable, Iterable, Sequence
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from buildwatch.pipeline.requests import ChangeKind

logger = logging.getLogger("buildwatch.watcher")

ChangeCallback = Callable[[ChangeKind, Path], None]


# ── Event handler ───────────────────────────────────────────────────


class SourceFileHandler(FileSystemEventHandler):
    """Translate watchdog events into change events (observer thread)."""

    def __init__(self, watcher: SourceWatcher) -> None:
        super().__init__()
        self.watcher = watcher

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.watcher.dispatch(ChangeKind.ADDED, event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.watcher.dispatch(ChangeKind.CHANGED, event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.watcher.dispatch(ChangeKind.REMOVED, event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.watcher.dispatch(ChangeKind.REMOVED, event.src_path)
            self.watcher.dispatch(ChangeKind.ADDED, event.dest_path)


# ── SourceWatcher ───────────────────────────────────────────────────


class SourceWatcher:
    """Watch source roots and report matching file changes to a callback.

    The callback always runs on the event loop thread, scheduled with
    ``call_soon_threadsafe`` from the observer thread.
    """

    def __init__(
        self,
        roots: Iterable[Path],
        patterns: Sequence[str],
        callback: ChangeCallback,
    ) -> None:
        self.roots = self._collapse_roots(roots)
        self.patterns = list(patterns)
        self.callback = callback
        self.observer: Observer | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    @staticmethod
    def _collapse_roots(roots: Iterable[Path]) -> list[Path]:
        """Drop roots nested inside another root (recursive watches overlap)."""
        resolved = sorted(
            {Path(r).resolve() for r in roots}, key=lambda p: (len(p.parts), str(p)),
        )
        kept: list[Path] = []
        for root in resolved:
            if not any(root == k or k in root.parents for k in kept):
                kept.append(root)
        return kept

    @property
    def running(self) -> bool:
        return self.observer is not None

    # ── Start/Stop ──────────────────────────────────────────────────

    def start(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Start watching. Must be called from the loop thread if *loop* is None."""
        if self.observer is not None:
            logger.warning("SourceWatcher already running")
            return

        self._loop = loop or asyncio.get_running_loop()
        observer = Observer()
        handler = SourceFileHandler(self)
        watched = 0
        for root in self.roots:
            if not root.is_dir():
                logger.warning("Watch path does not exist, skipping: %s", root)
                continue
            observer.schedule(handler, str(root), recursive=True)
            watched += 1
            logger.debug("Watching directory: %s", root)

        observer.start()
        self.observer = observer
        logger.info(
            "Watching for %s changes in %d path(s): %s",
            ", ".join(self.patterns), watched, ", ".join(str(r) for r in self.roots),
        )

    def stop(self) -> None:
        """Stop watching."""
        if self.observer is None:
            return
        logger.info("Stopping SourceWatcher")
        self.observer.stop()
        self.observer.join(timeout=5.0)
        self.observer = None

    # ── Filtering / dispatch ────────────────────────────────────────

    def _relative_parts(self, path: Path) -> tuple[str, ...]:
        for root in self.roots:
            try:
                return path.relative_to(root).parts
            except ValueError:
                continue
        return (path.name,)

    def matches(self, path: Path) -> bool:
        """Whether a change to *path* should be reported."""
        if any(part.startswith(".") for part in self._relative_parts(path)):
            return False
        return any(fnmatch.fnmatch(path.name, pattern) for pattern in self.patterns)

    def dispatch(self, kind: ChangeKind, src_path: str | bytes) -> None:
        path = Path(os.fsdecode(src_path))
        if not self.matches(path):
            return
        logger.debug("File %s: %s", kind.value, path)
        if self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self.callback, kind, path)
