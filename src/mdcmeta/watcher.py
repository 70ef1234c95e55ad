"""File-change notifications for local metadata files, backed by watchdog.

watchdog delivers events on its observer thread; they are handed to the
asyncio loop with ``call_soon_threadsafe`` so listeners always run on the
loop that owns the metadata cache.
"""

from __future__ import annotations

import asyncio
import fnmatch
import functools
import glob
import os
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import structlog
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from mdcmeta.events import Subscription

if TYPE_CHECKING:
    from collections.abc import Callable

log = structlog.get_logger()


class FileWatcher(Protocol):
    def watch(
        self, root: Path, pattern: str, callback: Callable[[str], None]
    ) -> Subscription: ...


def watch_base(root: Path, pattern: str) -> Path:
    """Deepest directory of ``pattern`` that contains no glob characters."""
    base = root
    parts = Path(pattern).parts
    for part in parts[:-1]:
        if glob.has_magic(part):
            break
        base = base / part
    return base


def matches_pattern(path: Path, root: Path, pattern: str) -> bool:
    """Whether ``path`` matches ``pattern`` relative to ``root``.

    ``**/`` also matches zero directories, as in the metadata lookup.
    """
    if os.path.isabs(pattern):
        candidate = path.as_posix()
        pattern = Path(pattern).as_posix()
    else:
        try:
            candidate = path.relative_to(root).as_posix()
        except ValueError:
            return False
    if fnmatch.fnmatch(candidate, pattern):
        return True
    return pattern.startswith("**/") and fnmatch.fnmatch(candidate, pattern[3:])


class _PatternHandler(FileSystemEventHandler):
    def __init__(
        self,
        root: Path,
        pattern: str,
        loop: asyncio.AbstractEventLoop,
        callback: Callable[[str], None],
    ) -> None:
        super().__init__()
        self._root = root
        self._pattern = pattern
        self._loop = loop
        self._callback = callback

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type in ("opened", "closed_no_write"):
            return
        paths = [event.src_path, getattr(event, "dest_path", "")]
        for raw in paths:
            if not raw:
                continue
            path = Path(os.fsdecode(raw)).resolve()
            if matches_pattern(path, self._root, self._pattern):
                self._loop.call_soon_threadsafe(self._callback, str(path))
                return


class WatchdogFileWatcher:
    """Watches files matching a glob under a workspace root."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def watch(self, root: Path, pattern: str, callback: Callable[[str], None]) -> Subscription:
        loop = self._loop or asyncio.get_running_loop()
        root = root.expanduser().resolve()
        base = watch_base(root, pattern)
        if not base.is_dir():
            log.debug("metadata_watch_skipped", directory=str(base), pattern=pattern)
            return Subscription(lambda: None)

        observer = Observer()
        observer.schedule(_PatternHandler(root, pattern, loop, callback), str(base), recursive=True)
        observer.daemon = True
        observer.start()
        log.debug("metadata_watch_started", directory=str(base), pattern=pattern)

        def stop() -> None:
            observer.stop()
            # Join off the loop thread.
            if not loop.is_closed():
                loop.run_in_executor(None, functools.partial(observer.join, timeout=5))
            log.debug("metadata_watch_stopped", directory=str(base), pattern=pattern)

        return Subscription(stop)
