"""
File watcher for monitoring changes under the served root.

This module provides:
- Recursive filesystem monitoring via watchdog
- Burst debouncing of raw events into a single "changed" notification
- Listener registration for components that react to changes
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Iterable, List, Optional, Set, Union

from watchdog.events import (
    EVENT_TYPE_CLOSED,
    EVENT_TYPE_CLOSED_NO_WRITE,
    EVENT_TYPE_OPENED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .constants import ServerConstants
from .utils.debouncer import BurstDebouncer


logger = logging.getLogger(__name__)

# Reported for reads as well as writes; a write also yields "modified"
ACCESS_EVENT_TYPES = frozenset({EVENT_TYPE_OPENED, EVENT_TYPE_CLOSED, EVENT_TYPE_CLOSED_NO_WRITE})


class _RawEventForwarder(FileSystemEventHandler):
    """
    Forwards every content-changing watchdog event to the watcher's event loop.

    watchdog dispatches on its observer thread, so events are handed over
    with call_soon_threadsafe and processed on the loop thread. Open/close
    notifications are skipped since reading a file (including serving it)
    produces them too.
    """

    def __init__(self, watcher: "ChangeWatcher", loop: asyncio.AbstractEventLoop):
        self.watcher = watcher
        self.loop = loop

    def on_any_event(self, event: FileSystemEvent) -> None:
        """Handle any file system event."""
        if event.event_type in ACCESS_EVENT_TYPES:
            return

        paths = [event.src_path]
        dest_path = getattr(event, "dest_path", "")
        if dest_path:
            paths.append(dest_path)

        try:
            self.loop.call_soon_threadsafe(self.watcher.record_event, event.event_type, paths)
        except RuntimeError:
            # Loop already closed during shutdown
            pass


class ChangeWatcher:
    """
    Watches directories and emits one notification per burst of changes.

    Usage:
        def on_change():
            print("Something changed")

        watcher = ChangeWatcher(["/path/to/site"])
        watcher.add_listener(on_change)
        watcher.start()

        # Later...
        watcher.stop()
    """

    def __init__(
        self,
        directories: Iterable[Union[str, Path]],
        minimum_delay: float = ServerConstants.DEBOUNCE_DELAY_SECONDS,
        abort_event: Optional[asyncio.Event] = None,
    ):
        """
        Initialize the change watcher.

        Args:
            directories: Directories to monitor recursively
            minimum_delay: Quiet period (seconds) before notifying
            abort_event: Optional event that stops monitoring once set
        """
        self.directories: List[Path] = [Path(d) for d in directories]
        self.minimum_delay = minimum_delay
        self.abort_event = abort_event
        self.active = False
        self.observer: Optional[Observer] = None
        self._listeners: List[Callable[[], Any]] = []
        self._tasks: Set[asyncio.Task] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._debouncer = BurstDebouncer(delay=minimum_delay, callback=self._notify)
        self._abort_task: Optional[asyncio.Task] = None
        self._started = False
        self._stopped = False

    def add_listener(self, callback: Callable[[], Any]) -> None:
        """
        Subscribe to change notifications.

        Args:
            callback: Function or coroutine function taking no arguments
        """
        self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[], Any]) -> None:
        """Unsubscribe a previously added callback."""
        if callback in self._listeners:
            self._listeners.remove(callback)

    @property
    def pending_count(self) -> int:
        """Number of raw events still inside their debounce window."""
        return self._debouncer.pending_count

    def start(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> "ChangeWatcher":
        """
        Start watching for file changes.

        Only the first call activates the watcher; later calls are no-ops.

        Args:
            loop: Event loop receiving raw events (default: running loop)

        Returns:
            self
        """
        if not self._started:
            if not self.directories:
                raise RuntimeError("No directories to watch")

            for directory in self.directories:
                if not directory.exists():
                    raise FileNotFoundError(f"Path does not exist: {directory}")

            self._loop = loop or asyncio.get_running_loop()
            self._debouncer.loop = self._loop
            self._started = True
            self.active = True

            handler = _RawEventForwarder(self, self._loop)
            self.observer = Observer()
            for directory in self.directories:
                self.observer.schedule(handler, str(directory), recursive=True)
            self.observer.start()

            if self.abort_event is not None:
                self._abort_task = self._loop.create_task(self._wait_for_abort())

        logger.info(f"Watch: monitoring {';'.join(str(d) for d in self.directories)}")
        return self

    async def _wait_for_abort(self) -> None:
        await self.abort_event.wait()
        logger.info("Watch: aborting...")
        self._abort_task = None
        await self.aclose()

    def record_event(self, kind: str, paths: List[str]) -> None:
        """
        Ingest one raw filesystem event.

        Must run on the loop thread. Every event extends the current burst;
        events still in flight when stop() runs are ignored.

        Args:
            kind: Event type reported by the monitor (e.g. "modified")
            paths: Paths affected by the event
        """
        if self._stopped:
            return

        logger.info(f"Watch: {kind} for {';'.join(paths)}")
        self._debouncer.trigger()

    def _notify(self) -> None:
        logger.info("Watch: notifying...")
        for callback in list(self._listeners):
            try:
                result = callback()
            except Exception as e:
                logger.error(f"Error in change listener: {e}")
                continue

            if asyncio.iscoroutine(result):
                loop = self._loop or asyncio.get_running_loop()
                task = loop.create_task(result)
                self._tasks.add(task)
                task.add_done_callback(self._on_listener_done)

    def _on_listener_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Error in change listener: {exc}")

    def _halt(self) -> Optional[Observer]:
        """Deactivate and signal the observer; return it for joining."""
        self.active = False
        self._stopped = True
        self._debouncer.cancel()

        if self._abort_task is not None:
            self._abort_task.cancel()
            self._abort_task = None

        observer, self.observer = self.observer, None
        if observer is not None:
            observer.stop()
        return observer

    def stop(self) -> None:
        """Stop watching for file changes."""
        observer = self._halt()
        if observer is not None:
            if observer.is_alive():
                observer.join()
            logger.info("Watch: stopped")

    async def aclose(self) -> None:
        """Stop watching, joining the observer thread off the event loop."""
        observer = self._halt()
        if observer is not None:
            if observer.is_alive():
                await asyncio.to_thread(observer.join)
            logger.info("Watch: stopped")

    def is_active(self) -> bool:
        """Check if the watcher is currently monitoring."""
        return self.active

    def __enter__(self):
        """Context manager support."""
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager support."""
        self.stop()
