"""
Filesystem watching: turns project and profile changes into engine requests.

watchdog delivers events on its observer thread. They are handed to the
asyncio loop, debounced per path, and routed to the engine, which is the
only thing that ever touches the artifact tree.
"""

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import Callable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .catalog import PROFILE_SUFFIX, PROJECT_SUFFIX, classify_profile, project_id
from .engine import RegenerationEngine
from .models import (
    RegenerateAll,
    RegenerateForDirtyProfile,
    RegenerateProject,
    SweepProject,
)

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    UPDATE = "update"
    REMOVE = "remove"


# Project events that trigger the stale sweep. Removal is included so that
# deleting a project also deletes everything sliced from it.
SWEEP_EVENT_KINDS = frozenset({EventKind.UPDATE, EventKind.REMOVE})

EventCallback = Callable[[EventKind, Path], None]


class ChangeRouter:
    """Maps change events onto regeneration requests."""

    def __init__(
        self,
        engine: RegenerationEngine,
        projects_dir: Path,
        profiles_dir: Path,
        full_rebuild: bool = False,
    ):
        self.engine = engine
        self.projects_dir = Path(projects_dir)
        self.profiles_dir = Path(profiles_dir)
        self.full_rebuild = full_rebuild

    def on_project_change(self, kind: EventKind, path: Path) -> None:
        project = project_id(self.projects_dir, path)
        if project is None:
            return
        if Path(path).is_relative_to(self.engine.output_dir):
            return
        logger.info("Project %s changed (%s)", project, kind.value)
        if kind in SWEEP_EVENT_KINDS:
            self.engine.submit(SweepProject(project=project))
        if kind == EventKind.UPDATE:
            self.engine.submit(RegenerateProject(project=project))

    def on_profile_change(self, kind: EventKind, path: Path) -> None:
        classified = classify_profile(self.profiles_dir, path)
        if classified is None:
            return
        category, name = classified
        if self.full_rebuild:
            logger.info("Regenerating all in response to %s changing", path)
            self.engine.submit(RegenerateAll())
            return
        logger.info("Regenerating %s profile %s (%s)", category.value, name, kind.value)
        self.engine.submit(RegenerateForDirtyProfile(profile=name))


class Debouncer:
    """
    Coalesces bursts of events per path on the asyncio loop.

    The callback fires once a path has been quiet for ``delay`` seconds,
    with the most recent event kind for that path.
    """

    def __init__(
        self,
        delay: float,
        callback: EventCallback,
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        self.delay = delay
        self.callback = callback
        self._loop = loop
        self._pending: dict[Path, tuple[asyncio.TimerHandle, EventKind]] = {}

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def push(self, kind: EventKind, path: Path) -> None:
        """Record an event. Must be called on the loop thread."""
        previous = self._pending.pop(path, None)
        if previous is not None:
            previous[0].cancel()
        handle = self.loop.call_later(self.delay, self._fire, path)
        self._pending[path] = (handle, kind)

    def push_threadsafe(self, kind: EventKind, path: Path) -> None:
        self.loop.call_soon_threadsafe(self.push, kind, path)

    def flush(self) -> None:
        """Fire every pending event now."""
        for path in list(self._pending):
            self._pending[path][0].cancel()
            self._fire(path)

    def cancel(self) -> None:
        for handle, _ in self._pending.values():
            handle.cancel()
        self._pending.clear()

    def _fire(self, path: Path) -> None:
        entry = self._pending.pop(path, None)
        if entry is None:
            return
        try:
            self.callback(entry[1], path)
        except Exception:
            logger.exception("Handling change to %s failed", path)

    def __len__(self) -> int:
        return len(self._pending)


class SuffixEventHandler(FileSystemEventHandler):
    """watchdog handler forwarding file events with one suffix."""

    def __init__(self, suffix: str, sink: EventCallback):
        super().__init__()
        self.suffix = suffix
        self.sink = sink

    def _forward(self, kind: EventKind, path: str | bytes) -> None:
        if isinstance(path, bytes):
            path = path.decode()
        if path.endswith(self.suffix):
            self.sink(kind, Path(path))

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(EventKind.UPDATE, event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(EventKind.UPDATE, event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(EventKind.REMOVE, event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._forward(EventKind.REMOVE, event.src_path)
        self._forward(EventKind.UPDATE, event.dest_path)


class ChangeWatcher:
    """
    Watches the project root for .3mf files and the profile root for .ini files.

    Usage:
        watcher = ChangeWatcher(router, debounce=0.25)
        await watcher.start()
        ...
        await watcher.stop()
    """

    def __init__(self, router: ChangeRouter, debounce: float = 0.25):
        self.router = router
        self.debounce = debounce
        self._observer: Observer | None = None
        self._project_events: Debouncer | None = None
        self._profile_events: Debouncer | None = None

    async def start(self) -> None:
        if self._observer is not None:
            logger.warning("Watcher already running")
            return
        loop = asyncio.get_running_loop()
        self._project_events = Debouncer(self.debounce, self.router.on_project_change, loop)
        self._profile_events = Debouncer(self.debounce, self.router.on_profile_change, loop)

        self._observer = Observer()
        self._observer.schedule(
            SuffixEventHandler(PROJECT_SUFFIX, self._project_events.push_threadsafe),
            str(self.router.projects_dir),
            recursive=True,
        )
        self._observer.schedule(
            SuffixEventHandler(PROFILE_SUFFIX, self._profile_events.push_threadsafe),
            str(self.router.profiles_dir),
            recursive=True,
        )
        self._observer.start()
        logger.info("Listening for %s files in %s", PROJECT_SUFFIX, self.router.projects_dir)
        logger.info("Listening for %s files in %s", PROFILE_SUFFIX, self.router.profiles_dir)

    async def stop(self) -> None:
        if self._observer is None:
            return
        observer = self._observer
        self._observer = None
        observer.stop()
        await asyncio.to_thread(observer.join, 5.0)
        for debouncer in (self._project_events, self._profile_events):
            if debouncer is not None:
                debouncer.flush()
        logger.info("Stopped watching")
