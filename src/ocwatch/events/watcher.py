"""Rename-tolerant filesystem watcher with a shared trailing debounce."""

import contextlib
import threading
from collections.abc import Callable, Mapping
from pathlib import Path

import structlog
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver, ObservedWatch

from ocwatch.events.types import WatcherEvent, WatcherEventKind
from ocwatch.storage.paths import (
    db_path,
    default_storage_path,
    plan_path,
    wal_path,
)

logger = structlog.get_logger()

WatcherListener = Callable[[WatcherEvent], None]

# Read-only access (including our own snapshot loader) must not count as a change.
IGNORED_EVENT_TYPES: frozenset[str] = frozenset({"opened", "closed_no_write"})

DEFAULT_DEBOUNCE_MS = 100
DEFAULT_REBIND_INTERVAL = 1.0


def _decode_path(raw: str | bytes) -> str:
    if isinstance(raw, str):
        return raw
    return bytes(raw).decode("utf-8", errors="replace")


def _file_identity(path: Path) -> tuple[int, int] | None:
    try:
        st = path.stat()
    except FileNotFoundError:
        return None
    return st.st_dev, st.st_ino


class WatchTarget:
    """One logical resource under watch.

    Holds the exclusively owned watch handle. ``bound_path`` is None
    exactly when ``handle`` is None.

    Attributes:
        name: Logical target name.
        recursive: Whether the OS watch covers subdirectories.
    """

    recursive = False

    def __init__(self, name: str) -> None:
        self.name = name
        self.bound_path: Path | None = None
        self.handle: ObservedWatch | None = None
        self.identity: tuple[int, int] | None = None

    def preferred_path(self) -> Path:
        raise NotImplementedError

    def report(self, path: Path) -> str | None:
        """Map a raw event path to the reported filename, or None to drop it."""
        return path.name


class DatabaseTarget(WatchTarget):
    """The session database, preferring its WAL when one exists."""

    def __init__(self, storage_path: Path) -> None:
        super().__init__("db")
        self.db_path = db_path(storage_path)
        self.wal_path = wal_path(storage_path)

    def preferred_path(self) -> Path:
        if self.wal_path.exists():
            return self.wal_path
        return self.db_path


class PlanTarget(WatchTarget):
    """The plan file, or its directory until the file is created."""

    def __init__(self, project_path: Path) -> None:
        super().__init__("plan")
        self.plan_path = plan_path(project_path)

    def preferred_path(self) -> Path:
        if self.plan_path.exists():
            return self.plan_path
        return self.plan_path.parent

    def report(self, path: Path) -> str | None:
        if path.name != self.plan_path.name:
            return None
        return path.name


class TreeTarget(WatchTarget):
    """A storage directory watched recursively, filtered by file suffix.

    Reported filenames are relative to the directory and prefixed with
    the target name, e.g. ``message/ses_1/msg_2.json``.
    """

    recursive = True

    def __init__(self, name: str, root: Path, suffix: str = ".json") -> None:
        super().__init__(name)
        self.root = root
        self.suffix = suffix

    def preferred_path(self) -> Path:
        return self.root

    def report(self, path: Path) -> str | None:
        if not path.name.endswith(self.suffix):
            return None
        try:
            relative = path.relative_to(self.root)
        except ValueError:
            return None
        return f"{self.name}/{relative.as_posix()}"


class TargetEventHandler(FileSystemEventHandler):
    """Forwards raw notifications for one target to the watcher."""

    def __init__(self, watcher: "Watcher", target: WatchTarget) -> None:
        super().__init__()
        self._watcher = watcher
        self._target = target

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type in IGNORED_EVENT_TYPES:
            return
        if event.is_directory and not isinstance(self._target, PlanTarget):
            return

        candidates = [_decode_path(event.src_path)]
        dest_path = getattr(event, "dest_path", "")
        if dest_path:
            candidates.append(_decode_path(dest_path))

        for raw in reversed(candidates):
            filename = self._target.report(Path(raw))
            if filename is not None:
                self._watcher.notify(self._target.name, event.event_type, filename)
                return


class Watcher:
    """Watches the database and plan targets and emits debounced changes.

    Every raw notification restarts one shared debounce timer; when it
    fires, a single ``change`` event carrying the last observed
    ``(event_type, filename)`` is delivered to listeners. A background
    worker rebinds targets whose preferred path moved, once per
    ``rebind_interval`` and immediately after any raw notification.

    Attributes:
        debounce_ms: Debounce window in milliseconds.
        rebind_interval: Seconds between periodic rebind checks.
    """

    def __init__(
        self,
        storage_path: Path | None = None,
        project_path: Path | None = None,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        rebind_interval: float = DEFAULT_REBIND_INTERVAL,
        tree_paths: Mapping[str, Path] | None = None,
        tree_suffix: str = ".json",
    ) -> None:
        """Initialize watcher.

        Args:
            storage_path: Base storage path; database paths derive from it.
            project_path: Project root; the plan file path derives from it.
            debounce_ms: Debounce window in milliseconds.
            rebind_interval: Seconds between periodic rebind checks.
            tree_paths: Optional storage directories to watch recursively.
            tree_suffix: Only files with this suffix are reported from trees.
        """
        storage = storage_path if storage_path is not None else default_storage_path()
        project = project_path if project_path is not None else Path.cwd()

        self.debounce_ms = debounce_ms
        self.rebind_interval = rebind_interval

        targets: list[WatchTarget] = [DatabaseTarget(storage), PlanTarget(project)]
        for name, root in (tree_paths or {}).items():
            targets.append(TreeTarget(name, root, tree_suffix))
        self._targets: dict[str, WatchTarget] = {t.name: t for t in targets}

        self._lock = threading.Lock()
        self._running = False
        self._observer: BaseObserver | None = None
        self._debounce_timer: threading.Timer | None = None
        self._debounce_generation = 0
        self._pending: WatcherEvent | None = None

        self._rebind_thread: threading.Thread | None = None
        self._rebind_requested = threading.Event()
        self._stopping = threading.Event()

        self._listeners: list[WatcherListener] = []
        self._listeners_lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        """Whether the watcher is started."""
        return self._running

    @property
    def bound_paths(self) -> dict[str, Path | None]:
        """Currently bound path per target (None when unwatched)."""
        return {name: target.bound_path for name, target in self._targets.items()}

    @property
    def listener_count(self) -> int:
        """Number of registered listeners."""
        with self._listeners_lock:
            return len(self._listeners)

    def subscribe(self, listener: WatcherListener) -> Callable[[], None]:
        """Register a listener for all watcher events.

        Args:
            listener: Called with every emitted event, on a watcher thread.

        Returns:
            Idempotent function that removes the listener.
        """
        with self._listeners_lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._listeners_lock, contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: WatcherEvent) -> None:
        """Deliver an event to every listener in registration order.

        Args:
            event: Event to deliver.
        """
        with self._listeners_lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error(
                    "watcher_listener_error",
                    kind=event.kind.value,
                    error=str(e),
                )

    def start(self) -> None:
        """Bind all targets and begin emitting events.

        Idempotent. Missing paths are left unwatched until a later rebind
        finds them. Any other failure while binding is reported through an
        ``error`` event and leaves the watcher stopped.
        """
        with self._lock:
            if self._running:
                return
            self._running = True

        self._stopping.clear()
        self._rebind_requested.clear()

        try:
            observer = Observer()
            observer.start()
            self._observer = observer
            for target in self._targets.values():
                self._bind(target)
        except Exception as e:
            logger.error("watcher_start_failed", error=str(e))
            self._close_handles()
            with self._lock:
                self._running = False
            self.emit(WatcherEvent(kind=WatcherEventKind.ERROR, error=str(e)))
            return

        self._rebind_thread = threading.Thread(
            target=self._rebind_loop,
            name="ocwatch-rebind",
            daemon=True,
        )
        self._rebind_thread.start()

        logger.info(
            "watcher_started",
            bound={k: str(v) if v else None for k, v in self.bound_paths.items()},
            debounce_ms=self.debounce_ms,
        )
        self.emit(WatcherEvent(kind=WatcherEventKind.STARTED))

    def stop(self) -> None:
        """Cancel timers, close every watch handle and emit ``stopped``.

        Idempotent.
        """
        with self._lock:
            if not self._running:
                return
            self._running = False
            self._debounce_generation += 1
            if self._debounce_timer is not None:
                self._debounce_timer.cancel()
                self._debounce_timer = None
            self._pending = None

        self._stopping.set()
        self._rebind_requested.set()
        if self._rebind_thread is not None:
            self._rebind_thread.join(timeout=5.0)
            self._rebind_thread = None

        self._close_handles()

        logger.info("watcher_stopped")
        self.emit(WatcherEvent(kind=WatcherEventKind.STOPPED))

    def notify(self, target_name: str, event_type: str, filename: str) -> None:
        """Record a raw notification and restart the debounce window.

        Args:
            target_name: Target that observed the notification.
            event_type: Raw filesystem event type.
            filename: Reported filename.
        """
        with self._lock:
            if not self._running:
                return
            self._pending = WatcherEvent.change(event_type, filename)
            if self._debounce_timer is not None:
                self._debounce_timer.cancel()
            self._debounce_generation += 1
            timer = threading.Timer(
                self.debounce_ms / 1000.0,
                self._flush,
                args=(self._debounce_generation,),
            )
            timer.daemon = True
            self._debounce_timer = timer
            timer.start()

        logger.debug(
            "watcher_raw_event",
            target=target_name,
            event_type=event_type,
            filename=filename,
        )
        self._rebind_requested.set()

    def _flush(self, generation: int) -> None:
        with self._lock:
            if generation != self._debounce_generation or not self._running:
                return
            event = self._pending
            self._pending = None
            self._debounce_timer = None

        if event is not None:
            logger.debug("watcher_emit", event_type=event.event_type, filename=event.filename)
            self.emit(event)

    def _rebind_loop(self) -> None:
        while not self._stopping.is_set():
            self._rebind_requested.wait(self.rebind_interval)
            self._rebind_requested.clear()
            if self._stopping.is_set():
                return
            for target in self._targets.values():
                try:
                    self._bind(target)
                except OSError as e:
                    logger.warning(
                        "watcher_rebind_failed",
                        target=target.name,
                        error=str(e),
                    )

    def _bind(self, target: WatchTarget) -> None:
        """Point the target's handle at its preferred path if it moved.

        Raises:
            OSError: For failures other than the path not existing.
        """
        preferred = target.preferred_path()
        identity = _file_identity(preferred)

        if (
            target.handle is not None
            and target.bound_path == preferred
            and target.identity == identity
        ):
            return

        if target.handle is not None:
            logger.info(
                "watcher_rebind",
                target=target.name,
                old_path=str(target.bound_path),
                new_path=str(preferred),
            )
            self._unbind(target)

        if identity is None or self._observer is None:
            return

        handler = TargetEventHandler(self, target)
        try:
            handle = self._observer.schedule(
                handler,
                str(preferred),
                recursive=target.recursive,
            )
        except FileNotFoundError:
            return

        target.handle = handle
        target.bound_path = preferred
        target.identity = identity
        logger.debug("watcher_bound", target=target.name, path=str(preferred))

    def _unbind(self, target: WatchTarget) -> None:
        handle = target.handle
        target.handle = None
        target.bound_path = None
        target.identity = None
        if handle is not None and self._observer is not None:
            with contextlib.suppress(KeyError):
                self._observer.unschedule(handle)
            logger.debug("watcher_unbound", target=target.name)

    def _close_handles(self) -> None:
        for target in self._targets.values():
            self._unbind(target)

        observer = self._observer
        self._observer = None
        if observer is not None:
            observer.stop()
            observer.join(timeout=5.0)


class WatcherProvider:
    """Owns the single process-wide watcher shared by every SSE connection."""

    def __init__(self, factory: Callable[[], Watcher]) -> None:
        """Initialize provider.

        Args:
            factory: Builds the watcher on first acquisition.
        """
        self._factory = factory
        self._watcher: Watcher | None = None
        self._lock = threading.Lock()

    @property
    def current(self) -> Watcher | None:
        """The watcher, if one has been acquired."""
        return self._watcher

    def acquire(self) -> Watcher:
        """Return the shared watcher, creating and starting it on first use."""
        with self._lock:
            if self._watcher is None:
                watcher = self._factory()
                watcher.start()
                self._watcher = watcher
            return self._watcher

    def shutdown(self) -> None:
        """Stop the shared watcher for orderly process exit."""
        with self._lock:
            watcher = self._watcher
            self._watcher = None
        if watcher is not None:
            watcher.stop()


def create_watcher(
    storage_path: Path | None = None,
    project_path: Path | None = None,
) -> Watcher:
    """Build a watcher with default debounce and rebind settings."""
    return Watcher(storage_path=storage_path, project_path=project_path)
