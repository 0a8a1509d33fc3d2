"""SSE hub fanning watcher changes out to connected clients."""

import asyncio
import contextlib
import functools
import uuid
from collections.abc import AsyncIterator, Callable

import structlog
from sse_starlette import ServerSentEvent

from ocwatch.events.classifier import classify_change
from ocwatch.events.types import (
    ChangePayload,
    ConnectedPayload,
    HeartbeatPayload,
    SseEventName,
    WatcherEvent,
    WatcherEventKind,
)
from ocwatch.events.watcher import WatcherProvider
from ocwatch.snapshot.cache import SnapshotCache
from ocwatch.snapshot.schemas import epoch_ms

logger = structlog.get_logger()

DEFAULT_HEARTBEAT_INTERVAL = 30.0


class Subscriber:
    """One open SSE connection.

    Frames are queued on the connection's event loop. ``abort`` runs the
    registered teardown callbacks exactly once and wakes the stream so
    it can finish.

    Attributes:
        id: Connection identifier.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        queue_size: int = 100,
    ) -> None:
        """Initialize subscriber.

        Args:
            loop: Event loop serving the connection.
            queue_size: Frames buffered before the oldest is dropped.
        """
        self.id = str(uuid.uuid4())
        self._loop = loop
        self._queue: asyncio.Queue[ServerSentEvent | None] = asyncio.Queue(
            maxsize=queue_size,
        )
        self._teardown: list[Callable[[], None]] = []
        self._aborted = False
        self.dropped = 0

    @property
    def aborted(self) -> bool:
        """Whether the connection has been torn down."""
        return self._aborted

    def on_abort(self, callback: Callable[[], None]) -> None:
        """Register a teardown step."""
        self._teardown.append(callback)

    def abort(self) -> None:
        """Tear the connection down. Safe to call repeatedly."""
        if self._aborted:
            return
        self._aborted = True
        for callback in self._teardown:
            try:
                callback()
            except Exception as e:
                logger.error("sse_teardown_error", subscriber_id=self.id, error=str(e))
        self._teardown.clear()
        self._put(None)

    def send(self, frame: ServerSentEvent) -> None:
        """Queue a frame from the loop thread."""
        if not self._aborted:
            self._put(frame)

    def send_threadsafe(self, frame: ServerSentEvent) -> None:
        """Queue a frame from any thread.

        A closed loop means the client is already gone; the frame is
        dropped.
        """
        with contextlib.suppress(RuntimeError):
            self._loop.call_soon_threadsafe(self.send, frame)

    async def next_frame(self) -> ServerSentEvent | None:
        """Wait for the next frame; None once aborted."""
        return await self._queue.get()

    def _put(self, frame: ServerSentEvent | None) -> None:
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull:
            with contextlib.suppress(asyncio.QueueEmpty):
                self._queue.get_nowait()
                self.dropped += 1
            self._queue.put_nowait(frame)


class SseHub:
    """Multiplexes the shared watcher's change stream to SSE clients.

    Every connection gets a ``connected`` frame, a heartbeat every
    ``heartbeat_interval`` seconds, and a typed update frame per watcher
    change carrying the current cached snapshot. The hub never stops the
    watcher; it only adds and removes listeners.

    Attributes:
        heartbeat_interval: Seconds between heartbeat frames.
    """

    def __init__(
        self,
        watchers: WatcherProvider,
        cache: SnapshotCache,
        heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
        queue_size: int = 100,
    ) -> None:
        """Initialize SSE hub.

        Args:
            watchers: Provider of the process-wide watcher.
            cache: Snapshot cache attached to update frames.
            heartbeat_interval: Seconds between heartbeats.
            queue_size: Per-connection frame buffer.
        """
        self._watchers = watchers
        self._cache = cache
        self.heartbeat_interval = heartbeat_interval
        self._queue_size = queue_size
        self._subscribers: dict[str, Subscriber] = {}

    @property
    def active_connections(self) -> int:
        """Number of open SSE connections."""
        return len(self._subscribers)

    async def stream(self) -> AsyncIterator[ServerSentEvent]:
        """Serve one SSE connection until it is aborted.

        Yields:
            ``connected`` first, then heartbeats and update frames.
        """
        loop = asyncio.get_running_loop()
        watcher = self._watchers.acquire()

        subscriber = Subscriber(loop, self._queue_size)
        self._subscribers[subscriber.id] = subscriber
        subscriber.on_abort(lambda: self._subscribers.pop(subscriber.id, None))

        unsubscribe = watcher.subscribe(
            functools.partial(self._on_watcher_event, subscriber),
        )
        subscriber.on_abort(unsubscribe)

        heartbeat = asyncio.create_task(self._heartbeat(subscriber))
        subscriber.on_abort(heartbeat.cancel)

        logger.info(
            "sse_client_connected",
            subscriber_id=subscriber.id,
            active_connections=self.active_connections,
        )

        try:
            yield ServerSentEvent(
                event=SseEventName.CONNECTED.value,
                data=ConnectedPayload(timestamp=epoch_ms()).model_dump_json(),
            )
            while True:
                frame = await subscriber.next_frame()
                if frame is None:
                    return
                yield frame
        finally:
            subscriber.abort()
            logger.info(
                "sse_client_disconnected",
                subscriber_id=subscriber.id,
                dropped_frames=subscriber.dropped,
                active_connections=self.active_connections,
            )

    def close_all(self) -> int:
        """Abort every open connection.

        Returns:
            Number of connections closed.
        """
        subscribers = list(self._subscribers.values())
        for subscriber in subscribers:
            subscriber.abort()
        return len(subscribers)

    async def shutdown(self) -> None:
        """Close all connections and log the shutdown."""
        closed = self.close_all()
        logger.info("sse_hub_shutdown", closed_connections=closed)

    async def _heartbeat(self, subscriber: Subscriber) -> None:
        while not subscriber.aborted:
            await asyncio.sleep(self.heartbeat_interval)
            subscriber.send(
                ServerSentEvent(
                    event=SseEventName.HEARTBEAT.value,
                    data=HeartbeatPayload(timestamp=epoch_ms()).model_dump_json(),
                )
            )

    def _on_watcher_event(self, subscriber: Subscriber, event: WatcherEvent) -> None:
        """Forward a watcher change to one subscriber. Runs on a watcher thread."""
        if event.kind is not WatcherEventKind.CHANGE or event.filename is None:
            return

        entry = self._cache.get_poll_cache()
        payload = ChangePayload(
            filename=event.filename,
            event_type=event.event_type or "",
            timestamp=epoch_ms(),
            poll_data=entry.data if entry is not None else None,
        )
        subscriber.send_threadsafe(
            ServerSentEvent(
                event=classify_change(event.filename).value,
                data=payload.model_dump_json(by_alias=True),
            )
        )
