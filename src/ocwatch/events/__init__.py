"""Events subsystem for filesystem monitoring and SSE broadcasting."""
from ocwatch.events.classifier import classify_change
from ocwatch.events.hub import SseHub, Subscriber
from ocwatch.events.types import SseEventName, WatcherEvent, WatcherEventKind
from ocwatch.events.watcher import Watcher, WatcherProvider, create_watcher

__all__ = [
    "SseEventName",
    "SseHub",
    "Subscriber",
    "Watcher",
    "WatcherEvent",
    "WatcherEventKind",
    "WatcherProvider",
    "classify_change",
    "create_watcher",
]
