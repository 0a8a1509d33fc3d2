"""Mapping of changed filenames to outward SSE event names."""
from ocwatch.events.types import SseEventName

# First match wins.
CLASSIFICATION_RULES: tuple[tuple[str, SseEventName], ...] = (
    ("message", SseEventName.MESSAGE_UPDATE),
    ("part", SseEventName.PART_UPDATE),
    ("boulder", SseEventName.PLAN_UPDATE),
)


def classify_change(filename: str) -> SseEventName:
    """Determine the SSE event name for a changed file.

    Args:
        filename: Filename reported by the watcher.

    Returns:
        The first matching rule's event name, or ``session-update``.
    """
    for needle, event_name in CLASSIFICATION_RULES:
        if needle in filename:
            return event_name
    return SseEventName.SESSION_UPDATE
