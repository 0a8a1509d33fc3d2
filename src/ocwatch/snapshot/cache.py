"""TTL-bound snapshot cache with deterministic ETag fingerprints."""
import asyncio
import hashlib
import inspect
import json
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass

import structlog
from starlette.concurrency import run_in_threadpool

from ocwatch.snapshot.schemas import PlanProgress, Session, Snapshot, epoch_ms

logger = structlog.get_logger()

RECENT_WINDOW_MS = 24 * 60 * 60 * 1000
MAX_SESSIONS = 20
DEFAULT_TTL = 2.0

SIGNIFICANT_FIELDS: frozenset[str] = frozenset(
    {"sessions", "active_session", "plan_progress"}
)

SnapshotLoader = Callable[[], Snapshot | Awaitable[Snapshot]]


def build_snapshot(
    sessions: Iterable[Session],
    active_session: Session | None = None,
    plan_progress: PlanProgress | None = None,
    now_ms: int | None = None,
) -> Snapshot:
    """Assemble a snapshot from loader output.

    Keeps sessions updated within the last 24 hours, newest first (ties
    keep their input order), at most ``MAX_SESSIONS`` of them.

    Args:
        sessions: Candidate sessions in any order.
        active_session: Session to highlight, if any.
        plan_progress: Progress of the active plan, if any.
        now_ms: Reference time in epoch milliseconds; defaults to now.

    Returns:
        Snapshot stamped with ``now_ms`` as its ``last_update``.
    """
    now = now_ms if now_ms is not None else epoch_ms()
    cutoff = now - RECENT_WINDOW_MS

    recent = [s for s in sessions if s.updated_at.timestamp() * 1000 >= cutoff]
    recent.sort(key=lambda s: s.updated_at, reverse=True)

    return Snapshot(
        sessions=recent[:MAX_SESSIONS],
        active_session=active_session,
        plan_progress=plan_progress,
        last_update=now,
    )


def fingerprint(snapshot: Snapshot) -> str:
    """Compute the ETag of a snapshot.

    Only sessions, the active session and plan progress contribute, so
    two snapshots differing only in ``last_update`` share an ETag.

    Args:
        snapshot: Snapshot to hash.

    Returns:
        Double-quoted first 16 hex characters of a SHA-256 digest.
    """
    significant = snapshot.model_dump(
        mode="json",
        by_alias=True,
        include=set(SIGNIFICANT_FIELDS),
    )
    canonical = json.dumps(significant, sort_keys=True, separators=(",", ":"))
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return f'"{digest[:16]}"'


def matches_if_none_match(header: str | None, etag: str) -> bool:
    """Check an ``If-None-Match`` value against the current ETag.

    Args:
        header: Raw header value, or None when absent.
        etag: Current quoted ETag.

    Returns:
        True when the stripped header equals the ETag exactly.
    """
    if header is None:
        return False
    return header.strip() == etag


@dataclass(frozen=True)
class CacheEntry:
    """Cached snapshot with its fingerprint.

    Attributes:
        data: The snapshot.
        fingerprint: Quoted ETag of ``data``.
        fetched_at: Monotonic clock reading when ``data`` was produced.
    """

    data: Snapshot
    fingerprint: str
    fetched_at: float


class SnapshotCache:
    """Time-bound cache in front of an expensive snapshot loader.

    The entry is replaced as a whole on refresh, so concurrent readers
    always see a complete entry. Concurrent refreshes are collapsed into
    one loader call, so the loader runs at most once per TTL window.

    Attributes:
        ttl: Seconds an entry stays fresh.
    """

    def __init__(
        self,
        loader: SnapshotLoader,
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize snapshot cache.

        Args:
            loader: Produces a snapshot; may be sync (run in a worker
                thread) or async.
            ttl: Seconds an entry stays fresh.
            clock: Monotonic time source.
        """
        self._loader = loader
        self.ttl = ttl
        self._clock = clock
        self._entry: CacheEntry | None = None
        self._in_flight: asyncio.Task[CacheEntry] | None = None

    def get_poll_cache(self) -> CacheEntry | None:
        """Current entry, or None before the first successful poll."""
        return self._entry

    def is_fresh(self, entry: CacheEntry) -> bool:
        """Whether an entry is younger than the TTL."""
        return self._clock() - entry.fetched_at < self.ttl

    async def poll(self) -> CacheEntry:
        """Return a fresh entry, reloading if absent or stale.

        Returns:
            The current cache entry.

        Raises:
            Exception: Whatever the loader raised.
        """
        entry = self._entry
        if entry is not None and self.is_fresh(entry):
            return entry

        task = self._in_flight
        if task is None:
            task = asyncio.create_task(self._refresh())
            self._in_flight = task

        return await asyncio.shield(task)

    async def _refresh(self) -> CacheEntry:
        try:
            result = await self._load()
            entry = CacheEntry(
                data=result,
                fingerprint=fingerprint(result),
                fetched_at=self._clock(),
            )
            self._entry = entry
            logger.debug(
                "poll_cache_refreshed",
                etag=entry.fingerprint,
                sessions=len(result.sessions),
            )
            return entry
        except Exception as e:
            logger.error("snapshot_failed", error=str(e))
            raise
        finally:
            if self._in_flight is asyncio.current_task():
                self._in_flight = None

    async def _load(self) -> Snapshot:
        if inspect.iscoroutinefunction(self._loader):
            return await self._loader()
        result = await run_in_threadpool(self._loader)
        if inspect.isawaitable(result):
            return await result
        return result
