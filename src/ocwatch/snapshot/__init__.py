"""Snapshot schemas and the conditional-GET cache."""
from ocwatch.snapshot.cache import (
    CacheEntry,
    SnapshotCache,
    build_snapshot,
    fingerprint,
    matches_if_none_match,
)
from ocwatch.snapshot.schemas import PlanProgress, PlanTask, Session, Snapshot

__all__ = [
    "CacheEntry",
    "PlanProgress",
    "PlanTask",
    "Session",
    "Snapshot",
    "SnapshotCache",
    "build_snapshot",
    "fingerprint",
    "matches_if_none_match",
]
