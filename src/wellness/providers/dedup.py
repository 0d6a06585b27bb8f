"""Deduplication of provider records on ingest.

The same reading often reaches the store through more than one path (a watch
writes it, the phone app re-exports it, a third-party sync app copies it).
Only exact duplicates are dropped: same kind, same timestamps, same value and
same source.  Readings from different sources are kept, since reconciling
them is the aggregator's job, not the store's.

Dedup keys:
    - samples:   (metric_type, start, end, value, source_id)
    - intervals: (category, label, start, end, source_id)
    - workouts:  (activity_type, start, end, source_id)
"""

from __future__ import annotations

import hashlib
import logging

from src.wellness.base import LabelledInterval, MetricSample, WorkoutSession

logger = logging.getLogger("lifeindex.wellness.providers.dedup")


def sample_key(sample: MetricSample) -> str:
    """Generate a dedup key for a quantity sample.

    Args:
        sample: Raw metric sample.

    Returns:
        Pipe-separated dedup key string.
    """
    return (
        f"sample|{sample.type.value}|{sample.start.isoformat()}|"
        f"{sample.end.isoformat()}|{sample.value!r}|{sample.source_id}"
    )


def interval_key(interval: LabelledInterval) -> str:
    label = interval.label.value if interval.label is not None else "-"
    return (
        f"interval|{interval.category.value}|{label}|{interval.start.isoformat()}|"
        f"{interval.end.isoformat()}|{interval.source_id}"
    )


def workout_key(session: WorkoutSession) -> str:
    return (
        f"workout|{session.activity_type}|{session.start.isoformat()}|"
        f"{session.end.isoformat()}|{session.source_id}"
    )


def content_hash(key: str) -> str:
    """Return a short SHA-256 digest of a dedup key.

    Keeps the seen-set compact when a large export is loaded.
    """
    return hashlib.sha256(key.encode()).hexdigest()[:32]


class InMemoryDedupCache:
    """In-process seen-set for records already ingested into a store.

    Usage::

        cache = InMemoryDedupCache()
        key = sample_key(sample)
        if cache.is_seen(key):
            logger.debug("Skipping duplicate: %s", key)
        else:
            cache.mark_seen(key)
            # store the record
    """

    def __init__(self) -> None:
        self._seen: set[str] = set()

    def is_seen(self, key: str) -> bool:
        return content_hash(key) in self._seen

    def mark_seen(self, key: str) -> None:
        self._seen.add(content_hash(key))

    def check_and_mark(self, key: str) -> bool:
        """Mark a key and return True if it had not been seen before."""
        digest = content_hash(key)
        if digest in self._seen:
            return False
        self._seen.add(digest)
        return True

    def clear(self) -> None:
        """Reset the cache."""
        self._seen.clear()

    def __len__(self) -> int:
        return len(self._seen)
