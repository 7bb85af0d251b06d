"""A thread-safe, TTL-bounded in-memory cache of per-cluster resource data."""

from __future__ import annotations

import copy
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Hashable, Iterable


@dataclass
class ClusterResource:
    """Aggregate resource capacity and usage of one cluster."""

    cluster_id: Any
    timestamp: datetime | None = None
    total_cpu_cores: int = 0
    used_cpu_cores: float = 0.0
    cpu_usage_percent: float = 0.0
    total_memory_bytes: int = 0
    used_memory_bytes: int = 0
    memory_usage_percent: float = 0.0
    total_storage_bytes: int = 0
    used_storage_bytes: int = 0
    storage_usage_percent: float = 0.0

    def _capacity_copy(self) -> ClusterResource:
        """Copy the identity, totals and used amounts only."""
        return ClusterResource(
            cluster_id=self.cluster_id,
            total_cpu_cores=self.total_cpu_cores,
            total_memory_bytes=self.total_memory_bytes,
            total_storage_bytes=self.total_storage_bytes,
            used_cpu_cores=self.used_cpu_cores,
            used_memory_bytes=self.used_memory_bytes,
            used_storage_bytes=self.used_storage_bytes,
        )


def _copy_items(items: Iterable[Any]) -> list[Any]:
    return [copy.copy(item) for item in items]


class MemoryResourceCache:
    """Caches nodes, events and resource totals per cluster for a fixed TTL.

    All three kinds share one timestamp per cluster: storing any of them
    refreshes the validity of the others.
    """

    def __init__(self, ttl: float | timedelta, clock: Callable[[], float] = time.monotonic):
        self._ttl = ttl.total_seconds() if isinstance(ttl, timedelta) else float(ttl)
        self._clock = clock
        self._nodes: dict[Hashable, list[Any]] = {}
        self._events: dict[Hashable, list[Any]] = {}
        self._resources: dict[Hashable, ClusterResource] = {}
        self._last_updated: dict[Hashable, float] = {}
        self._lock = threading.RLock()

    def __contains__(self, cluster_id: Hashable) -> bool:
        with self._lock:
            return cluster_id in self._last_updated

    def _is_valid(self, cluster_id: Hashable) -> bool:
        last = self._last_updated.get(cluster_id)
        return last is not None and self._clock() - last < self._ttl

    def get_nodes(self, cluster_id: Hashable) -> list[Any] | None:
        with self._lock:
            if not self._is_valid(cluster_id):
                return None
            nodes = self._nodes.get(cluster_id)
            return None if nodes is None else _copy_items(nodes)

    def set_nodes(self, cluster_id: Hashable, nodes: Iterable[Any]) -> None:
        with self._lock:
            self._nodes[cluster_id] = _copy_items(nodes)
            self._last_updated[cluster_id] = self._clock()

    def get_events(self, cluster_id: Hashable) -> list[Any] | None:
        with self._lock:
            if not self._is_valid(cluster_id):
                return None
            events = self._events.get(cluster_id)
            return None if events is None else _copy_items(events)

    def set_events(self, cluster_id: Hashable, events: Iterable[Any]) -> None:
        with self._lock:
            self._events[cluster_id] = _copy_items(events)
            self._last_updated[cluster_id] = self._clock()

    def get_cluster_resources(self, cluster_id: Hashable) -> ClusterResource | None:
        with self._lock:
            if not self._is_valid(cluster_id):
                return None
            resources = self._resources.get(cluster_id)
            return None if resources is None else resources._capacity_copy()

    def set_cluster_resources(self, cluster_id: Hashable, resources: ClusterResource) -> None:
        with self._lock:
            self._resources[cluster_id] = resources._capacity_copy()
            self._last_updated[cluster_id] = self._clock()

    def _drop(self, cluster_id: Hashable) -> None:
        self._nodes.pop(cluster_id, None)
        self._events.pop(cluster_id, None)
        self._resources.pop(cluster_id, None)
        self._last_updated.pop(cluster_id, None)

    def invalidate_cluster(self, cluster_id: Hashable) -> None:
        with self._lock:
            self._drop(cluster_id)

    def cleanup_expired(self) -> None:
        """Remove every cluster whose entry is older than the TTL."""
        with self._lock:
            now = self._clock()
            expired = [cid for cid, last in self._last_updated.items() if now - last > self._ttl]
            for cluster_id in expired:
                self._drop(cluster_id)