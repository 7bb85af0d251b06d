"""Periodic health checks of active clusters, recorded in the cluster state store."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_CHECK_INTERVAL = 5 * 60.0
DEFAULT_MAX_CONCURRENCY = 10
STATUS_DISCONNECTED = "disconnected"


def failure_state_update(error_message: str, now: datetime | None = None) -> dict[str, Any]:
    """State fields written when a cluster cannot be checked: its data is cleared."""
    now = now or datetime.now()
    return {
        "status": STATUS_DISCONNECTED,
        "node_count": 0,
        "kubernetes_version": "",
        "api_server_url": "",
        "last_heartbeat_at": None,
        "last_sync_at": now,
        "sync_success": False,
        "sync_error": error_message,
        "updated_at": now,
    }


def success_state_update(result: Any, now: datetime | None = None) -> dict[str, Any]:
    """State fields written from a successful health check result."""
    now = now or datetime.now()
    return {
        "status": result.status,
        "node_count": result.node_count,
        "kubernetes_version": result.version,
        "api_server_url": result.api_server_url,
        "last_heartbeat_at": result.last_heartbeat_at,
        "last_sync_at": now,
        "sync_success": True,
        "sync_error": "",
        "updated_at": now,
    }


class HealthCheckWorker:
    """Checks every active cluster on a schedule, a bounded number at a time.

    ``cluster_repo`` provides ``find_active_clusters()`` and ``get_by_id``;
    clusters have ``id``, ``name`` and ``kubeconfig_encrypted``.
    ``state_repo.update_state(cluster_id, fields)`` applies the fields in one
    transaction. ``encryption_service`` provides ``decrypt``;
    ``cluster_manager`` provides ``get_client(kubeconfig)`` and
    ``health_check(client)``, whose result has ``status``, ``node_count``,
    ``version``, ``api_server_url`` and ``last_heartbeat_at``.
    """

    def __init__(
        self,
        cluster_repo: Any,
        state_repo: Any,
        cluster_manager: Any,
        encryption_service: Any,
        check_interval: float = DEFAULT_CHECK_INTERVAL,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ):
        self.cluster_repo = cluster_repo
        self.state_repo = state_repo
        self.cluster_manager = cluster_manager
        self.encryption_service = encryption_service
        self.check_interval = check_interval
        self.max_concurrency = max_concurrency
        self._executor = ThreadPoolExecutor(
            max_workers=max_concurrency, thread_name_prefix="health-check"
        )
        self._stop = threading.Event()
        self._scheduler: threading.Thread | None = None

    def start(self) -> None:
        """Check all clusters now, then again every interval."""
        logger.info("Starting health check worker...")
        self._stop.clear()
        self.perform_health_check()
        self._scheduler = threading.Thread(target=self._run, name="health-scheduler", daemon=True)
        self._scheduler.start()

    def stop(self) -> None:
        """Stop the schedule and wait for running checks."""
        logger.info("Stopping health check worker...")
        self._stop.set()
        if self._scheduler is not None:
            self._scheduler.join()
            self._scheduler = None
        self._executor.shutdown(wait=True)

    def _run(self) -> None:
        while not self._stop.wait(self.check_interval):
            self.perform_health_check()

    def perform_health_check(self) -> list[Future]:
        """Queue a check of every active cluster; returns one future per cluster."""
        logger.info("Starting scheduled health check...")
        try:
            clusters = list(self.cluster_repo.find_active_clusters())
        except Exception as exc:
            logger.error("Failed to fetch clusters: %s", exc)
            return []
        logger.info("Found %d active clusters", len(clusters))
        return [self._executor.submit(self.check_cluster, cluster) for cluster in clusters]

    def check_cluster(self, cluster: Any) -> bool:
        """Check one cluster and record the outcome; returns whether it was reachable."""
        logger.info("[HEALTH-CHECK] Starting check for cluster %s (ID: %s)", cluster.name, cluster.id)
        try:
            kubeconfig = self.encryption_service.decrypt(cluster.kubeconfig_encrypted)
        except Exception as exc:
            logger.error(
                "[HEALTH-CHECK] Failed to decrypt kubeconfig for cluster %s (ID: %s): %s",
                cluster.name,
                cluster.id,
                exc,
            )
            self._update(cluster.id, failure_state_update(str(exc)))
            return False

        try:
            client = self.cluster_manager.get_client(kubeconfig)
        except Exception as exc:
            logger.error("Failed to get client for cluster %s: %s", cluster.name, exc)
            self._update(cluster.id, failure_state_update(str(exc)))
            return False

        try:
            result = self.cluster_manager.health_check(client)
        except Exception as exc:
            logger.error("Health check failed for cluster %s: %s", cluster.name, exc)
            self._update(cluster.id, failure_state_update(str(exc)))
            return False

        if result is not None:
            self._update(cluster.id, success_state_update(result))
            logger.info("Health check completed for cluster %s: %s", cluster.name, result.status)
        return True

    def _update(self, cluster_id: Any, fields: dict[str, Any]) -> None:
        try:
            self.state_repo.update_state(cluster_id, fields)
        except Exception as exc:
            logger.error("Failed to update cluster state for %s: %s", cluster_id, exc)

    def trigger_sync(self, cluster_id: Any) -> Future:
        """Check one cluster by id in the background."""

        def run() -> bool:
            try:
                cluster = self.cluster_repo.get_by_id(str(cluster_id))
            except Exception as exc:
                logger.error("Failed to get cluster for sync: %s", exc)
                return False
            return self.check_cluster(cluster)

        return self._executor.submit(run)