"""Cluster topology grouped by environment type."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

DEFAULT_ENVIRONMENT = "production"
HEALTHY = "healthy"


@dataclass
class ClusterInfo:
    id: str
    name: str
    status: str
    node_count: int = 0
    version: str = ""


@dataclass
class EnvironmentInfo:
    type: str
    count: int
    clusters: list[ClusterInfo]
    total_node_count: int
    healthy_clusters: int
    unhealthy_clusters: int


@dataclass
class TopologySummary:
    total_clusters: int = 0
    total_environments: int = 0
    total_nodes: int = 0
    healthy_clusters: int = 0


@dataclass
class Topology:
    environments: list[EnvironmentInfo] = field(default_factory=list)
    summary: TopologySummary = field(default_factory=TopologySummary)


def _environment(env_type: str, clusters: list[ClusterInfo]) -> EnvironmentInfo:
    healthy = sum(1 for c in clusters if c.status == HEALTHY)
    return EnvironmentInfo(
        type=env_type,
        count=len(clusters),
        clusters=clusters,
        total_node_count=sum(c.node_count for c in clusters),
        healthy_clusters=healthy,
        unhealthy_clusters=len(clusters) - healthy,
    )


def build_topology(entries: Iterable[tuple[str, ClusterInfo]]) -> Topology:
    """Group ``(environment_type, cluster)`` pairs into a topology.

    An empty environment type counts as production. Environments appear in
    the order their first cluster was seen.
    """
    groups: dict[str, list[ClusterInfo]] = {}
    total_clusters = total_nodes = healthy = 0
    for env_type, info in entries:
        groups.setdefault(env_type or DEFAULT_ENVIRONMENT, []).append(info)
        total_clusters += 1
        total_nodes += info.node_count
        if info.status == HEALTHY:
            healthy += 1

    environments = [_environment(env_type, clusters) for env_type, clusters in groups.items()]
    return Topology(
        environments=environments,
        summary=TopologySummary(
            total_clusters=total_clusters,
            total_environments=len(environments),
            total_nodes=total_nodes,
            healthy_clusters=healthy,
        ),
    )


class TopologyService:
    """Builds the topology from stored clusters and updates environment settings.

    ``cluster_repo.find_all_with_state()`` yields records with a ``cluster``
    (``id``, ``name``, ``environment_type``) and a ``state`` (``status``,
    ``node_count``, ``kubernetes_version``).
    """

    def __init__(self, cluster_repo: Any, environment_repo: Any):
        self.cluster_repo = cluster_repo
        self.environment_repo = environment_repo

    def get_cluster_topology(self) -> Topology:
        try:
            records = list(self.cluster_repo.find_all_with_state())
        except Exception as exc:
            raise RuntimeError(f"failed to get clusters: {exc}") from exc

        entries = [
            (
                record.cluster.environment_type,
                ClusterInfo(
                    id=str(record.cluster.id),
                    name=record.cluster.name,
                    status=record.state.status,
                    node_count=record.state.node_count,
                    version=record.state.kubernetes_version,
                ),
            )
            for record in records
        ]
        return build_topology(entries)

    def update_cluster_environment(
        self, cluster_id: str, environment_type: str, topology_type: str, backup_enabled: bool
    ) -> None:
        self.environment_repo.update_cluster_environment(
            cluster_id, environment_type, topology_type, backup_enabled
        )