"""Stopping and starting control plane components and restoring etcd snapshots over SSH."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Sequence

logger = logging.getLogger(__name__)

ETCD_CLIENT_PORT = 2379
DEFAULT_SSH_USERNAME = "root"
REMOTE_SNAPSHOT_TEMPLATE = "/backup/etcd-snapshot-restore-{timestamp}.db"

_ETCD_STOP = {
    "kubexm": ["sudo systemctl stop etcd"],
    "kubeadm": ["sudo mv /etc/kubernetes/manifests/etcd.yaml /tmp/etcd.yaml"],
}
_ETCD_START = {
    "kubexm": ["sudo systemctl start etcd"],
    "kubeadm": ["sudo mv /tmp/etcd.yaml /etc/kubernetes/manifests/etcd.yaml"],
}
_K8S_STOP = {
    "kubexm": ["sudo systemctl stop kube-apiserver"],
    "kubeadm": ["sudo mv /etc/kubernetes/manifests/kube-apiserver.yaml /tmp/kube-apiserver.yaml"],
}
_K8S_START = {
    "kubexm": ["sudo systemctl start kube-apiserver"],
    "kubeadm": ["sudo mv /tmp/kube-apiserver.yaml /etc/kubernetes/manifests/kube-apiserver.yaml"],
}


class ControlPlaneError(Exception):
    """A control plane operation or an etcd restore failed."""


@dataclass
class EtcdNodeInfo:
    """Connection details of one etcd node."""

    ip: str
    port: int = ETCD_CLIENT_PORT
    ca_cert: str = ""
    cert: str = ""
    key: str = ""
    data_dir: str = ""
    endpoints: list[str] = field(default_factory=list)
    ssh_username: str = ""
    ssh_password: str = ""


def parse_endpoints_to_nodes(endpoints: str) -> list[str]:
    """Extract the host of each comma-separated endpoint, dropping scheme and port."""
    nodes = []
    for endpoint in endpoints.split(","):
        host = endpoint
        if host.startswith("https://"):
            host = host[len("https://"):]
        elif host.startswith("http://"):
            host = host[len("http://"):]
        if ":" in host:
            host = host.split(":")[0]
        nodes.append(host)
    return nodes


def _commands(table: dict[str, list[str]], deployment_type: str) -> list[str]:
    return list(table.get(deployment_type, table["kubexm"]))


def etcd_stop_commands(deployment_type: str) -> list[str]:
    """Commands that stop etcd; unknown deployment types are treated as systemd."""
    return _commands(_ETCD_STOP, deployment_type)


def etcd_start_commands(deployment_type: str) -> list[str]:
    """Commands that start etcd; unknown deployment types are treated as systemd."""
    return _commands(_ETCD_START, deployment_type)


def k8s_stop_commands(deployment_type: str) -> list[str]:
    """Commands that stop the API server; unknown deployment types are treated as systemd."""
    return _commands(_K8S_STOP, deployment_type)


def k8s_start_commands(deployment_type: str) -> list[str]:
    """Commands that start the API server; unknown deployment types are treated as systemd."""
    return _commands(_K8S_START, deployment_type)


class SSHControlPlaneManager:
    """Runs stop and start commands for etcd and Kubernetes on every node over SSH."""

    def __init__(
        self,
        ssh_service: Any,
        nodes: Sequence[EtcdNodeInfo],
        etcd_stop_cmds: Iterable[str],
        etcd_start_cmds: Iterable[str],
        k8s_stop_cmds: Iterable[str],
        k8s_start_cmds: Iterable[str],
    ):
        self.ssh_service = ssh_service
        self.nodes = list(nodes)
        self.etcd_stop_cmds = list(etcd_stop_cmds)
        self.etcd_start_cmds = list(etcd_start_cmds)
        self.k8s_stop_cmds = list(k8s_stop_cmds)
        self.k8s_start_cmds = list(k8s_start_cmds)

    def _run_everywhere(self, action: str, etcd_cmds: list[str], k8s_cmds: list[str]) -> None:
        if not self.nodes:
            raise ControlPlaneError("no nodes configured")
        for node in self.nodes:
            try:
                client = self.ssh_service.connect(node.ip, node.ssh_username, node.ssh_password)
            except Exception as exc:
                raise ControlPlaneError(f"failed to connect to node {node.ip}: {exc}") from exc
            with client:
                for kind, commands in (("etcd", etcd_cmds), ("k8s", k8s_cmds)):
                    for cmd in commands:
                        try:
                            client.execute_command(cmd)
                        except Exception as exc:
                            raise ControlPlaneError(
                                f"failed to execute {kind} {action} command '{cmd}' "
                                f"on node {node.ip}: {exc}"
                            ) from exc

    def stop_control_plane_components(self) -> None:
        self._run_everywhere("stop", self.etcd_stop_cmds, self.k8s_stop_cmds)

    def start_control_plane_components(self) -> None:
        self._run_everywhere("start", self.etcd_start_cmds, self.k8s_start_cmds)


def _schedule_nodes(schedule: Any) -> list[str]:
    if schedule is None:
        raise ControlPlaneError("no backup schedule found")
    if not schedule.etcd_endpoints:
        raise ControlPlaneError("etcd_endpoints not set in backup schedule")
    nodes = parse_endpoints_to_nodes(schedule.etcd_endpoints)
    if not nodes:
        raise ControlPlaneError("no etcd nodes found from endpoints")
    return nodes


def build_control_plane_manager(schedule: Any, ssh_service: Any) -> SSHControlPlaneManager:
    """Build a manager for the etcd nodes and deployment types named in a backup schedule."""
    hosts = _schedule_nodes(schedule)
    endpoints = schedule.etcd_endpoints.split(",")
    nodes = [
        EtcdNodeInfo(
            ip=host,
            port=ETCD_CLIENT_PORT,
            ca_cert=schedule.etcd_ca_cert,
            cert=schedule.etcd_cert,
            key=schedule.etcd_key,
            data_dir=schedule.etcd_data_dir,
            endpoints=list(endpoints),
            ssh_username=schedule.ssh_username,
            ssh_password=schedule.ssh_password,
        )
        for host in hosts
    ]
    return SSHControlPlaneManager(
        ssh_service,
        nodes,
        etcd_stop_commands(schedule.etcd_deployment_type),
        etcd_start_commands(schedule.etcd_deployment_type),
        k8s_stop_commands(schedule.k8s_deployment_type),
        k8s_start_commands(schedule.k8s_deployment_type),
    )


def _cleanup(client: Any, remote_path: str) -> None:
    try:
        client.execute_command(f"rm -f {remote_path}")
    except Exception as exc:
        logger.warning("[ETCD-RESTORE] Cleanup of %s failed: %s", remote_path, exc)


def restore_etcd_snapshot(
    schedule: Any, ssh_service: Any, snapshot_path: str, now: datetime | None = None
) -> str:
    """Upload a snapshot to the first reachable etcd node and restore it there.

    Nodes are tried in order; a node that cannot be reached, uploaded to or
    restored on is skipped. Returns the host on which the restore succeeded.
    """
    logger.info("[ETCD-RESTORE] Starting etcd snapshot restore from %s", snapshot_path)
    nodes = _schedule_nodes(schedule)
    timestamp = (now or datetime.now()).strftime("%Y%m%d-%H%M%S")
    remote_path = REMOTE_SNAPSHOT_TEMPLATE.format(timestamp=timestamp)

    for index, node in enumerate(nodes, start=1):
        logger.info("[ETCD-RESTORE] Trying to restore to node %d/%d: %s", index, len(nodes), node)
        username = schedule.ssh_username or DEFAULT_SSH_USERNAME
        if not schedule.ssh_password:
            raise ControlPlaneError("ssh_password not set in backup schedule")

        try:
            client = ssh_service.connect(node, username, schedule.ssh_password)
        except Exception as exc:
            logger.warning("[ETCD-RESTORE] Failed to connect to node %s: %s", node, exc)
            continue

        with client:
            logger.info("[ETCD-RESTORE] Uploading snapshot file to %s", node)
            try:
                client.upload_file(snapshot_path, remote_path)
            except Exception as exc:
                logger.warning("[ETCD-RESTORE] Failed to upload snapshot to %s: %s", node, exc)
                continue

            restore_cmd = (
                f"{schedule.etcdctl_path} snapshot restore {remote_path} "
                f"--data-dir={schedule.etcd_data_dir}"
            )
            logger.info("[ETCD-RESTORE] Executing restore command: %s", restore_cmd)
            try:
                client.execute_command(restore_cmd)
            except Exception as exc:
                logger.warning(
                    "[ETCD-RESTORE] Failed to execute restore command on %s: %s", node, exc
                )
                _cleanup(client, remote_path)
                continue

            _cleanup(client, remote_path)
            logger.info("[ETCD-RESTORE] Successfully restored etcd snapshot on node %s", node)
            return node

    raise ControlPlaneError("etcd snapshot restore failed - no accessible etcd node found")