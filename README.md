# clusterops

Service-layer building blocks for managing a fleet of Kubernetes clusters:
grouping clusters into a topology, caching per-cluster resource data,
detecting security settings, stopping and starting control plane components
and restoring etcd snapshots over SSH, and running periodic health checks.

## Installation

```
pip install .
```

For running the test suite:

```
pip install ".[test]"
pytest
```

## Modules

- `clusterops.resource_cache` — `ClusterResource` and
  `MemoryResourceCache`, a thread-safe cache of nodes, events and resource
  totals per cluster. All three share one timestamp per cluster and expire
  after the TTL; `cleanup_expired()` drops stale clusters and
  `invalidate_cluster()` drops one at once. Items are copied on the way in
  and out.
- `clusterops.topology` — `build_topology` groups `(environment_type,
  ClusterInfo)` pairs into a `Topology` of `EnvironmentInfo` entries with a
  `TopologySummary` (an empty environment type counts as `production`, and
  `healthy` is the healthy status). `TopologyService` builds it from a
  cluster repository and forwards environment updates to an environment
  repository.
- `clusterops.ssh` — `SSHService.connect(host, username, password)` opens a
  password-authenticated paramiko connection (host keys are accepted
  unverified) and returns an `SSHClient`, a context manager with
  `execute_command`, `download_file` and `upload_file`. Failures raise
  `SSHError`; a non-zero exit status is a failure.
- `clusterops.security_detector` — `SecurityPolicyDetector` reports
  `RBACStatus`, `NetworkPolicyStatus`, `PodSecurityStatus` and
  `AuditLoggingStatus` from API groups, API server flags, namespace labels
  and kube-system pods. `detect_cni_plugin` recognises calico, cilium,
  weave, flannel, canal and antrea.
- `clusterops.control_plane` — `parse_endpoints_to_nodes`, the stop/start
  command tables for `kubexm` and `kubeadm` deployments
  (`etcd_stop_commands`, `etcd_start_commands`, `k8s_stop_commands`,
  `k8s_start_commands`), `SSHControlPlaneManager`,
  `build_control_plane_manager(schedule, ssh_service)` and
  `restore_etcd_snapshot`, which uploads a snapshot to the first reachable
  etcd node, runs `etcdctl snapshot restore` there and returns that host.
  Failures raise `ControlPlaneError`.
- `clusterops.health_check` — `HealthCheckWorker` checks every active
  cluster now and then every interval (five minutes by default) with at most
  ten checks at once, and writes the fields from `success_state_update` or
  `failure_state_update` to the state repository. `trigger_sync` checks one
  cluster in the background.

## Example

```python
from clusterops.control_plane import etcd_stop_commands, parse_endpoints_to_nodes
from clusterops.topology import ClusterInfo, build_topology

parse_endpoints_to_nodes("https://10.0.0.1:2379,http://10.0.0.2:2379")
# ['10.0.0.1', '10.0.0.2']

etcd_stop_commands("kubeadm")
# ['sudo mv /etc/kubernetes/manifests/etcd.yaml /tmp/etcd.yaml']

topology = build_topology([
    ("", ClusterInfo(id="a", name="alpha", status="healthy", node_count=3)),
    ("staging", ClusterInfo(id="b", name="beta", status="disconnected", node_count=1)),
])
topology.summary.total_nodes        # 4
topology.environments[0].type       # 'production'
```

## What it does not do

The package holds no storage, no Kubernetes client and no encryption of its
own: repositories, the cluster client, the cluster manager and the
decryption service are objects the caller passes in, with the methods each
class's docstring names. It offers no command-line program and no HTTP
server, and it does not manage tenant quotas, restore backups of cluster
resources or synchronise quotas from clusters.