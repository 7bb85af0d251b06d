from datetime import datetime
from types import SimpleNamespace

import pytest

from clusterops.control_plane import (
    ControlPlaneError,
    EtcdNodeInfo,
    SSHControlPlaneManager,
    build_control_plane_manager,
    etcd_start_commands,
    etcd_stop_commands,
    k8s_start_commands,
    k8s_stop_commands,
    parse_endpoints_to_nodes,
    restore_etcd_snapshot,
)
from clusterops.ssh import SSHError


class FakeClient:
    def __init__(self, host, failing=(), fail_upload=False):
        self.host = host
        self.failing = set(failing)
        self.fail_upload = fail_upload
        self.commands = []
        self.uploads = []
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.closed = True

    def execute_command(self, command):
        self.commands.append(command)
        if command in self.failing:
            raise SSHError("boom")
        return ""

    def upload_file(self, local_file, remote_file):
        if self.fail_upload:
            raise SSHError("upload failed")
        self.uploads.append((local_file, remote_file))


class FakeSSHService:
    def __init__(self, unreachable=(), failing=(), fail_upload=()):
        self.unreachable = set(unreachable)
        self.failing = failing
        self.fail_upload = set(fail_upload)
        self.clients = {}
        self.logins = []

    def connect(self, host, username, password):
        self.logins.append((host, username))
        if host in self.unreachable:
            raise SSHError("unreachable")
        client = FakeClient(host, self.failing, host in self.fail_upload)
        self.clients[host] = client
        return client


def make_schedule(**overrides):
    password = "password"
    values = dict(
        etcd_endpoints="https://10.0.0.1:2379,https://10.0.0.2:2379",
        etcd_ca_cert="ca.pem",
        etcd_cert="cert.pem",
        etcd_key="placeholder",
        etcd_data_dir="/var/lib/etcd",
        ssh_username="admin",
        ssh_password=password,
        etcd_deployment_type="kubeadm",
        k8s_deployment_type="kubexm",
        etcdctl_path="/usr/local/bin/etcdctl",
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def test_parse_endpoints_strips_scheme_and_port():
    assert parse_endpoints_to_nodes("https://10.0.0.1:2379,http://10.0.0.2:2379,10.0.0.3") == [
        "10.0.0.1",
        "10.0.0.2",
        "10.0.0.3",
    ]


def test_commands_by_deployment_type():
    assert etcd_stop_commands("kubexm") == ["sudo systemctl stop etcd"]
    assert etcd_start_commands("kubeadm") == [
        "sudo mv /tmp/etcd.yaml /etc/kubernetes/manifests/etcd.yaml"
    ]
    assert k8s_stop_commands("kubeadm") == [
        "sudo mv /etc/kubernetes/manifests/kube-apiserver.yaml /tmp/kube-apiserver.yaml"
    ]
    assert k8s_start_commands("other") == k8s_start_commands("kubexm")
    assert etcd_stop_commands("") == etcd_stop_commands("kubexm")


def test_build_manager_from_schedule():
    schedule = make_schedule()
    manager = build_control_plane_manager(schedule, FakeSSHService())
    assert [n.ip for n in manager.nodes] == ["10.0.0.1", "10.0.0.2"]
    assert all(n.port == 2379 for n in manager.nodes)
    assert manager.nodes[0].endpoints == schedule.etcd_endpoints.split(",")
    assert manager.nodes[0].data_dir == schedule.etcd_data_dir
    assert manager.etcd_stop_cmds == etcd_stop_commands("kubeadm")
    assert manager.k8s_start_cmds == k8s_start_commands("kubexm")


def test_build_manager_requires_endpoints():
    with pytest.raises(ControlPlaneError, match="etcd_endpoints not set"):
        build_control_plane_manager(make_schedule(etcd_endpoints=""), FakeSSHService())
    with pytest.raises(ControlPlaneError, match="no backup schedule found"):
        build_control_plane_manager(None, FakeSSHService())


def test_stop_runs_etcd_then_k8s_commands_on_every_node():
    service = FakeSSHService()
    nodes = [EtcdNodeInfo(ip="a"), EtcdNodeInfo(ip="b")]
    manager = SSHControlPlaneManager(service, nodes, ["e-stop"], ["e-start"], ["k-stop"], ["k-start"])
    manager.stop_control_plane_components()
    for host in ("a", "b"):
        assert service.clients[host].commands == ["e-stop", "k-stop"]
        assert service.clients[host].closed


def test_start_runs_start_commands():
    service = FakeSSHService()
    manager = SSHControlPlaneManager(
        service, [EtcdNodeInfo(ip="a")], ["e-stop"], ["e-start"], ["k-stop"], ["k-start"]
    )
    manager.start_control_plane_components()
    assert service.clients["a"].commands == ["e-start", "k-start"]


def test_manager_without_nodes_fails():
    manager = SSHControlPlaneManager(FakeSSHService(), [], [], [], [], [])
    with pytest.raises(ControlPlaneError, match="no nodes configured"):
        manager.stop_control_plane_components()


def test_manager_reports_connect_and_command_failures():
    manager = SSHControlPlaneManager(
        FakeSSHService(unreachable={"a"}), [EtcdNodeInfo(ip="a")], [], [], [], []
    )
    with pytest.raises(ControlPlaneError, match="failed to connect to node a"):
        manager.start_control_plane_components()

    manager = SSHControlPlaneManager(
        FakeSSHService(failing={"k-stop"}), [EtcdNodeInfo(ip="a")], ["e"], [], ["k-stop"], []
    )
    with pytest.raises(ControlPlaneError, match="k8s stop command 'k-stop' on node a"):
        manager.stop_control_plane_components()


def test_restore_snapshot_on_first_node():
    service = FakeSSHService()
    schedule = make_schedule()
    now = datetime(2024, 1, 2, 3, 4, 5)
    host = restore_etcd_snapshot(schedule, service, "/local/etcd.snapshot", now)
    remote = "/backup/etcd-snapshot-restore-20240102-030405.db"
    assert host == "10.0.0.1"
    client = service.clients["10.0.0.1"]
    assert client.uploads == [("/local/etcd.snapshot", remote)]
    assert client.commands == [
        f"/usr/local/bin/etcdctl snapshot restore {remote} --data-dir=/var/lib/etcd",
        f"rm -f {remote}",
    ]
    assert "10.0.0.2" not in service.clients


def test_restore_skips_unreachable_and_failing_nodes():
    service = FakeSSHService(unreachable={"10.0.0.1"}, fail_upload={"10.0.0.2"})
    schedule = make_schedule(etcd_endpoints="10.0.0.1,10.0.0.2,10.0.0.3")
    assert restore_etcd_snapshot(schedule, service, "snap", datetime(2024, 1, 1)) == "10.0.0.3"


def test_restore_fails_when_every_node_fails():
    service = FakeSSHService(fail_upload={"10.0.0.1", "10.0.0.2"})
    with pytest.raises(ControlPlaneError, match="no accessible etcd node found"):
        restore_etcd_snapshot(make_schedule(), service, "snap", datetime(2024, 1, 1))


def test_restore_cleans_up_after_failed_restore_command():
    schedule = make_schedule(etcd_endpoints="10.0.0.1")
    remote = "/backup/etcd-snapshot-restore-20240101-000000.db"
    restore_cmd = f"/usr/local/bin/etcdctl snapshot restore {remote} --data-dir=/var/lib/etcd"
    service = FakeSSHService(failing={restore_cmd})
    with pytest.raises(ControlPlaneError):
        restore_etcd_snapshot(schedule, service, "snap", datetime(2024, 1, 1))
    assert service.clients["10.0.0.1"].commands == [restore_cmd, f"rm -f {remote}"]


def test_restore_defaults_username_and_requires_password():
    service = FakeSSHService()
    restore_etcd_snapshot(make_schedule(ssh_username=""), service, "snap", datetime(2024, 1, 1))
    assert service.logins[0] == ("10.0.0.1", "root")

    with pytest.raises(ControlPlaneError, match="ssh_password not set"):
        restore_etcd_snapshot(make_schedule(ssh_password=""), FakeSSHService(), "snap")