"""Detection of a cluster's RBAC, network policy, pod security and audit logging setup.

The detector talks to a client object with these methods, each returning
Kubernetes-style dictionaries (as in the API's JSON):

* ``server_groups()``: API groups, each with ``name``, ``preferredVersion``
  (``{"groupVersion": ...}``) and ``versions`` (a list of ``{"groupVersion": ...}``);
* ``list_pods(namespace, label_selector=None, limit=None)``: pods, with
  ``metadata.labels`` and ``spec.containers`` (``image``, ``command``);
* ``list_roles(limit)`` and ``list_cluster_roles(limit)``: RBAC roles;
* ``list_network_policies(limit)``: network policies in all namespaces;
* ``list_namespaces(limit)``: namespaces, with ``metadata.labels``.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator, Mapping, TypeVar

RBAC_GROUP = "rbac.authorization.k8s.io"
NETWORKING_GROUP = "networking.k8s.io"
PSP_GROUP_VERSION = "policy/v1beta1"
KUBE_SYSTEM = "kube-system"
API_SERVER_SELECTOR = "component=kube-apiserver"
UNKNOWN_CNI = "未知"

PSS_LABELS = (
    "pod-security.kubernetes.io/enforce",
    "pod-security.kubernetes.io/audit",
    "pod-security.kubernetes.io/warn",
)

# Known CNI plugins and whether each one enforces NetworkPolicy objects.
CNI_PLUGINS: dict[str, bool] = {
    "calico": True,
    "cilium": True,
    "weave": True,
    "flannel": False,
    "canal": True,
    "antrea": True,
}

_T = TypeVar("_T")


@dataclass
class RBACStatus:
    enabled: bool
    api_versions: str
    roles_count: int
    details: str


@dataclass
class NetworkPolicyStatus:
    enabled: bool
    policies_count: int
    cni_plugin: str
    supports_policy: bool
    details: str


@dataclass
class PodSecurityStatus:
    standard: str
    admission_mode: str
    details: str


@dataclass
class AuditLoggingStatus:
    enabled: bool
    log_path: str
    policy_file: str
    log_level: str
    details: str


def _call(message: str, fn: Callable[..., _T], *args: Any, **kwargs: Any) -> _T:
    try:
        return fn(*args, **kwargs)
    except Exception as exc:
        raise RuntimeError(f"{message}: {exc}") from exc


def _labels(obj: Mapping[str, Any]) -> Mapping[str, str]:
    return (obj.get("metadata") or {}).get("labels") or {}


def _containers(pod: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    return (pod.get("spec") or {}).get("containers") or []


def _preferred_version(groups: Iterable[Mapping[str, Any]], name: str) -> str:
    for group in groups:
        if group.get("name") == name:
            return (group.get("preferredVersion") or {}).get("groupVersion", "")
    return ""


def _flag_value(arg: str) -> str | None:
    parts = arg.split("=")
    return parts[1] if len(parts) > 1 else None


def detect_cni_plugin(pods: Iterable[Mapping[str, Any]]) -> tuple[str, bool]:
    """Identify the CNI plugin from pod labels and container images.

    Returns the plugin name and whether it supports network policies, or
    ``("未知", False)`` when none is recognised.
    """
    for pod in pods:
        for key, value in _labels(pod).items():
            key_lower, value_lower = key.lower(), str(value).lower()
            for plugin, supports in CNI_PLUGINS.items():
                if plugin in key_lower or plugin in value_lower:
                    return plugin, supports
        for container in _containers(pod):
            image = (container.get("image") or "").lower()
            for plugin, supports in CNI_PLUGINS.items():
                if plugin in image:
                    return plugin, supports
    return UNKNOWN_CNI, False


class SecurityPolicyDetector:
    """Inspects a cluster through its API client and reports its security settings."""

    def __init__(self, client: Any):
        self.client = client

    def _server_groups(self) -> list[Mapping[str, Any]]:
        return list(_call("failed to get server groups", self.client.server_groups))

    def _api_server_args(self) -> Iterator[str]:
        pods = _call(
            "failed to get API server pods",
            self.client.list_pods,
            KUBE_SYSTEM,
            label_selector=API_SERVER_SELECTOR,
            limit=1,
        )
        pods = list(pods)
        if not pods:
            return iter(())
        return (
            arg for container in _containers(pods[0]) for arg in container.get("command") or []
        )

    def detect_rbac(self) -> RBACStatus:
        api_version = _preferred_version(self._server_groups(), RBAC_GROUP)

        auth_mode = ""
        for arg in self._api_server_args():
            if "--authorization-mode" in arg:
                value = _flag_value(arg)
                if value is not None:
                    auth_mode = value

        roles = list(_call("failed to list roles", self.client.list_roles, 100))
        cluster_roles = list(
            _call("failed to list cluster roles", self.client.list_cluster_roles, 100)
        )

        enabled = bool(api_version) and ("RBAC" in auth_mode or not auth_mode)

        if enabled:
            if auth_mode:
                details = f"RBAC API版本: {api_version}, 授权模式: {auth_mode}"
            else:
                details = f"RBAC API版本: {api_version} (无法获取授权模式参数)"
        elif api_version:
            details = "RBAC未启用 (API资源存在但授权模式未包含RBAC)"
        else:
            details = "RBAC未启用 (API资源不存在)"

        return RBACStatus(
            enabled=enabled,
            api_versions=api_version,
            roles_count=len(roles) + len(cluster_roles),
            details=details,
        )

    def _detect_cni(self) -> tuple[str, bool]:
        try:
            pods = _call("failed to list pods", self.client.list_pods, KUBE_SYSTEM, limit=50)
        except RuntimeError as exc:
            raise RuntimeError(f"failed to detect CNI plugin: {exc}") from exc
        return detect_cni_plugin(pods)

    def detect_network_policy(self) -> NetworkPolicyStatus:
        api_version = _preferred_version(self._server_groups(), NETWORKING_GROUP)
        cni_plugin, supports_policy = self._detect_cni()

        policies_count = 0
        if api_version:
            policies = _call(
                "failed to list network policies", self.client.list_network_policies, 100
            )
            policies_count = len(list(policies))

        details = f"网络API版本: {api_version}, CNI插件: {cni_plugin}"
        if not supports_policy:
            details += " (不支持网络策略)"

        return NetworkPolicyStatus(
            enabled=bool(api_version) and supports_policy,
            policies_count=policies_count,
            cni_plugin=cni_plugin,
            supports_policy=supports_policy,
            details=details,
        )

    def detect_pod_security(self) -> PodSecurityStatus:
        namespaces = _call("failed to list namespaces", self.client.list_namespaces, 100)
        levels: Counter[str] = Counter()
        for namespace in namespaces:
            labels = _labels(namespace)
            for key in PSS_LABELS:
                if key in labels:
                    levels[labels[key]] += 1

        psp_version = ""
        for group in self._server_groups():
            if any(
                v.get("groupVersion") == PSP_GROUP_VERSION for v in group.get("versions") or []
            ):
                psp_version = PSP_GROUP_VERSION
                break

        if levels:
            admission_mode = "PSA"
            standard = next(
                (lvl for lvl in ("restricted", "baseline", "privileged") if levels[lvl] > 0),
                "baseline",
            )
            details = f"使用Pod Security Admission, enforce级别: {standard}"
            if levels["audit"] > 0:
                details += f", audit级别: {levels['audit']}个命名空间"
            if levels["warn"] > 0:
                details += f", warn级别: {levels['warn']}个命名空间"
        elif psp_version:
            admission_mode = "PSP"
            standard = "baseline"
            details = f"使用Pod Security Policy (已废弃), API版本: {psp_version}"
        else:
            admission_mode = "none"
            standard = "disabled"
            details = "未配置Pod安全策略"

        return PodSecurityStatus(standard=standard, admission_mode=admission_mode, details=details)

    def detect_audit_logging(self) -> AuditLoggingStatus:
        enabled = False
        log_path = policy_file = log_level = ""

        for arg in self._api_server_args():
            if "--audit-log-path" in arg:
                enabled = True
                value = _flag_value(arg)
                if value is not None:
                    log_path = value
            if "--audit-policy-file" in arg:
                value = _flag_value(arg)
                if value is not None:
                    policy_file = value
            if any(
                flag in arg
                for flag in ("--audit-log-maxage", "--audit-log-maxbackup", "--audit-log-maxsize")
            ):
                log_level = "request-response"

        if enabled and not log_level:
            log_level = "metadata"

        if enabled:
            details = f"审计日志已启用, 路径: {log_path}"
            if policy_file:
                details += f", 策略文件: {policy_file}"
            details += f", 日志级别: {log_level}"
        else:
            details = "审计日志未启用"

        return AuditLoggingStatus(
            enabled=enabled,
            log_path=log_path,
            policy_file=policy_file,
            log_level=log_level,
            details=details,
        )