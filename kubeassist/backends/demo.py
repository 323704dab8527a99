"""Demo backend for trying the assistant without a real cluster."""

from __future__ import annotations

import copy
from datetime import datetime, timedelta, timezone

from kubeassist.backends.base import BackendError, ClusterBackend
from kubeassist.backends.formatting import (
    format_age,
    format_service_ports,
    join_images,
    node_roles,
)

_NODES = [
    {
        "name": "demo-control-plane",
        "labels": {"node-role.kubernetes.io/control-plane": "", "kubernetes.io/os": "linux"},
        "ready": True,
        "version": "v1.29.2",
        "cpu": "4",
        "memory": "16Gi",
        "age_hours": 24 * 40,
        "taints": [{"key": "node-role.kubernetes.io/control-plane", "value": "", "effect": "NoSchedule"}],
    },
    {
        "name": "demo-worker-1",
        "labels": {"kubernetes.io/os": "linux"},
        "ready": True,
        "version": "v1.29.2",
        "cpu": "8",
        "memory": "32Gi",
        "age_hours": 24 * 40,
        "taints": [],
    },
    {
        "name": "demo-worker-2",
        "labels": {"kubernetes.io/os": "linux"},
        "ready": False,
        "version": "v1.29.1",
        "cpu": "8",
        "memory": "32Gi",
        "age_hours": 24 * 12,
        "taints": [{"key": "node.kubernetes.io/unreachable", "value": "", "effect": "NoExecute"}],
    },
]

_DEPLOYMENTS = [
    {"namespace": "default", "name": "web", "replicas": 3, "ready": 3, "images": ["nginx:1.25"], "age_hours": 72},
    {"namespace": "default", "name": "api", "replicas": 2, "ready": 1, "images": ["example/api:2.4.1"], "age_hours": 30},
    {"namespace": "monitoring", "name": "prometheus", "replicas": 1, "ready": 1, "images": ["prom/prometheus:v2.51.0"], "age_hours": 24 * 20},
]

_PODS = [
    {"namespace": "default", "name": "web-7d9f8b-abcde", "owner": "web", "status": "Running", "node": "demo-worker-1", "restarts": 0, "ready": True, "age_hours": 72},
    {"namespace": "default", "name": "web-7d9f8b-fghij", "owner": "web", "status": "Running", "node": "demo-worker-1", "restarts": 0, "ready": True, "age_hours": 72},
    {"namespace": "default", "name": "web-7d9f8b-klmno", "owner": "web", "status": "Running", "node": "demo-worker-1", "restarts": 1, "ready": True, "age_hours": 50},
    {"namespace": "default", "name": "api-5c6b7d-pqrst", "owner": "api", "status": "Running", "node": "demo-worker-1", "restarts": 0, "ready": True, "age_hours": 30},
    {"namespace": "default", "name": "api-5c6b7d-uvwxy", "owner": "api", "status": "CrashLoopBackOff", "node": "demo-worker-2", "restarts": 14, "ready": False, "age_hours": 5},
    {"namespace": "monitoring", "name": "prometheus-0", "owner": "prometheus", "status": "Running", "node": "demo-worker-1", "restarts": 0, "ready": True, "age_hours": 24 * 20},
]

_SERVICES = [
    {"namespace": "default", "name": "kubernetes", "type": "ClusterIP", "cluster_ip": "10.96.0.1", "ports": [(443, None, "TCP")], "age_hours": 24 * 40},
    {"namespace": "default", "name": "web", "type": "NodePort", "cluster_ip": "10.96.12.40", "ports": [(80, 30080, "TCP")], "age_hours": 72},
    {"namespace": "default", "name": "api", "type": "ClusterIP", "cluster_ip": "10.96.33.7", "ports": [(8080, None, "TCP")], "age_hours": 30},
]

_INGRESSES = [
    {"namespace": "default", "name": "web", "hosts": ["web.demo.example.com"], "class": "nginx", "age_hours": 72},
]

_EVENTS = [
    {"namespace": "default", "type": "Normal", "reason": "Scheduled", "kind": "Pod", "name": "api-5c6b7d-uvwxy", "message": "Successfully assigned default/api-5c6b7d-uvwxy to demo-worker-2", "count": 1, "age_hours": 5},
    {"namespace": "default", "type": "Warning", "reason": "BackOff", "kind": "Pod", "name": "api-5c6b7d-uvwxy", "message": "Back-off restarting failed container api", "count": 14, "age_hours": 0.2},
    {"namespace": "default", "type": "Warning", "reason": "NodeNotReady", "kind": "Node", "name": "demo-worker-2", "message": "Node demo-worker-2 status is now: NodeNotReady", "count": 1, "age_hours": 0.1},
]

_LOGS = {
    ("default", "api-5c6b7d-uvwxy"): (
        "2026-02-09T10:00:01Z INFO starting api server on :8080\n"
        "2026-02-09T10:00:02Z INFO connecting to database db.default.svc:5432\n"
        "2026-02-09T10:00:07Z ERROR database connection refused\n"
        "2026-02-09T10:00:07Z FATAL exiting with status 1\n"
    ),
}


class DemoClusterBackend(ClusterBackend):
    """
    In-memory cluster with a handful of nodes, deployments and pods.

    Mutations are applied to the in-memory state and recorded in
    ``mutations`` as ``(operation, namespace, name, detail)`` tuples, so
    tests can count the cluster changes a tool performed.
    """

    def __init__(self, now: datetime | None = None) -> None:
        self._now = now or datetime.now(timezone.utc)
        self._nodes = copy.deepcopy(_NODES)
        self._deployments = copy.deepcopy(_DEPLOYMENTS)
        self._pods = copy.deepcopy(_PODS)
        self._services = copy.deepcopy(_SERVICES)
        self._ingresses = copy.deepcopy(_INGRESSES)
        self._events = copy.deepcopy(_EVENTS)
        self.mutations: list[tuple[str, str, str, dict]] = []

    def _age(self, hours: float) -> str:
        return format_age(self._now - timedelta(hours=hours), now=self._now)

    def _find_deployment(self, namespace: str, name: str) -> dict:
        for d in self._deployments:
            if d["namespace"] == namespace and d["name"] == name:
                return d
        raise BackendError(f"deployment {namespace}/{name} not found", code="not_found")

    def _find_pod(self, namespace: str, name: str) -> dict:
        for p in self._pods:
            if p["namespace"] == namespace and p["name"] == name:
                return p
        raise BackendError(f"pod {namespace}/{name} not found", code="not_found")

    # --- Pods ---

    async def list_pods(self, namespace: str = "", *, timeout: float | None = None) -> list[dict]:
        return [
            {
                "name": p["name"],
                "namespace": p["namespace"],
                "status": p["status"],
                "node": p["node"],
                "restarts": p["restarts"],
                "ready": "1/1" if p["ready"] else "0/1",
                "age": self._age(p["age_hours"]),
            }
            for p in self._pods
            if not namespace or p["namespace"] == namespace
        ]

    async def get_pod(self, namespace: str, name: str, *, timeout: float | None = None) -> dict:
        p = self._find_pod(namespace, name)
        deploy = self._find_deployment(p["namespace"], p["owner"])
        container = {
            "name": p["owner"],
            "image": deploy["images"][0],
            "ready": p["ready"],
            "restartCount": p["restarts"],
        }
        if p["ready"]:
            container["state"] = "Running"
        else:
            container.update(state="Waiting", reason=p["status"], message="back-off restarting failed container")
        return {
            "name": p["name"],
            "namespace": p["namespace"],
            "status": "Running" if p["ready"] else "Pending",
            "node": p["node"],
            "labels": {"app": p["owner"]},
            "containers": [container],
            "conditions": [{"type": "Ready", "status": str(p["ready"]), "reason": "", "message": ""}],
            "age": self._age(p["age_hours"]),
        }

    async def read_pod_logs(
        self,
        namespace: str,
        name: str,
        container: str = "",
        *,
        tail_lines: int = 100,
        limit_bytes: int = 64 * 1024,
        timeout: float | None = None,
    ) -> str:
        p = self._find_pod(namespace, name)
        text = _LOGS.get((namespace, name), f"{p['name']}: nothing logged recently\n")
        lines = text.splitlines(keepends=True)[-tail_lines:]
        return "".join(lines)[:limit_bytes]

    # --- Deployments ---

    async def list_deployments(self, namespace: str = "", *, timeout: float | None = None) -> list[dict]:
        return [
            {
                "name": d["name"],
                "namespace": d["namespace"],
                "replicas": d["replicas"],
                "ready": d["ready"],
                "available": d["ready"],
                "age": self._age(d["age_hours"]),
                "images": join_images(d["images"]),
            }
            for d in self._deployments
            if not namespace or d["namespace"] == namespace
        ]

    async def get_deployment(self, namespace: str, name: str, *, timeout: float | None = None) -> dict:
        d = self._find_deployment(namespace, name)
        detail = {
            "name": d["name"],
            "namespace": d["namespace"],
            "replicas": d["replicas"],
            "readyReplicas": d["ready"],
            "availableReplicas": d["ready"],
            "updatedReplicas": d["replicas"],
            "strategy": "RollingUpdate",
            "labels": {"app": d["name"]},
            "images": join_images(d["images"]),
            "age": self._age(d["age_hours"]),
        }
        if "restarted_at" in d:
            detail["restartedAt"] = d["restarted_at"]
        return detail

    async def scale_deployment(
        self, namespace: str, name: str, replicas: int, *, timeout: float | None = None
    ) -> dict:
        d = self._find_deployment(namespace, name)
        self.mutations.append(("scale", namespace, name, {"replicas": replicas}))
        d["replicas"] = replicas
        d["ready"] = min(d["ready"], replicas)
        return {
            "status": "success",
            "message": f"scaled {namespace}/{name} to {replicas} replicas",
        }

    async def restart_deployment(
        self, namespace: str, name: str, *, timeout: float | None = None
    ) -> dict:
        d = self._find_deployment(namespace, name)
        restarted_at = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        self.mutations.append(("restart", namespace, name, {"restarted_at": restarted_at}))
        d["restarted_at"] = restarted_at
        return {
            "status": "success",
            "message": f"triggered rolling restart of {namespace}/{name}",
        }

    # --- Nodes ---

    async def list_nodes(self, *, timeout: float | None = None) -> list[dict]:
        return [
            {
                "name": n["name"],
                "status": "Ready" if n["ready"] else "NotReady",
                "roles": node_roles(n["labels"]),
                "version": n["version"],
                "cpu": n["cpu"],
                "memory": n["memory"],
                "age": self._age(n["age_hours"]),
            }
            for n in self._nodes
        ]

    async def get_node(self, name: str, *, timeout: float | None = None) -> dict:
        for n in self._nodes:
            if n["name"] == name:
                return {
                    "name": n["name"],
                    "labels": dict(n["labels"]),
                    "conditions": [
                        {
                            "type": "Ready",
                            "status": "True" if n["ready"] else "Unknown",
                            "reason": "KubeletReady" if n["ready"] else "NodeStatusUnknown",
                            "message": "" if n["ready"] else "Kubelet stopped posting node status.",
                        }
                    ],
                    "taints": list(n["taints"]),
                    "unschedulable": False,
                    "kubeletVersion": n["version"],
                    "cpu": n["cpu"],
                    "memory": n["memory"],
                    "age": self._age(n["age_hours"]),
                }
        raise BackendError(f"node {name} not found", code="not_found")

    # --- Events, services, ingresses ---

    async def list_events(self, namespace: str = "", *, timeout: float | None = None) -> list[dict]:
        events = sorted(
            (e for e in self._events if not namespace or e["namespace"] == namespace),
            key=lambda e: -e["age_hours"],
        )
        return [
            {
                "type": e["type"],
                "reason": e["reason"],
                "object": f"{e['kind']}/{e['name']}",
                "message": e["message"],
                "count": e["count"],
                "namespace": e["namespace"],
                "lastSeen": self._age(e["age_hours"]),
            }
            for e in events
        ]

    async def list_services(self, namespace: str = "", *, timeout: float | None = None) -> list[dict]:
        return [
            {
                "name": s["name"],
                "namespace": s["namespace"],
                "type": s["type"],
                "clusterIP": s["cluster_ip"],
                "ports": format_service_ports(s["ports"]),
                "age": self._age(s["age_hours"]),
            }
            for s in self._services
            if not namespace or s["namespace"] == namespace
        ]

    async def list_ingresses(self, namespace: str = "", *, timeout: float | None = None) -> list[dict]:
        return [
            {
                "name": i["name"],
                "namespace": i["namespace"],
                "hosts": list(i["hosts"]),
                "class": i["class"],
                "age": self._age(i["age_hours"]),
            }
            for i in self._ingresses
            if not namespace or i["namespace"] == namespace
        ]
