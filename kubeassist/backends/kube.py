"""Cluster backend on top of the official ``kubernetes`` Python client.

The client is synchronous; every call is pushed to a worker thread with
``asyncio.to_thread`` and bounded by ``_request_timeout``.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable

import urllib3
from kubernetes import client, config
from kubernetes.client.rest import ApiException

from kubeassist.backends.base import BackendError, ClusterBackend
from kubeassist.backends.formatting import (
    format_age,
    format_service_ports,
    join_images,
    node_roles,
)
from kubeassist.config import ClusterConfig

logger = logging.getLogger(__name__)

RESTARTED_AT_ANNOTATION = "kubectl.kubernetes.io/restartedAt"


def _conditions(items) -> list[dict]:
    return [
        {
            "type": c.type,
            "status": c.status,
            "reason": c.reason or "",
            "message": c.message or "",
        }
        for c in items or []
    ]


def _quantity(resources: dict | None, key: str) -> str:
    return (resources or {}).get(key, "")


def _iso(ts: datetime | None) -> str | None:
    return ts.isoformat() if ts else None


class KubernetesBackend(ClusterBackend):
    """
    Parameters
    ----------
    api_client:
        A configured ``kubernetes.client.ApiClient``.
    default_timeout:
        Request timeout in seconds used when a call passes none.
    clock:
        Returns the current UTC time; ages are measured against it.
    """

    def __init__(
        self,
        api_client: client.ApiClient,
        default_timeout: float = 30.0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._api_client = api_client
        self._core = client.CoreV1Api(api_client)
        self._apps = client.AppsV1Api(api_client)
        self._networking = client.NetworkingV1Api(api_client)
        self._default_timeout = default_timeout
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_cluster_config(cls, cluster: ClusterConfig) -> KubernetesBackend:
        """Build a client from ``kubeconfig``: ``in-cluster``, a file path, or ``""`` for the default file."""
        try:
            if cluster.kubeconfig == "in-cluster":
                configuration = client.Configuration()
                config.load_incluster_config(client_configuration=configuration)
                api_client = client.ApiClient(configuration)
            else:
                api_client = config.new_client_from_config(
                    config_file=cluster.kubeconfig or None,
                    context=cluster.context or None,
                )
        except config.ConfigException as exc:
            raise BackendError(
                f"cannot load Kubernetes configuration for cluster {cluster.id}: {exc}",
                code="config_error",
            ) from exc
        return cls(api_client)

    def _age(self, ts: datetime | None) -> str:
        return format_age(ts, now=self._clock())

    async def _call(self, what: str, fn: Callable[..., Any], *args, timeout: float | None = None, **kwargs) -> Any:
        kwargs["_request_timeout"] = timeout if timeout is not None else self._default_timeout
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except ApiException as exc:
            code = "not_found" if exc.status == 404 else "api_error"
            raise BackendError(f"{what} failed: {exc.status} {exc.reason}", code=code) from exc
        except urllib3.exceptions.HTTPError as exc:
            raise BackendError(f"{what} failed: {exc}", code="unreachable") from exc

    # --- Pods ---

    async def list_pods(self, namespace: str = "", *, timeout: float | None = None) -> list[dict]:
        if namespace:
            result = await self._call(
                "list pods", self._core.list_namespaced_pod, namespace, timeout=timeout
            )
        else:
            result = await self._call(
                "list pods", self._core.list_pod_for_all_namespaces, timeout=timeout
            )
        return [self._pod_summary(pod) for pod in result.items]

    def _pod_summary(self, pod) -> dict:
        statuses = pod.status.container_statuses or []
        return {
            "name": pod.metadata.name,
            "namespace": pod.metadata.namespace,
            "status": pod.status.phase or "",
            "node": pod.spec.node_name or "",
            "restarts": sum(cs.restart_count or 0 for cs in statuses),
            "ready": f"{sum(1 for cs in statuses if cs.ready)}/{len(statuses)}",
            "age": self._age(pod.metadata.creation_timestamp),
        }

    async def get_pod(self, namespace: str, name: str, *, timeout: float | None = None) -> dict:
        pod = await self._call(
            "get pod", self._core.read_namespaced_pod, name, namespace, timeout=timeout
        )
        containers = []
        for cs in pod.status.container_statuses or []:
            entry: dict[str, Any] = {
                "name": cs.name,
                "image": cs.image,
                "ready": bool(cs.ready),
                "restartCount": cs.restart_count or 0,
            }
            state = cs.state
            if state and state.waiting:
                entry.update(state="Waiting", reason=state.waiting.reason or "", message=state.waiting.message or "")
            elif state and state.running:
                entry.update(state="Running", startedAt=_iso(state.running.started_at))
            elif state and state.terminated:
                entry.update(state="Terminated", reason=state.terminated.reason or "", exitCode=state.terminated.exit_code)
            containers.append(entry)

        return {
            "name": pod.metadata.name,
            "namespace": pod.metadata.namespace,
            "status": pod.status.phase or "",
            "node": pod.spec.node_name or "",
            "ip": pod.status.pod_ip or "",
            "hostIP": pod.status.host_ip or "",
            "startTime": _iso(pod.status.start_time),
            "labels": pod.metadata.labels or {},
            "containers": containers,
            "conditions": _conditions(pod.status.conditions),
            "age": self._age(pod.metadata.creation_timestamp),
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
        kwargs: dict[str, Any] = {"tail_lines": tail_lines, "limit_bytes": limit_bytes}
        if container:
            kwargs["container"] = container
        text = await self._call(
            "read pod logs",
            self._core.read_namespaced_pod_log,
            name,
            namespace,
            timeout=timeout,
            **kwargs,
        )
        return (text or "")[:limit_bytes]

    # --- Deployments ---

    async def list_deployments(self, namespace: str = "", *, timeout: float | None = None) -> list[dict]:
        if namespace:
            result = await self._call(
                "list deployments", self._apps.list_namespaced_deployment, namespace, timeout=timeout
            )
        else:
            result = await self._call(
                "list deployments", self._apps.list_deployment_for_all_namespaces, timeout=timeout
            )
        return [
            {
                "name": d.metadata.name,
                "namespace": d.metadata.namespace,
                "replicas": d.spec.replicas or 0,
                "ready": d.status.ready_replicas or 0,
                "available": d.status.available_replicas or 0,
                "age": self._age(d.metadata.creation_timestamp),
                "images": join_images(c.image for c in d.spec.template.spec.containers),
            }
            for d in result.items
        ]

    async def get_deployment(self, namespace: str, name: str, *, timeout: float | None = None) -> dict:
        d = await self._call(
            "get deployment", self._apps.read_namespaced_deployment, name, namespace, timeout=timeout
        )
        return {
            "name": d.metadata.name,
            "namespace": d.metadata.namespace,
            "replicas": d.spec.replicas or 0,
            "readyReplicas": d.status.ready_replicas or 0,
            "availableReplicas": d.status.available_replicas or 0,
            "updatedReplicas": d.status.updated_replicas or 0,
            "strategy": d.spec.strategy.type if d.spec.strategy else "",
            "labels": d.metadata.labels or {},
            "images": join_images(c.image for c in d.spec.template.spec.containers),
            "conditions": _conditions(d.status.conditions),
            "age": self._age(d.metadata.creation_timestamp),
        }

    async def scale_deployment(
        self, namespace: str, name: str, replicas: int, *, timeout: float | None = None
    ) -> dict:
        await self._call(
            "scale deployment",
            self._apps.patch_namespaced_deployment_scale,
            name,
            namespace,
            {"spec": {"replicas": replicas}},
            timeout=timeout,
        )
        logger.info("Scaled deployment %s/%s to %d replicas", namespace, name, replicas)
        return {
            "status": "success",
            "message": f"scaled {namespace}/{name} to {replicas} replicas",
        }

    async def restart_deployment(
        self, namespace: str, name: str, *, timeout: float | None = None
    ) -> dict:
        restarted_at = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        body = {
            "spec": {
                "template": {
                    "metadata": {"annotations": {RESTARTED_AT_ANNOTATION: restarted_at}}
                }
            }
        }
        await self._call(
            "restart deployment",
            self._apps.patch_namespaced_deployment,
            name,
            namespace,
            body,
            timeout=timeout,
        )
        logger.info("Triggered rollout restart of deployment %s/%s", namespace, name)
        return {
            "status": "success",
            "message": f"triggered rolling restart of {namespace}/{name}",
        }

    # --- Nodes ---

    async def list_nodes(self, *, timeout: float | None = None) -> list[dict]:
        result = await self._call("list nodes", self._core.list_node, timeout=timeout)
        return [
            {
                "name": node.metadata.name,
                "status": self._node_status(node),
                "roles": node_roles(node.metadata.labels),
                "version": node.status.node_info.kubelet_version if node.status.node_info else "",
                "cpu": _quantity(node.status.capacity, "cpu"),
                "memory": _quantity(node.status.capacity, "memory"),
                "age": self._age(node.metadata.creation_timestamp),
            }
            for node in result.items
        ]

    @staticmethod
    def _node_status(node) -> str:
        for cond in node.status.conditions or []:
            if cond.type == "Ready" and cond.status == "True":
                return "Ready"
        return "NotReady"

    async def get_node(self, name: str, *, timeout: float | None = None) -> dict:
        node = await self._call("get node", self._core.read_node, name, timeout=timeout)
        info = node.status.node_info
        return {
            "name": node.metadata.name,
            "labels": node.metadata.labels or {},
            "conditions": _conditions(node.status.conditions),
            "taints": [
                {"key": t.key, "value": t.value or "", "effect": t.effect}
                for t in node.spec.taints or []
            ],
            "unschedulable": bool(node.spec.unschedulable),
            "kubeletVersion": info.kubelet_version if info else "",
            "osImage": info.os_image if info else "",
            "containerRuntime": info.container_runtime_version if info else "",
            "cpu": _quantity(node.status.capacity, "cpu"),
            "memory": _quantity(node.status.capacity, "memory"),
            "pods": _quantity(node.status.capacity, "pods"),
            "allocatableCPU": _quantity(node.status.allocatable, "cpu"),
            "allocatableMemory": _quantity(node.status.allocatable, "memory"),
            "age": self._age(node.metadata.creation_timestamp),
        }

    # --- Events, services, ingresses ---

    async def list_events(self, namespace: str = "", *, timeout: float | None = None) -> list[dict]:
        if namespace:
            result = await self._call(
                "list events", self._core.list_namespaced_event, namespace, timeout=timeout
            )
        else:
            result = await self._call(
                "list events", self._core.list_event_for_all_namespaces, timeout=timeout
            )

        epoch = datetime.min.replace(tzinfo=timezone.utc)
        items = sorted(
            result.items,
            key=lambda e: e.last_timestamp or e.event_time or epoch,
        )
        return [
            {
                "type": evt.type or "",
                "reason": evt.reason or "",
                "object": f"{evt.involved_object.kind}/{evt.involved_object.name}",
                "message": evt.message or "",
                "count": evt.count or 0,
                "namespace": evt.metadata.namespace,
                "lastSeen": self._age(evt.last_timestamp or evt.event_time),
            }
            for evt in items
        ]

    async def list_services(self, namespace: str = "", *, timeout: float | None = None) -> list[dict]:
        if namespace:
            result = await self._call(
                "list services", self._core.list_namespaced_service, namespace, timeout=timeout
            )
        else:
            result = await self._call(
                "list services", self._core.list_service_for_all_namespaces, timeout=timeout
            )
        return [
            {
                "name": svc.metadata.name,
                "namespace": svc.metadata.namespace,
                "type": svc.spec.type or "",
                "clusterIP": svc.spec.cluster_ip or "",
                "ports": format_service_ports(
                    (p.port, p.node_port, p.protocol or "TCP") for p in svc.spec.ports or []
                ),
                "age": self._age(svc.metadata.creation_timestamp),
            }
            for svc in result.items
        ]

    async def list_ingresses(self, namespace: str = "", *, timeout: float | None = None) -> list[dict]:
        if namespace:
            result = await self._call(
                "list ingresses", self._networking.list_namespaced_ingress, namespace, timeout=timeout
            )
        else:
            result = await self._call(
                "list ingresses", self._networking.list_ingress_for_all_namespaces, timeout=timeout
            )
        return [
            {
                "name": ing.metadata.name,
                "namespace": ing.metadata.namespace,
                "hosts": [r.host for r in ing.spec.rules or [] if r.host],
                "class": ing.spec.ingress_class_name or "",
                "age": self._age(ing.metadata.creation_timestamp),
            }
            for ing in result.items
        ]

    async def close(self) -> None:
        await asyncio.to_thread(self._api_client.close)
