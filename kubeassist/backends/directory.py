"""Cluster directory -- resolves cluster IDs to identity and backend."""

from __future__ import annotations

import logging

from kubeassist.backends.base import BackendError, ClusterBackend, ClusterInfo
from kubeassist.backends.demo import DemoClusterBackend
from kubeassist.backends.kube import KubernetesBackend
from kubeassist.config import ClusterConfig

logger = logging.getLogger(__name__)

DEMO_CLUSTER = ClusterConfig(id="demo", name="demo", version="v1.29.2", kubeconfig="demo")


class ClusterNotFound(BackendError):
    def __init__(self, cluster_id: str):
        super().__init__(f"cluster not found: {cluster_id}", code="cluster_not_found")
        self.cluster_id = cluster_id


class ClusterDirectory:
    """Maps cluster IDs to their ``ClusterInfo`` and ``ClusterBackend``.

    Backends for configured clusters are created on first use and cached.
    Registered backends (e.g. in tests) are used as-is.
    """

    def __init__(self) -> None:
        self._clusters: dict[str, ClusterConfig] = {}
        self._backends: dict[str, ClusterBackend] = {}

    @classmethod
    def from_config(cls, clusters: list[ClusterConfig]) -> ClusterDirectory:
        """Build from configuration; with no clusters configured a demo cluster is served."""
        directory = cls()
        for cluster in clusters or [DEMO_CLUSTER]:
            directory.add(cluster)
        return directory

    def add(self, cluster: ClusterConfig, backend: ClusterBackend | None = None) -> None:
        self._clusters[cluster.id] = cluster
        if backend is not None:
            self._backends[cluster.id] = backend

    @property
    def cluster_ids(self) -> list[str]:
        return list(self._clusters.keys())

    def get(self, cluster_id: str) -> ClusterInfo:
        cluster = self._clusters.get(cluster_id)
        if cluster is None:
            raise ClusterNotFound(cluster_id)
        return ClusterInfo(id=cluster.id, name=cluster.name or cluster.id, version=cluster.version)

    def backend_for(self, cluster_id: str) -> ClusterBackend:
        backend = self._backends.get(cluster_id)
        if backend is not None:
            return backend
        cluster = self._clusters.get(cluster_id)
        if cluster is None:
            raise ClusterNotFound(cluster_id)

        if cluster.kubeconfig == "demo":
            backend = DemoClusterBackend()
        else:
            backend = KubernetesBackend.from_cluster_config(cluster)
        logger.info("Created %s for cluster %s", type(backend).__name__, cluster_id)
        self._backends[cluster_id] = backend
        return backend

    async def close(self) -> None:
        for backend in self._backends.values():
            await backend.close()
        self._backends.clear()
