"""Cluster backend interface (abstract)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


class BackendError(Exception):
    """Structured error from a cluster operation."""

    def __init__(self, message: str, code: str = ""):
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class ClusterInfo:
    """Identity of one managed cluster, as shown to the model."""

    id: str
    name: str
    version: str = ""


class ClusterBackend(ABC):
    """
    Typed access to one Kubernetes cluster.

    List and get operations return plain JSON-ready summaries.  Every
    operation accepts a *timeout* in seconds (``None`` for the client
    default) and raises ``BackendError`` on failure.  ``scale_deployment``
    and ``restart_deployment`` are the only operations that change the
    cluster.
    """

    @abstractmethod
    async def list_pods(self, namespace: str = "", *, timeout: float | None = None) -> list[dict]:
        ...

    @abstractmethod
    async def get_pod(self, namespace: str, name: str, *, timeout: float | None = None) -> dict:
        ...

    @abstractmethod
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
        ...

    @abstractmethod
    async def list_deployments(self, namespace: str = "", *, timeout: float | None = None) -> list[dict]:
        ...

    @abstractmethod
    async def get_deployment(self, namespace: str, name: str, *, timeout: float | None = None) -> dict:
        ...

    @abstractmethod
    async def list_nodes(self, *, timeout: float | None = None) -> list[dict]:
        ...

    @abstractmethod
    async def get_node(self, name: str, *, timeout: float | None = None) -> dict:
        ...

    @abstractmethod
    async def list_events(self, namespace: str = "", *, timeout: float | None = None) -> list[dict]:
        """Events oldest first; ``object`` is ``Kind/name`` of the involved resource."""
        ...

    @abstractmethod
    async def list_services(self, namespace: str = "", *, timeout: float | None = None) -> list[dict]:
        ...

    @abstractmethod
    async def list_ingresses(self, namespace: str = "", *, timeout: float | None = None) -> list[dict]:
        ...

    @abstractmethod
    async def scale_deployment(
        self, namespace: str, name: str, replicas: int, *, timeout: float | None = None
    ) -> dict:
        ...

    @abstractmethod
    async def restart_deployment(
        self, namespace: str, name: str, *, timeout: float | None = None
    ) -> dict:
        ...

    async def close(self) -> None:
        """Release client resources.  Default does nothing."""
        return None
