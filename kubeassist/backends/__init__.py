"""Cluster backends."""

from kubeassist.backends.base import BackendError, ClusterBackend, ClusterInfo
from kubeassist.backends.demo import DemoClusterBackend
from kubeassist.backends.directory import ClusterDirectory, ClusterNotFound

__all__ = [
    "BackendError",
    "ClusterBackend",
    "ClusterDirectory",
    "ClusterInfo",
    "ClusterNotFound",
    "DemoClusterBackend",
]
