"""kubeassist -- AI assistant for Kubernetes cluster operators."""

__version__ = "0.1.0"
