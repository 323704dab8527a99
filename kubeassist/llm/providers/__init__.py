"""Chat-completion providers."""

from kubeassist.llm.providers.base import Provider, ProviderError
from kubeassist.llm.providers.openai_compat import OpenAICompatProvider

__all__ = ["OpenAICompatProvider", "Provider", "ProviderError"]
