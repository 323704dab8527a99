"""Errors raised by the LLM subsystem."""


class ProviderError(Exception):
    """The model endpoint could not be used (transport, status or protocol)."""

    def __init__(self, message: str, status_code: int | None = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class StreamProtocolError(ProviderError):
    """The response stream violated the wire format beyond recovery."""
