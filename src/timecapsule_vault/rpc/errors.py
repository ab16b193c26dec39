"""Endpoint-level errors raised by the JSON-RPC transport.

These never cross the access-layer boundary on their own: the resilient client
absorbs them, or wraps the last one in ``AllEndpointsExhausted``.
"""

from typing import Any


class EndpointError(Exception):
    """Failure of one request against one endpoint."""

    def __init__(self, url: str, message: str) -> None:
        super().__init__(message)
        self.url = url
        self.message = message


class EndpointTimeout(EndpointError):
    """The endpoint did not answer within the attempt timeout."""


class TransportFailure(EndpointError):
    """Connection-level rejection (DNS, TLS, refused connection, CORS-style blocks)."""


class HTTPStatusFailure(EndpointError):
    """Non-success HTTP status."""

    def __init__(self, url: str, status_code: int, message: str) -> None:
        super().__init__(url, message)
        self.status_code = status_code


class RateLimited(HTTPStatusFailure):
    """HTTP 429 or a provider-specific rate-limit signal."""

    def __init__(self, url: str, message: str = "Too Many Requests", retry_after: int | None = None) -> None:
        super().__init__(url, 429, message)
        self.retry_after = retry_after


class MalformedResponse(EndpointError):
    """Body was not valid JSON or not a JSON-RPC response."""


class JsonRpcError(EndpointError):
    """
    JSON-RPC ``error`` object returned by the endpoint.

    Parameters
    ----------
    url : str
        Endpoint URL
    code : int
        JSON-RPC error code
    message : str
        Error message from the endpoint
    data : Any
        Optional error data (revert payload for execution errors)

    """

    def __init__(self, url: str, code: int, message: str, data: Any = None) -> None:
        super().__init__(url, message)
        self.code = code
        self.data = data

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class ChainIdMismatch(EndpointError):
    """Endpoint reports a chain id other than the network's declared one."""

    def __init__(self, url: str, expected: int, reported: int) -> None:
        super().__init__(url, f"Endpoint reports chain id {reported}, expected {expected}")
        self.expected = expected
        self.reported = reported
