"""JSON-RPC over HTTP for a single endpoint."""

import itertools
from typing import Any

import httpx

from timecapsule_vault.rpc.errors import (
    EndpointTimeout,
    HTTPStatusFailure,
    JsonRpcError,
    MalformedResponse,
    RateLimited,
    TransportFailure,
)
from timecapsule_vault.rpc.failover import RPCRequest


def _parse_retry_after(response: httpx.Response) -> int | None:
    value = response.headers.get("Retry-After")
    try:
        return int(value) if value else None
    except ValueError:
        return None


class JsonRpcTransport:
    """
    Sends JSON-RPC requests to one endpoint at a time and maps every failure
    to an ``EndpointError`` subclass.

    Parameters
    ----------
    client : httpx.AsyncClient
        Shared HTTP client
    timeout : float
        Request timeout in seconds

    """

    def __init__(self, client: httpx.AsyncClient, timeout: float = 10.0) -> None:
        self.client = client
        self.timeout = timeout
        self._ids = itertools.count(1)

    async def send(self, url: str, request: RPCRequest) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": request.method,
            "params": list(request.params),
        }

        try:
            response = await self.client.post(url, json=payload, timeout=self.timeout)
        except httpx.TimeoutException as e:
            raise EndpointTimeout(url, f"Request timeout: {e}") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TransportFailure(url, f"HTTP request failed: {e}") from e

        if response.status_code == 429:
            raise RateLimited(url, retry_after=_parse_retry_after(response))
        if response.status_code >= 400:
            msg = f"HTTP error {response.status_code}"
            raise HTTPStatusFailure(url, response.status_code, msg)

        try:
            body = response.json()
        except ValueError as e:
            raise MalformedResponse(url, "Response is not valid JSON") from e

        # Some providers wrap single responses in a one-element batch
        if isinstance(body, list) and len(body) == 1:
            body = body[0]

        if not isinstance(body, dict) or ("result" not in body and "error" not in body):
            raise MalformedResponse(url, "Response is not a JSON-RPC object")

        error = body.get("error")
        if error is not None:
            if isinstance(error, dict):
                code = error.get("code")
                code = code if isinstance(code, int) else 0
                raise JsonRpcError(url, code, str(error.get("message", "")), error.get("data"))
            raise JsonRpcError(url, 0, str(error))

        return body["result"]
