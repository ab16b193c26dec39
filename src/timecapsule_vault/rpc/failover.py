"""Sequential endpoint failover for a single logical RPC call."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from timecapsule_vault.core.errors import AllEndpointsExhausted, RPCCallRejected
from timecapsule_vault.core.models import EndpointAttempt
from timecapsule_vault.rpc.classifier import ErrorClass, ErrorClassifier
from timecapsule_vault.rpc.errors import EndpointError, EndpointTimeout
from timecapsule_vault.rpc.retry import RetryConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RPCRequest:
    """JSON-RPC method and positional params."""

    method: str
    params: tuple[Any, ...] = ()


@dataclass
class AttemptOutcome:
    """Result of a successful call plus the attempts it took, in order."""

    result: Any
    url: str
    attempts: list[EndpointAttempt] = field(default_factory=list)


Send = Callable[[str, RPCRequest], Awaitable[Any]]


async def attempt(
    endpoints: Sequence[str],
    request: RPCRequest,
    send: Send,
    *,
    classifier: ErrorClassifier,
    timeout: float,
    network_id: str = "",
    short_circuit_fatal: bool = False,
    retry_config: RetryConfig | None = None,
) -> AttemptOutcome:
    """
    Run one logical call against ``endpoints`` in order until one succeeds.

    Attempts are strictly sequential: the next endpoint is only contacted once
    the previous one has failed. Each attempt is bounded by ``timeout``; a
    timeout counts as a retryable failure of that endpoint only.

    Parameters
    ----------
    endpoints : Sequence[str]
        Endpoint URLs in registry order
    request : RPCRequest
        Call to perform
    send : Send
        Coroutine function performing the call against one URL
    classifier : ErrorClassifier
        Tags endpoint errors as retryable or fatal
    timeout : float
        Per-attempt timeout in seconds
    network_id : str
        Network label for errors and logs
    short_circuit_fatal : bool
        Stop at the first fatal-class error instead of trying the next endpoint
    retry_config : RetryConfig | None
        Extra passes over the list after exhaustion (default: none)

    Returns
    -------
    AttemptOutcome
        Result, answering endpoint, and attempt log

    Raises
    ------
    AllEndpointsExhausted
        If every endpoint failed on every pass
    RPCCallRejected
        If ``short_circuit_fatal`` is set and an endpoint returned a fatal error

    """
    if not endpoints:
        msg = "attempt() requires at least one endpoint"
        raise ValueError(msg)

    retry_config = retry_config or RetryConfig()
    attempts: list[EndpointAttempt] = []
    last_error: Exception | None = None

    for pass_index in range(retry_config.passes):
        for url in endpoints:
            started = time.monotonic()
            try:
                result = await asyncio.wait_for(send(url, request), timeout)
            except TimeoutError:
                error: EndpointError = EndpointTimeout(url, f"No response within {timeout:g}s")
            except EndpointError as e:
                error = e
            else:
                attempts.append(EndpointAttempt(url=url, ok=True, elapsed=time.monotonic() - started))
                if len(attempts) > 1:
                    logger.info(
                        "%s %s answered by %s after %d failed attempts",
                        network_id,
                        request.method,
                        url,
                        len(attempts) - 1,
                    )
                return AttemptOutcome(result=result, url=url, attempts=attempts)

            error_class = classifier.classify(error)
            attempts.append(
                EndpointAttempt(
                    url=url,
                    ok=False,
                    error_class=error_class.value,
                    error=str(error),
                    elapsed=time.monotonic() - started,
                )
            )
            last_error = error
            logger.warning("RPC endpoint %s failed on %s (%s): %s", url, request.method, error_class, error)

            if error_class == ErrorClass.FATAL and short_circuit_fatal:
                raise RPCCallRejected(request.method, str(error), cause=error) from error

        if pass_index + 1 < retry_config.passes:
            delay = retry_config.get_delay(pass_index)
            logger.debug("All %d endpoints failed on %s, next pass in %.1fs", len(endpoints), request.method, delay)
            await asyncio.sleep(delay)

    raise AllEndpointsExhausted(network_id, request.method, last_error, attempts) from last_error
