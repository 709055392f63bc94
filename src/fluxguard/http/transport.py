"""Request executor backed by httpx.

Performs exactly one attempt per call and reports every failure as a typed
HttpError, which is what the retry predicate and the circuit breaker inspect.
Retries, admission control and middleware are the caller's business.

Example:
    >>> async with HttpxExecutor(timeout=10.0) as executor:
    ...     client = ResilientClient(executor)
    ...     response = await client.request(RequestConfig(url="https://api.example.com/health"))
"""

from __future__ import annotations

import logging
import time

import httpx

from fluxguard.foundation.errors import ErrorCode, HttpError

from .models import RequestConfig, Response

logger = logging.getLogger("fluxguard.transport")


class HttpxExecutor:
    """Callable request executor: ``await executor(config) -> Response``.

    Args:
        client: Existing AsyncClient to use; closed by ``aclose`` only when
            this executor created it
        timeout: Default per-request timeout in seconds when the request
            config carries none
        follow_redirects: Passed to the AsyncClient this executor creates
        transport: Optional httpx transport (e.g. ``httpx.MockTransport``)
    """

    __slots__ = ("_client", "_owns_client", "_timeout", "_follow_redirects", "_transport")

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        timeout: float = 30.0,
        follow_redirects: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout
        self._follow_redirects = follow_redirects
        self._transport = transport

    # ─────────────────────────────────────────────────────────────────
    # HTTP Client
    # ─────────────────────────────────────────────────────────────────

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                follow_redirects=self._follow_redirects,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the httpx client if this executor owns it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> HttpxExecutor:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ─────────────────────────────────────────────────────────────────
    # Execution
    # ─────────────────────────────────────────────────────────────────

    def validate_status(self, status: int) -> bool:
        """Whether ``status`` counts as success. Override to accept more."""
        return 200 <= status < 300

    async def __call__(self, config: RequestConfig) -> Response:
        if config.signal is not None and config.signal.cancelled:
            raise HttpError("Request cancelled", code=ErrorCode.CANCELLED, config=config)

        timeout = config.timeout or self._timeout
        start = time.perf_counter()
        try:
            raw = await self._get_client().request(
                method=config.method,
                url=config.url,
                headers=config.headers or None,
                params=config.params or None,
                json=config.json_body,
                content=config.content,
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            raise HttpError(f"Request timed out after {timeout}s", code=ErrorCode.TIMEOUT, config=config) from e
        except httpx.ConnectError as e:
            raise HttpError(f"Connection error: {e}", code=ErrorCode.CONNECTION_ERROR, config=config) from e
        except httpx.NetworkError as e:
            raise HttpError(f"Network error: {e}", code=ErrorCode.NETWORK_ERROR, config=config) from e
        except httpx.HTTPError as e:
            raise HttpError(f"Request failed: {e}", config=config) from e

        response = Response(
            status=raw.status_code,
            headers=dict(raw.headers),
            data=_decode(raw),
            url=str(raw.url),
            elapsed=time.perf_counter() - start,
            config=config,
        )
        if not self.validate_status(response.status):
            logger.debug("%s %s -> %d", config.method, config.url, response.status)
            raise HttpError(
                f"Request failed with status code {response.status}",
                code=ErrorCode.BAD_RESPONSE,
                response=response,
                config=config,
            )
        return response


def _decode(raw: httpx.Response) -> object:
    """JSON body when the server says so, else text; empty bodies decode to None."""
    if not raw.content:
        return None
    if "json" in raw.headers.get("content-type", ""):
        try:
            return raw.json()
        except ValueError:
            logger.debug("Response declared JSON but did not parse; returning text")
    return raw.text
