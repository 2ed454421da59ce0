"""
Outbound HTTP calls to downstream edge functions.

Every call carries the service credential and, when given, an
``x-idempotency-key`` header so the endpoint can deduplicate retried calls
for the same workflow step. Calls run under a hard deadline: on expiry the
request is cancelled and ``DispatchTimeoutError`` is raised. Non-2xx
responses are returned, not raised.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urljoin

import httpx

from orchestrator.config import Settings
from orchestrator.core.logging import get_logger

logger = get_logger(__name__)

IDEMPOTENCY_HEADER = "x-idempotency-key"


class DispatchError(Exception):
    """Base error for calls that did not produce an HTTP response."""


class DispatchTimeoutError(DispatchError):
    """The call did not settle within its deadline and was cancelled."""

    def __init__(self, timeout_ms: int) -> None:
        super().__init__(f"Request timeout after {timeout_ms}ms")
        self.timeout_ms = timeout_ms


class DispatchNetworkError(DispatchError):
    """Connection-level failure (DNS, refused, reset, TLS)."""


@dataclass
class HttpResponse:
    """Settled response of a dispatch call."""

    ok: bool
    status: int
    status_text: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None


def _safe_body(response: httpx.Response) -> Any:
    """Parse JSON, wrapping anything unparseable as ``{"text": ...}``."""
    try:
        return response.json()
    except ValueError:
        return {"text": response.text}


class HttpDispatcher:
    """Bounded, cancellable HTTP client for job and workflow dispatch."""

    def __init__(
        self,
        settings: Settings,
        *,
        base_url: str | None = None,
        credential: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url if base_url is not None else settings.edge_base_url
        self._credential = credential if credential is not None else settings.edge_service_jwt
        self._default_timeout_ms = settings.dispatch_timeout_ms
        self._transport = transport

    def resolve(self, endpoint: str) -> str:
        """Resolve a path against the base URL; absolute URLs pass through."""
        return urljoin(self._base_url, endpoint)

    def _build_headers(
        self, headers: dict[str, str] | None, idempotency_key: str | None
    ) -> dict[str, str]:
        request_headers = {
            "content-type": "application/json",
            "authorization": f"Bearer {self._credential}",
        }
        request_headers.update(headers or {})
        if idempotency_key:
            request_headers[IDEMPOTENCY_HEADER] = idempotency_key
        return request_headers

    async def call(
        self,
        endpoint: str,
        *,
        method: str = "POST",
        headers: dict[str, str] | None = None,
        body: Any = None,
        timeout_ms: int | None = None,
        idempotency_key: str | None = None,
    ) -> HttpResponse:
        """
        Perform one HTTP call under a hard deadline.

        Args:
            endpoint: Path (resolved against the base URL) or absolute URL
            method: HTTP method
            headers: Extra headers, merged over the defaults
            body: JSON-serializable request body, omitted when None
            timeout_ms: Deadline for the whole call, defaults to settings
            idempotency_key: Sent as x-idempotency-key when set

        Returns:
            HttpResponse, whatever the status code

        Raises:
            DispatchTimeoutError: Deadline exceeded, request cancelled
            DispatchNetworkError: No response could be obtained
        """
        timeout_ms = timeout_ms or self._default_timeout_ms
        timeout_s = timeout_ms / 1000
        url = self.resolve(endpoint)
        method = method.upper()
        request_headers = self._build_headers(headers, idempotency_key)

        logger.bind(method=method, url=url, idempotency_key=idempotency_key).debug(
            "dispatch_call_started"
        )

        try:
            async with asyncio.timeout(timeout_s):
                async with httpx.AsyncClient(
                    transport=self._transport, timeout=timeout_s
                ) as client:
                    response = await client.request(
                        method,
                        url,
                        headers=request_headers,
                        json=body,
                    )
        except (TimeoutError, httpx.TimeoutException) as e:
            logger.bind(method=method, url=url, timeout_ms=timeout_ms).warning(
                "dispatch_call_timeout"
            )
            raise DispatchTimeoutError(timeout_ms) from e
        except httpx.TransportError as e:
            logger.bind(method=method, url=url, error=str(e)).warning("dispatch_call_network_error")
            raise DispatchNetworkError(str(e) or type(e).__name__) from e

        result = HttpResponse(
            ok=response.is_success,
            status=response.status_code,
            status_text=response.reason_phrase,
            headers=dict(response.headers),
            body=_safe_body(response),
        )
        logger.bind(method=method, url=url, status=result.status).debug("dispatch_call_settled")
        return result

    async def get(self, endpoint: str, **kwargs: Any) -> HttpResponse:
        return await self.call(endpoint, method="GET", **kwargs)

    async def post(self, endpoint: str, **kwargs: Any) -> HttpResponse:
        return await self.call(endpoint, method="POST", **kwargs)

    async def put(self, endpoint: str, **kwargs: Any) -> HttpResponse:
        return await self.call(endpoint, method="PUT", **kwargs)

    async def delete(self, endpoint: str, **kwargs: Any) -> HttpResponse:
        return await self.call(endpoint, method="DELETE", **kwargs)


def is_success(response: HttpResponse) -> bool:
    """True for transport-ok 2xx responses."""
    return response.ok and 200 <= response.status < 300


def error_info(response: HttpResponse) -> str:
    """Human-readable error from a structured body, falling back to the status line."""
    body = response.body
    if isinstance(body, dict):
        for key in ("error", "message"):
            value = body.get(key)
            if value:
                return value if isinstance(value, str) else str(value)
    return f"HTTP {response.status}: {response.status_text}"
