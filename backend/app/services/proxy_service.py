"""
Point Cloud Annotator Backend: Proxy Service (Gateway Role)
=============================================================

What:  Forwards an inbound HTTP request to the handler service and returns the
       upstream response untouched.
How:   One shared httpx.AsyncClient. The request body is buffered in full
       before forwarding; the response body is read raw, so any
       Content-Encoding chosen by the upstream is passed through intact.
Who:   Called by the catch-all routes in app/routes/proxy.py.

Target URL:
    scheme, host and port come from HANDLER_URL only; path and query come
    from the inbound request only, as the raw bytes the client sent. Escapes
    such as %2F or %3F therefore reach the handler unchanged.

Timeout:
    httpx applies its timeout to each connect/read/write step separately, so
    sending and reading the body are additionally wrapped in one
    asyncio.wait_for(). A slow-dripping upstream cannot outlive the budget.

Failure mapping:
    malformed HANDLER_URL         → ConfigurationError      (500, no call made)
    connection refused/unreachable→ ServiceUnavailableError (503)
    timeout, any other transport  → BadGatewayError         (502)
    unusable inbound path/query   → BadGatewayError         (502, no call made)

No retries, no circuit breaking, single static upstream.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import httpx

from app.exceptions import BadGatewayError, ConfigurationError, ServiceUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0

# Connection-scoped headers (RFC 9110 §7.6.1) plus the ones the HTTP client
# recomputes for the outbound message
HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "proxy-connection",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
})
REQUEST_SKIP_HEADERS = HOP_BY_HOP_HEADERS | {"host", "content-length"}
RESPONSE_SKIP_HEADERS = HOP_BY_HOP_HEADERS | {"content-length"}

Headers = List[Tuple[str, str]]


def escape_raw(raw: bytes) -> bytes:
    """
    Percent-encode bytes that cannot appear literally in a URL.

    Printable ASCII passes through untouched (existing %XX escapes included);
    spaces, '#', control bytes and non-ASCII bytes such as raw UTF-8 become
    %XX.
    """
    return b"".join(
        bytes([b]) if 0x21 <= b <= 0x7E and b != 0x23 else b"%%%02X" % b
        for b in raw
    )


@dataclass
class ProxiedResponse:
    """Upstream response, ready to be replayed to the client."""
    status_code: int
    content: bytes
    headers: Headers = field(default_factory=list)


class ProxyService:
    """Transparent single-upstream HTTP forwarder."""

    def __init__(
        self,
        upstream_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        """
        Args:
            upstream_url: Base URL of the handler, e.g. http://handler:8081
            client: Shared client; created with `timeout` when omitted.
            timeout: Seconds allowed for one whole exchange, from sending the
                request to the last byte of the response body.
        """
        self.upstream_url = upstream_url
        self.timeout = timeout
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        await self._client.aclose()

    def upstream_base(self) -> httpx.URL:
        """
        The configured upstream as an absolute http(s) URL.

        Raises:
            ConfigurationError: HANDLER_URL is unusable
        """
        try:
            base = httpx.URL(self.upstream_url)
        except (httpx.InvalidURL, TypeError, ValueError) as e:
            logger.error("Invalid handler URL %r: %s", self.upstream_url, e)
            raise ConfigurationError(context={"handler_url": self.upstream_url}) from e

        if base.scheme not in ("http", "https") or not base.host:
            logger.error("Invalid handler URL %r: need an absolute http(s) URL", self.upstream_url)
            raise ConfigurationError(context={"handler_url": self.upstream_url})
        return base

    def build_target_url(self, raw_path: bytes, query: bytes = b"") -> httpx.URL:
        """
        Upstream base with the inbound raw path and query substituted.

        Raises:
            ConfigurationError: the configured upstream is unusable
            BadGatewayError: the inbound path/query cannot form a URL
        """
        base = self.upstream_base()

        target = escape_raw(raw_path or b"/")
        if query:
            target += b"?" + escape_raw(query)

        try:
            return base.copy_with(raw_path=target)
        except (httpx.InvalidURL, UnicodeError, TypeError, ValueError) as e:
            logger.warning("Cannot build upstream URL for %r: %s", target, e)
            raise BadGatewayError(
                context={"raw_path": target.decode("ascii"), "error_type": type(e).__name__}
            ) from e

    @staticmethod
    def outbound_headers(headers: Sequence[Tuple[str, str]], has_body: bool) -> Headers:
        """Inbound headers minus connection-scoped ones, with a JSON default type."""
        forwarded = [
            (name, value) for name, value in headers
            if name.lower() not in REQUEST_SKIP_HEADERS
        ]
        if has_body and not any(name.lower() == "content-type" for name, _ in forwarded):
            forwarded.append(("Content-Type", "application/json"))
        return forwarded

    async def _exchange(self, request: httpx.Request) -> Tuple[httpx.Response, bytes]:
        response = await self._client.send(request, stream=True)
        try:
            content = b"".join([chunk async for chunk in response.aiter_raw()])
        finally:
            await response.aclose()
        return response, content

    async def forward(
        self,
        method: str,
        raw_path: bytes,
        query: bytes,
        headers: Sequence[Tuple[str, str]],
        body: bytes,
    ) -> ProxiedResponse:
        """
        Relay one request to the handler and return its response.

        Raises:
            ConfigurationError: malformed upstream URL (nothing sent)
            ServiceUnavailableError: the upstream could not be connected to
            BadGatewayError: timeout, any other transport failure, or an
                inbound path that cannot be forwarded
        """
        target = self.build_target_url(raw_path, query)
        logger.debug("Proxying %s %s", method, target)

        request = self._client.build_request(
            method,
            target,
            headers=self.outbound_headers(headers, has_body=bool(body)),
            content=body or None,
        )

        try:
            response, content = await asyncio.wait_for(
                self._exchange(request), timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            logger.error("Proxying %s %s exceeded %.1fs", method, target, self.timeout)
            raise BadGatewayError(
                context={"target": str(target), "error_type": "TimeoutError"}
            ) from e
        except httpx.ConnectError as e:
            logger.error("Handler unreachable at %s: %s", target, e)
            raise ServiceUnavailableError(context={"target": str(target)}) from e
        except httpx.TransportError as e:
            logger.error("Failed to proxy %s %s: %s: %s", method, target, type(e).__name__, e)
            raise BadGatewayError(
                context={"target": str(target), "error_type": type(e).__name__}
            ) from e

        return ProxiedResponse(
            status_code=response.status_code,
            content=content,
            headers=[
                (name, value) for name, value in response.headers.multi_items()
                if name.lower() not in RESPONSE_SKIP_HEADERS
            ],
        )
