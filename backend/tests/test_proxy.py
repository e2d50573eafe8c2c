"""
Point Cloud Annotator Backend: Gateway Proxy Tests
====================================================

What:  ProxyService forwarding rules and the gateway role's HTTP surface.
How:   The upstream handler is an httpx.MockTransport callback, so tests can
       inspect exactly what the gateway sent and script what it receives,
       including transport failures. Responses carry an unread byte stream,
       the way a real network response reaches the proxy.

What we test:
    ✅ Method, raw path, raw query, body and headers reach the upstream
    ✅ Upstream status, headers and raw body come back unchanged
    ✅ Connection refused → 503, timeout → 502, bad HANDLER_URL → 500
"""

import asyncio
import gzip
import json

import httpx
import pytest

from app.exceptions import BadGatewayError, ConfigurationError, ServiceUnavailableError
from app.services.proxy_service import ProxyService, escape_raw

HANDLER_URL = "http://handler.test:8081"


class ChunkStream(httpx.AsyncByteStream):
    """Response body that is only produced when iterated, optionally slowly."""

    def __init__(self, chunks, delay: float = 0.0):
        self._chunks = chunks
        self._delay = delay

    async def __aiter__(self):
        for chunk in self._chunks:
            if self._delay:
                await asyncio.sleep(self._delay)
            yield chunk

    async def aclose(self) -> None:
        pass


def recording_upstream(status_code=200, json_body=None, headers=None, content=None, delay=0.0):
    """MockTransport handler that records each request it receives."""
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        response_headers = httpx.Headers(headers)
        if content is not None:
            body = content
        else:
            body = json.dumps(json_body).encode()
            response_headers.setdefault("content-type", "application/json")
        return httpx.Response(
            status_code,
            headers=response_headers,
            stream=ChunkStream([body], delay=delay),
        )

    return handler, seen


def raising_upstream(exc: Exception):
    def handler(request: httpx.Request) -> httpx.Response:
        raise exc

    return handler


# ══════════════════════════════════════════════════════════════════════════
# ProxyService
# ══════════════════════════════════════════════════════════════════════════


class TestBuildTargetUrl:

    def test_path_and_query_come_from_request(self):
        proxy = ProxyService("http://handler:8081/ignored/path?drop=1")

        target = proxy.build_target_url(b"/api/v1/annotations/abc", b"a=1&b=two")

        assert str(target) == "http://handler:8081/api/v1/annotations/abc?a=1&b=two"

    def test_no_query(self):
        proxy = ProxyService(HANDLER_URL)

        assert str(proxy.build_target_url(b"/api/v1/annotations", b"")) == (
            "http://handler.test:8081/api/v1/annotations"
        )

    def test_encoded_slash_and_question_mark_kept(self):
        proxy = ProxyService(HANDLER_URL)

        target = proxy.build_target_url(b"/api/v1/annotations/a%2Fb%3Fc", b"")

        assert target.raw_path == b"/api/v1/annotations/a%2Fb%3Fc"
        assert target.query == b""

    def test_utf8_query_is_percent_encoded(self):
        proxy = ProxyService(HANDLER_URL)

        target = proxy.build_target_url(b"/api/v1/annotations", "q=é&tag=a b".encode("utf-8"))

        assert target.query == b"q=%C3%A9&tag=a%20b"

    def test_escape_raw(self):
        assert escape_raw(b"/a%2Fb") == b"/a%2Fb"
        assert escape_raw("/é #x".encode("utf-8")) == b"/%C3%A9%20%23x"

    @pytest.mark.parametrize("bad_url", ["not a url", "handler:8081", "ftp://handler/", "http://"])
    def test_unusable_upstream_raises_configuration_error(self, bad_url):
        proxy = ProxyService(bad_url)

        with pytest.raises(ConfigurationError):
            proxy.build_target_url(b"/api/v1/annotations", b"")

    def test_unbuildable_path_is_bad_gateway(self, monkeypatch):
        proxy = ProxyService(HANDLER_URL)

        def reject(self, **kwargs):
            raise httpx.InvalidURL("Invalid non-printable ASCII character in URL")

        monkeypatch.setattr(httpx.URL, "copy_with", reject)

        with pytest.raises(BadGatewayError) as exc_info:
            proxy.build_target_url(b"/api/v1/annotations/x", b"")

        assert exc_info.value.status_code == 502


class TestOutboundHeaders:

    def test_drops_host_length_and_hop_by_hop(self):
        headers = ProxyService.outbound_headers(
            [
                ("host", "gateway:8080"),
                ("content-length", "12"),
                ("connection", "keep-alive"),
                ("transfer-encoding", "chunked"),
                ("authorization", "Bearer t"),
                ("x-custom", "1"),
                ("x-custom", "2"),
            ],
            has_body=False,
        )

        assert headers == [("authorization", "Bearer t"), ("x-custom", "1"), ("x-custom", "2")]

    def test_defaults_content_type_when_body_present(self):
        headers = ProxyService.outbound_headers([], has_body=True)

        assert headers == [("Content-Type", "application/json")]

    def test_keeps_client_content_type(self):
        headers = ProxyService.outbound_headers([("content-type", "text/plain")], has_body=True)

        assert headers == [("content-type", "text/plain")]


class TestProxyServiceForward:

    @pytest.mark.asyncio
    async def test_forwards_request_and_returns_response(self):
        handler, seen = recording_upstream(201, json_body={"data": {"id": "1"}})
        proxy = ProxyService(HANDLER_URL, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

        result = await proxy.forward(
            method="POST",
            raw_path=b"/api/v1/annotations",
            query=b"",
            headers=[("host", "gateway"), ("x-request-id", "abc")],
            body=b'{"title": "POI"}',
        )
        await proxy.close()

        assert result.status_code == 201
        assert json.loads(result.content) == {"data": {"id": "1"}}
        assert ("content-type", "application/json") in result.headers
        assert all(name.lower() != "content-length" for name, _ in result.headers)

        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == "http://handler.test:8081/api/v1/annotations"
        assert request.content == b'{"title": "POI"}'
        assert request.headers["content-type"] == "application/json"
        assert request.headers["x-request-id"] == "abc"
        assert request.headers["host"] == "handler.test:8081"

    @pytest.mark.asyncio
    async def test_connect_error_is_service_unavailable(self):
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(raising_upstream(httpx.ConnectError("refused")))
        )
        proxy = ProxyService(HANDLER_URL, client=client)

        with pytest.raises(ServiceUnavailableError) as exc_info:
            await proxy.forward("GET", b"/api/v1/annotations", b"", [], b"")
        await proxy.close()

        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_timeout_is_bad_gateway(self):
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(raising_upstream(httpx.ReadTimeout("slow")))
        )
        proxy = ProxyService(HANDLER_URL, client=client)

        with pytest.raises(BadGatewayError) as exc_info:
            await proxy.forward("GET", b"/api/v1/annotations", b"", [], b"")
        await proxy.close()

        assert exc_info.value.status_code == 502
        assert exc_info.value.error_code == "proxy_error"

    @pytest.mark.asyncio
    async def test_bad_url_never_calls_upstream(self):
        handler, seen = recording_upstream()
        proxy = ProxyService("::bad::", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

        with pytest.raises(ConfigurationError):
            await proxy.forward("GET", b"/api/v1/annotations", b"", [], b"")
        await proxy.close()

        assert seen == []

    def test_default_timeout(self):
        proxy = ProxyService(HANDLER_URL)

        assert proxy.timeout == 30.0
        assert proxy._client.timeout.read == 30.0

    @pytest.mark.asyncio
    async def test_slow_body_exceeds_total_timeout(self):
        # each chunk arrives inside the client's per-read timeout, the sum does not
        seen = []

        def dripping(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, stream=ChunkStream([b"a"] * 10, delay=0.05))

        client = httpx.AsyncClient(transport=httpx.MockTransport(dripping), timeout=1.0)
        proxy = ProxyService(HANDLER_URL, client=client, timeout=0.2)

        with pytest.raises(BadGatewayError) as exc_info:
            await proxy.forward("GET", b"/api/v1/annotations", b"", [], b"")
        await proxy.close()

        assert len(seen) == 1
        assert exc_info.value.status_code == 502
        assert exc_info.value.context["error_type"] == "TimeoutError"


# ══════════════════════════════════════════════════════════════════════════
# Gateway HTTP surface
# ══════════════════════════════════════════════════════════════════════════


class TestGatewayRoutes:

    @pytest.mark.asyncio
    async def test_list_is_relayed(self, make_gateway_client):
        handler, seen = recording_upstream(200, json_body={"data": []})
        client = make_gateway_client(handler)

        response = await client.get("/api/v1/annotations")

        assert response.status_code == 200
        assert response.json() == {"data": []}
        assert str(seen[0].url) == "http://handler.test:8081/api/v1/annotations"

    @pytest.mark.asyncio
    async def test_path_query_and_method_are_relayed(self, make_gateway_client):
        handler, seen = recording_upstream(204, content=b"")
        client = make_gateway_client(handler)

        response = await client.delete("/api/v1/annotations/abc-123?force=1")

        assert response.status_code == 204
        assert seen[0].method == "DELETE"
        assert seen[0].url.path == "/api/v1/annotations/abc-123"
        assert seen[0].url.query == b"force=1"

    @pytest.mark.asyncio
    async def test_encoded_path_segments_are_not_decoded(self, make_gateway_client):
        handler, seen = recording_upstream(404, json_body={"error": "not_found"})
        client = make_gateway_client(handler)

        await client.get("/api/v1/annotations/a%2Fb")
        await client.get("/api/v1/annotations/a%3Fb")

        assert seen[0].url.raw_path == b"/api/v1/annotations/a%2Fb"
        assert seen[1].url.raw_path == b"/api/v1/annotations/a%3Fb"
        assert seen[1].url.query == b""

    @pytest.mark.asyncio
    async def test_utf8_query_is_relayed(self, make_gateway_client):
        handler, seen = recording_upstream(200, json_body={"data": []})
        client = make_gateway_client(handler)

        response = await client.get("/api/v1/annotations", params={"q": "é"})

        assert response.status_code == 200
        assert seen[0].url.query == b"q=%C3%A9"

    @pytest.mark.asyncio
    async def test_upstream_errors_are_relayed_verbatim(self, make_gateway_client):
        body = {"error": "not_found", "message": "annotation not found", "request_id": "r1"}
        handler, _ = recording_upstream(404, json_body=body)
        client = make_gateway_client(handler)

        response = await client.get("/api/v1/annotations/missing")

        assert response.status_code == 404
        assert response.json() == body

    @pytest.mark.asyncio
    async def test_multi_valued_headers_survive(self, make_gateway_client):
        handler, _ = recording_upstream(
            200,
            json_body={"data": []},
            headers=[("set-cookie", "a=1"), ("set-cookie", "b=2"), ("x-upstream", "yes")],
        )
        client = make_gateway_client(handler)

        response = await client.get("/api/v1/annotations")

        assert response.headers.get_list("set-cookie") == ["a=1", "b=2"]
        assert response.headers["x-upstream"] == "yes"

    @pytest.mark.asyncio
    async def test_encoded_body_is_not_altered(self, make_gateway_client):
        payload = json.dumps({"data": []}).encode()
        compressed = gzip.compress(payload)
        handler, _ = recording_upstream(
            200,
            content=compressed,
            headers={"content-encoding": "gzip", "content-type": "application/json"},
        )
        client = make_gateway_client(handler)

        response = await client.get("/api/v1/annotations")

        assert response.headers["content-encoding"] == "gzip"
        assert response.json() == {"data": []}

    @pytest.mark.asyncio
    async def test_upstream_refused_is_503(self, make_gateway_client):
        client = make_gateway_client(raising_upstream(httpx.ConnectError("refused")))

        response = await client.get("/api/v1/annotations")

        assert response.status_code == 503
        assert response.json()["error"] == "service_unavailable"

    @pytest.mark.asyncio
    async def test_upstream_timeout_is_502(self, make_gateway_client):
        client = make_gateway_client(raising_upstream(httpx.ReadTimeout("slow")))

        response = await client.post(
            "/api/v1/annotations", json={"x": 0, "y": 0, "z": 0, "title": "t"}
        )

        assert response.status_code == 502
        assert response.json()["error"] == "proxy_error"

    @pytest.mark.asyncio
    async def test_bad_handler_url_is_500(self, make_gateway_client):
        handler, seen = recording_upstream()
        client = make_gateway_client(handler, handler_url="handler-without-scheme")

        response = await client.get("/api/v1/annotations")

        assert response.status_code == 500
        assert response.json()["error"] == "configuration_error"
        assert seen == []

    @pytest.mark.asyncio
    async def test_gateway_health_reports_identity(self, make_gateway_client):
        handler, seen = recording_upstream()
        client = make_gateway_client(handler)

        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["role"] == "gateway"
        assert body["service"] == "point-cloud-annotator"
        assert body["status"] == "healthy"
        assert body["database"] is None
        assert seen == []
