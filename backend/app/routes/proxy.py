"""
Point Cloud Annotator Backend: Proxy Routes (Gateway Role)
============================================================

Catch-all routes that hand every /api/v1/annotations request to the
ProxyService and replay the upstream response as-is: status, headers and raw
body bytes.
"""

from fastapi import APIRouter, Request, Response

from app.dependencies import ProxyServiceDep

router = APIRouter(prefix="/api/v1", tags=["Proxy"])

PROXIED_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


async def _relay(request: Request, proxy: ProxyServiceDep) -> Response:
    body = await request.body()
    # raw bytes as received; request.url would decode %2F, %3F and UTF-8
    raw_path = request.scope.get("raw_path") or request.url.path.encode("utf-8")
    upstream = await proxy.forward(
        method=request.method,
        raw_path=raw_path,
        query=request.scope.get("query_string", b""),
        headers=request.headers.items(),
        body=body,
    )

    response = Response(content=upstream.content, status_code=upstream.status_code)
    # append, not assign: repeated names such as set-cookie must all survive
    for name, value in upstream.headers:
        response.headers.append(name, value)
    return response


router.add_api_route(
    "/annotations",
    _relay,
    methods=PROXIED_METHODS,
    include_in_schema=False,
)
router.add_api_route(
    "/annotations/{path:path}",
    _relay,
    methods=PROXIED_METHODS,
    include_in_schema=False,
)
