import base64
import logging
from typing import Any, Optional

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.concurrency import run_in_threadpool

from ..errors import AllUpstreamsFailed, InvalidQueryError, NoUpstreamsAvailable
from ..flow import QueryFlow, QueryResult
from ..geo import DEFAULT_COUNTRY, DEFAULT_COUNTRY_HEADER, geo_lookup
from ..upstreams.performance import PerformanceTracker
from ..upstreams.race import DnsQuery

logger = logging.getLogger("dohrace.servers.doh_api")

_DNS_CT = "application/dns-message"
_ALL_METHODS = ["GET", "POST", "OPTIONS", "PUT", "PATCH", "DELETE", "HEAD"]

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def _b64url_decode_nopad(s: str) -> bytes:
    """
    Brief: Decode base64url without padding.

    Inputs:
    - s: base64url string without '='

    Outputs:
    - bytes: decoded binary

    Example:
        >>> _b64url_decode_nopad('AQI')
        b'\x01\x02'
    """
    if not isinstance(s, str):
        raise ValueError("input must be str")
    pad = "=" * ((4 - len(s) % 4) % 4)
    return base64.b64decode(s + pad, altchars=b"-_", validate=True)


def _text(status_code: int, body: str, headers: Optional[dict] = None) -> Response:
    return PlainTextResponse(body, status_code=status_code, headers=headers)


def _answer(result: QueryResult, cache_ttl: int) -> Response:
    headers = {
        "Cache-Control": f"public, max-age={cache_ttl}",
        **CORS_HEADERS,
        "X-Cache": "HIT" if result.cache_hit else "MISS",
        "X-Upstream": result.upstream or "unknown",
        "X-Latency": f"{int(round(result.latency_ms))}ms",
    }
    return Response(
        content=result.payload, status_code=200, media_type=_DNS_CT, headers=headers
    )


def create_doh_app(
    flow: QueryFlow,
    *,
    path: str = "/dns-query",
    cache_ttl: int = 300,
    country_header: str = DEFAULT_COUNTRY_HEADER,
    default_country: str = DEFAULT_COUNTRY,
    tracker: Optional[PerformanceTracker] = None,
    stats_path: Optional[str] = "/stats",
) -> Any:
    """
    Brief: Create FastAPI app implementing the RFC 8484 DoH proxy endpoint.

    Inputs:
    - flow: QueryFlow resolving validated queries
    - path: DoH endpoint path
    - cache_ttl: max-age advertised in Cache-Control
    - country_header / default_country: geo hint source
    - tracker: PerformanceTracker exposed on stats_path when both are set
    - stats_path: JSON stats path, None to disable

    Outputs:
    - FastAPI application.
    """

    app = FastAPI(
        title="dohrace",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    if tracker is not None and stats_path:

        @app.get(stats_path)
        async def stats() -> JSONResponse:
            """Brief: Return the per-upstream performance snapshot as JSON."""
            return JSONResponse({"upstreams": tracker.snapshot()})

    @app.api_route("/{full_path:path}", methods=_ALL_METHODS)
    async def dns_query(request: Request, full_path: str) -> Response:
        """
        Brief: Handle CORS preflight, GET ?dns= and POST application/dns-message.

        Inputs:
        - request: FastAPI Request

        Outputs:
        - Response; application/dns-message body on success.
        """
        try:
            return await _handle(request)
        except Exception as exc:
            logger.exception("DoH proxy error")
            return _text(500, f"Internal Server Error: {exc}")

    async def _handle(request: Request) -> Response:
        if request.method == "OPTIONS":
            return Response(
                status_code=204,
                headers={**CORS_HEADERS, "Access-Control-Max-Age": "86400"},
            )

        if request.url.path != path:
            return _text(404, f"DoH Proxy - Use {path} endpoint")

        if request.method == "GET":
            dns_param = request.query_params.get("dns")
            if not dns_param:
                return _text(400, "Missing dns parameter")
            try:
                payload = _b64url_decode_nopad(dns_param)
            except Exception:
                return _text(400, "Invalid dns parameter encoding")
        elif request.method == "POST":
            ctype = request.headers.get("content-type", "")
            if _DNS_CT not in ctype:
                return _text(
                    400, "Invalid Content-Type. Must be application/dns-message"
                )
            payload = await request.body()
        else:
            return _text(405, "Method not allowed. Use GET or POST", {"Allow": "GET, POST"})

        try:
            query = DnsQuery(payload, request.method)
        except InvalidQueryError:
            return _text(400, "Invalid DNS message size")

        region = geo_lookup(request.headers, country_header, default_country)
        # POST bodies are not part of the key: every POST to the same URL
        # shares one cache slot.
        cache_key = str(request.url)
        try:
            result = await run_in_threadpool(flow.resolve, query, region, cache_key)
        except NoUpstreamsAvailable as exc:
            return _text(502, str(exc))
        except AllUpstreamsFailed as exc:
            return _text(502, str(exc))
        return _answer(result, cache_ttl)

    return app


def build_server(
    app: Any,
    host: str,
    port: int,
    *,
    cert_file: Optional[str] = None,
    key_file: Optional[str] = None,
    log_level: str = "info",
    access_log: bool = False,
) -> Any:
    """Brief: Construct (but do not start) a uvicorn.Server for app."""
    import uvicorn

    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level=log_level,
        ssl_certfile=cert_file or None,
        ssl_keyfile=key_file or None,
        log_config=None,
        access_log=access_log,
    )
    return uvicorn.Server(config)
