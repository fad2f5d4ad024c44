"""FastAPI application exposing the domain test and a self-inspection endpoint."""

from __future__ import annotations

import logging
import platform
import sys
import time
from typing import Awaitable, Callable, Optional

import uvicorn
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse

from cdnsense import __version__
from cdnsense.detection import build_header_evidence
from cdnsense.errors import InvalidInputError
from cdnsense.export import build_api_payload
from cdnsense.models import DomainTestResult
from cdnsense.pipeline import normalize_domain, run_domain_test, utc_timestamp

logger = logging.getLogger(__name__)

DomainRunner = Callable[[str], Awaitable[DomainTestResult]]


def create_app(runner: Optional[DomainRunner] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    *runner* performs one domain test; by default it is the full pipeline,
    which shares the process-wide resolver health cache across requests.
    """
    app = FastAPI(
        title="cdnsense",
        description="Domain delivery-path and CDN inspection",
        version=__version__,
    )

    if runner is None:
        runner = run_domain_test

    router = APIRouter()

    async def _test(raw_domain: Optional[str]) -> JSONResponse:
        try:
            domain = normalize_domain(raw_domain)
        except InvalidInputError as exc:
            return JSONResponse({"error": str(exc), "timestamp": utc_timestamp()}, status_code=400)

        try:
            result = await runner(domain)
        except Exception as exc:
            logger.exception("Domain test for %s failed", domain)
            return JSONResponse(
                {"timestamp": utc_timestamp(), "domain": domain, "error": str(exc) or "Test failed"},
                status_code=500,
            )
        return JSONResponse(build_api_payload(result))

    @router.get("/test-domain")
    async def test_domain_get(domain: Optional[str] = None):
        """Run a domain test for ``?domain=``."""
        return await _test(domain)

    @router.post("/test-domain")
    async def test_domain_post(request: Request):
        """Run a domain test for ``{"domain": ...}``."""
        try:
            body = await request.json()
        except ValueError:
            return JSONResponse(
                {"error": "Invalid JSON body", "timestamp": utc_timestamp()}, status_code=400
            )
        domain = body.get("domain") if isinstance(body, dict) else None
        return await _test(domain)

    @router.get("/cdn-latency")
    async def cdn_latency_get(request: Request):
        """Report which CDN / proxy headers reached this server."""
        start = time.perf_counter()
        return _inspection(request, start, utc_timestamp())

    @router.post("/cdn-latency")
    async def cdn_latency_post(request: Request):
        """As GET, and echo the JSON request body."""
        start = time.perf_counter()
        requested_at = utc_timestamp()
        try:
            body = await request.json()
        except ValueError as exc:
            return JSONResponse(
                {
                    "timestamp": requested_at,
                    "serverProcessingTime": _elapsed_ms(start),
                    "error": "Invalid JSON body",
                    "errorDetails": str(exc),
                },
                status_code=400,
            )
        return _inspection(request, start, requested_at, request_data=body)

    app.include_router(router)
    app.include_router(router, prefix="/api")
    return app


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


def _inspection(request: Request, start: float, requested_at: str, request_data=None) -> JSONResponse:
    evidence = build_header_evidence(dict(request.headers))
    payload = {
        "timestamp": requested_at,
        "serverProcessingTime": _elapsed_ms(start),
        "cdnDetection": {
            "isThroughCDN": evidence.is_through_cdn,
            "hasProxyHeaders": evidence.has_proxy_headers,
            "headers": evidence.cdn_headers,
            "proxyHeaders": evidence.proxy_headers,
        },
        "requestInfo": {
            "method": request.method,
            "url": str(request.url),
            "userAgent": request.headers.get("user-agent") or "Unknown",
        },
        "serverInfo": {
            "pythonVersion": platform.python_version(),
            "platform": sys.platform,
            "arch": platform.machine(),
        },
    }
    if request.method == "POST":
        payload["requestData"] = request_data
    return JSONResponse(payload)


def run_server(host: str = "127.0.0.1", port: int = 8000, log_level: str = "info") -> None:
    """Run the API with uvicorn."""
    uvicorn.run(create_app(), host=host, port=port, log_level=log_level)
