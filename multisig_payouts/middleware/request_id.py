from __future__ import annotations

"""
Request ID middleware with structured access logging.

- Generates or propagates a stable **X-Request-Id** for every request and
  exposes it as `request.state.request_id`.
- Binds request_id / method / path into structlog contextvars for the
  duration of the request, so engine logs carry them without plumbing.
- Emits one `http_request` log line per request with status and latency.

Usage
-----
    from fastapi import FastAPI
    from multisig_payouts.middleware.request_id import install_request_id_middleware

    app = FastAPI()
    install_request_id_middleware(app)

Request IDs are *not secrets*; they are safe to echo in logs and headers.
"""

import re
import time
import uuid

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from multisig_payouts.logging import bind_request_context, clear_request_context, get_logger

log = get_logger("access")

REQUEST_ID_HEADER = "X-Request-Id"
_VALID_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        req_id = request.headers.get(REQUEST_ID_HEADER.lower())
        # Inbound ids end up in logs; reject anything that is not a plain token
        if not req_id or not _VALID_ID.match(req_id):
            req_id = uuid.uuid4().hex
        request.state.request_id = req_id

        bind_request_context(request_id=req_id, method=request.method, path=request.url.path)
        started = time.perf_counter()
        try:
            response: Response = await call_next(request)
            log.info(
                "http_request",
                status=response.status_code,
                latency_ms=round((time.perf_counter() - started) * 1000, 2),
            )
        finally:
            clear_request_context("request_id", "method", "path")

        response.headers[REQUEST_ID_HEADER] = req_id
        return response


def install_request_id_middleware(app: FastAPI) -> None:
    app.add_middleware(RequestIdMiddleware)


__all__ = ["RequestIdMiddleware", "install_request_id_middleware", "REQUEST_ID_HEADER"]
