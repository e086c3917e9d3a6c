from __future__ import annotations

"""
Prometheus metrics for the multisig payout service.

Features
--------
- ASGI middleware recording per-route HTTP metrics:
    - http_requests_total{method,path,status}
    - http_request_duration_seconds histogram
    - http_inprogress_requests gauge
- Payout domain counters, incremented by the engine and preflight:
    - multisig_submissions_total{kind,result}       kind: as_multi|approve_as_multi
    - multisig_approval_transitions_total{status}   pending|threshold_met|executed|cancelled
    - multisig_preflight_findings_total{code,severity}
- FastAPI router mounted at /metrics.

Usage
-----
    from multisig_payouts.metrics import setup_metrics

    metrics = setup_metrics(app, service_version=__version__)
    metrics.record_submission("approve_as_multi", "ok")
"""

import os
import time
from typing import Any, Dict, Optional

from fastapi import APIRouter, FastAPI
from prometheus_client import (CONTENT_TYPE_LATEST, CollectorRegistry, Counter,
                               Gauge, Histogram, Info, PlatformCollector,
                               ProcessCollector, generate_latest)
from starlette.responses import PlainTextResponse, Response
from starlette.types import ASGIApp, Receive, Scope, Send


# ------------------------------ Registry -------------------------------------


class Metrics:
    """
    Holder for registry and metric objects. Exposed via app.state.metrics.

    Each instance owns its registry, so tests can build as many apps as they
    like without duplicate-timeseries errors.
    """

    def __init__(
        self, service_name: str = "multisig-payouts", service_version: Optional[str] = None
    ) -> None:
        self.registry = CollectorRegistry()
        ProcessCollector(registry=self.registry)
        PlatformCollector(registry=self.registry)

        self.http_inprogress = Gauge(
            "http_inprogress_requests",
            "In-progress HTTP requests",
            ["method", "path"],
            registry=self.registry,
        )
        self.http_requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "path", "status"],
            registry=self.registry,
        )
        self.http_request_duration_seconds = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "path", "status"],
            # chain submissions wait for inclusion, hence the long tail
            buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0),
            registry=self.registry,
        )

        # Domain
        self.submissions_total = Counter(
            "multisig_submissions_total",
            "Multisig extrinsic submissions by kind and result",
            ["kind", "result"],
            registry=self.registry,
        )
        self.approval_transitions_total = Counter(
            "multisig_approval_transitions_total",
            "Approval status transitions",
            ["status"],
            registry=self.registry,
        )
        self.preflight_findings_total = Counter(
            "multisig_preflight_findings_total",
            "Preflight findings by code and severity",
            ["code", "severity"],
            registry=self.registry,
        )

        self.service_info = Info("service", "Service metadata", registry=self.registry)
        payload = {"name": service_name}
        if service_version:
            payload["version"] = service_version
        self.service_info.info(payload)

    # --- domain helpers -------------------------------------------------------

    def record_submission(self, kind: str, result: str) -> None:
        self.submissions_total.labels(kind, result).inc()

    def record_transition(self, status: str) -> None:
        self.approval_transitions_total.labels(status).inc()

    def record_finding(self, code: str, severity: str) -> None:
        self.preflight_findings_total.labels(code, severity).inc()

    def render_latest(self) -> bytes:
        return generate_latest(self.registry)


# ------------------------------ Middleware -----------------------------------


def _extract_path_template(scope: Scope) -> str:
    """
    Low-cardinality path template from the matched route (e.g.
    ``/approvals/{approval_id}/votes``), falling back to the raw path.
    """
    route = scope.get("route")
    val = getattr(route, "path_format", None) or getattr(route, "path", None)
    if isinstance(val, str) and val:
        return val
    raw = scope.get("path")
    if isinstance(raw, str):
        return raw
    return (scope.get("raw_path") or b"").decode("latin-1", "ignore")


class PrometheusMiddleware:
    """
    Minimal ASGI middleware to record HTTP metrics.
    """

    def __init__(self, app: ASGIApp, metrics: Metrics):
        self.app = app
        self.metrics = metrics

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        method = scope.get("method", "GET")
        start = time.perf_counter()
        status_code = 500

        async def send_wrapped(message: Dict[str, Any]) -> None:
            nonlocal status_code
            if message.get("type") == "http.response.start":
                status_code = int(message.get("status", 500))
            await send(message)

        # route is only resolved once the router has run; use the raw path for
        # the in-progress gauge and the template for the final series
        raw_path = scope.get("path", "")
        self.metrics.http_inprogress.labels(method, raw_path).inc()
        try:
            await self.app(scope, receive, send_wrapped)
        finally:
            duration = time.perf_counter() - start
            labels = (method, _extract_path_template(scope), str(status_code))
            try:
                self.metrics.http_requests_total.labels(*labels).inc()
                self.metrics.http_request_duration_seconds.labels(*labels).observe(duration)
            finally:
                self.metrics.http_inprogress.labels(method, raw_path).dec()


# ------------------------------ Router ---------------------------------------


def create_metrics_router(metrics: Metrics, path: str = "/metrics") -> APIRouter:
    router = APIRouter()

    @router.get(path, include_in_schema=False)
    async def metrics_endpoint() -> Response:
        try:
            return Response(content=metrics.render_latest(), media_type=CONTENT_TYPE_LATEST)
        except Exception as e:  # exporters must never take the app down
            return PlainTextResponse(f"metrics error: {e}", status_code=500)

    return router


# ------------------------------ Setup helper ---------------------------------


def setup_metrics(
    app: FastAPI,
    *,
    service_name: str = "multisig-payouts",
    service_version: Optional[str] = None,
    path: Optional[str] = None,
) -> Metrics:
    """
    Create the registry, add the HTTP middleware and mount /metrics.

    Returns the `Metrics` instance and stores it in `app.state.metrics`.
    """
    metrics = Metrics(service_name=service_name, service_version=service_version)
    app.add_middleware(PrometheusMiddleware, metrics=metrics)
    app.include_router(create_metrics_router(metrics, path or os.getenv("METRICS_PATH") or "/metrics"))
    app.state.metrics = metrics
    return metrics


__all__ = [
    "Metrics",
    "PrometheusMiddleware",
    "create_metrics_router",
    "setup_metrics",
]
