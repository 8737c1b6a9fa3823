# lugx_common/metrics.py
import time
from typing import Iterable

from fastapi import FastAPI, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Histogram, generate_latest


class ServiceMetrics:
    """
    Process-lifetime metrics for one service. Owns its own registry so two
    apps in the same interpreter (tests) never share counters.
    """

    def __init__(self, service: str):
        self.service = service
        self.registry = CollectorRegistry()
        self.requests = Counter(
            "http_requests_total", "Total HTTP requests",
            ["service", "path", "method", "status"], registry=self.registry,
        )
        self.latency = Histogram(
            "http_request_duration_seconds", "Request latency",
            ["service", "path", "method"], registry=self.registry,
        )

    def counter(self, name: str, documentation: str, labelnames: Iterable[str] = ()) -> Counter:
        return Counter(name, documentation, list(labelnames), registry=self.registry)

    def observe(self, path: str, method: str, status: int, elapsed: float) -> None:
        self.requests.labels(self.service, path, method, status).inc()
        self.latency.labels(self.service, path, method).observe(elapsed)

    def render(self) -> bytes:
        return generate_latest(self.registry)


def get_metrics(request: Request) -> ServiceMetrics:
    """FastAPI dependency: the metrics object installed on the app."""
    return request.app.state.metrics


def install_metrics(app: FastAPI, metrics: ServiceMetrics) -> None:
    app.state.metrics = metrics

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        start = time.time()
        response = await call_next(request)
        request.app.state.metrics.observe(
            request.url.path, request.method, response.status_code, time.time() - start
        )
        return response

    @app.get("/metrics")
    def metrics_endpoint(request: Request):
        return Response(request.app.state.metrics.render(), media_type=CONTENT_TYPE_LATEST)
