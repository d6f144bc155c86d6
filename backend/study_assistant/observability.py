"""Observability helpers: structured AI event logs, request logging and metrics."""

from __future__ import annotations

import json
import logging
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterable, Protocol

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
logger = logging.getLogger(__name__)
ai_logger = logging.getLogger("study_assistant.ai")

DEFAULT_BUCKETS_MS = [50, 100, 250, 500, 1000, 2500, 5000, 10000]

_AI_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


def get_request_id() -> str | None:
    """Return the current request id if set by middleware."""
    return request_id_ctx.get()


def log_ai_event(level: str, event: str, **fields: Any) -> dict[str, Any]:
    """Emit a structured AI event as one JSON log line.

    Typical fields: user_id, model, is_fallback, rag_used, context_found,
    latency_ms, error, metadata. Fields set to None are left out.

    Returns:
        The logged payload.
    """
    payload: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "event": event,
        "request_id": get_request_id(),
    }
    payload.update({key: value for key, value in fields.items() if value is not None})

    ai_logger.log(
        _AI_LOG_LEVELS.get(level, logging.INFO),
        f"[AI:{level.upper()}] {event} {json.dumps(payload, ensure_ascii=False, default=str)}",
    )
    return payload


class MetricsBackend(Protocol):
    """Metrics backend interface."""

    def observe_request(
        self,
        method: str,
        path: str,
        status_code: int,
        duration_ms: float,
    ) -> None:
        ...

    def observe_external_api(
        self,
        provider: str,
        operation: str,
        status_code: int,
        duration_ms: float,
    ) -> None:
        ...

    def observe_retrieval(
        self,
        query_backend: str,
        was_expanded: bool,
        result_count: int,
    ) -> None:
        ...

    def render_prometheus(self) -> str:
        ...


class PrometheusMetrics:
    """Prometheus client-based metrics backend.

    Each instance owns its registry, so tests can create one per case
    and read values back with ``registry.get_sample_value``.
    """

    def __init__(self, buckets_ms: Iterable[int] | None = None) -> None:
        self.registry = CollectorRegistry()
        buckets = list(buckets_ms or DEFAULT_BUCKETS_MS)

        self._http_requests = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "path", "status"],
            registry=self.registry,
        )
        self._http_duration_ms = Histogram(
            "http_request_duration_ms",
            "Request duration in milliseconds",
            ["method", "path"],
            buckets=buckets,
            registry=self.registry,
        )
        # Transport failures are recorded with status "0"
        self._external_requests = Counter(
            "external_api_requests_total",
            "Calls to embedding and chat providers",
            ["operation", "provider", "status"],
            registry=self.registry,
        )
        self._external_duration_ms = Histogram(
            "external_api_duration_ms",
            "Provider call duration in milliseconds",
            ["operation", "provider"],
            buckets=buckets,
            registry=self.registry,
        )
        self._retrievals = Counter(
            "rag_retrievals_total",
            "Knowledge-base retrievals by query embedding backend",
            ["backend", "expanded"],
            registry=self.registry,
        )
        self._retrieval_results = Counter(
            "rag_results_total",
            "Results returned by knowledge-base retrievals",
            ["backend"],
            registry=self.registry,
        )

    def observe_request(
        self,
        method: str,
        path: str,
        status_code: int,
        duration_ms: float,
    ) -> None:
        self._http_requests.labels(method=method, path=path, status=str(status_code)).inc()
        self._http_duration_ms.labels(method=method, path=path).observe(duration_ms)

    def observe_external_api(
        self,
        provider: str,
        operation: str,
        status_code: int,
        duration_ms: float,
    ) -> None:
        self._external_requests.labels(
            operation=operation, provider=provider, status=str(status_code)
        ).inc()
        self._external_duration_ms.labels(operation=operation, provider=provider).observe(
            duration_ms
        )

    def observe_retrieval(
        self,
        query_backend: str,
        was_expanded: bool,
        result_count: int,
    ) -> None:
        self._retrievals.labels(
            backend=query_backend, expanded=str(was_expanded).lower()
        ).inc()
        self._retrieval_results.labels(backend=query_backend).inc(result_count)

    def render_prometheus(self) -> str:
        return generate_latest(self.registry).decode("utf-8")


class NullMetrics:
    """Metrics backend that discards observations."""

    def observe_request(self, method: str, path: str, status_code: int, duration_ms: float) -> None:
        return None

    def observe_external_api(
        self, provider: str, operation: str, status_code: int, duration_ms: float
    ) -> None:
        return None

    def observe_retrieval(self, query_backend: str, was_expanded: bool, result_count: int) -> None:
        return None

    def render_prometheus(self) -> str:
        return ""


def build_metrics_backend(enabled: bool = True) -> MetricsBackend:
    """Create the metrics backend for the application."""
    if not enabled:
        logger.info("Metrics disabled")
        return NullMetrics()
    return PrometheusMetrics(DEFAULT_BUCKETS_MS)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Attach request_id, log request/response, and emit metrics."""

    def __init__(
        self,
        app: ASGIApp,
        metrics: MetricsBackend | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(app)
        self.metrics = metrics or NullMetrics()
        self.logger = logger or logging.getLogger("study_assistant.request")

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        token = request_id_ctx.set(request_id)
        request.state.request_id = request_id

        start = time.perf_counter()
        response: Response | None = None
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            status_code = response.status_code if response else 500

            # Label by route template so ids in paths don't multiply series
            route_path = getattr(request.scope.get("route"), "path", None)
            self.metrics.observe_request(
                request.method,
                route_path or "/__unknown__",
                status_code,
                duration_ms,
            )

            self.logger.info(
                json.dumps(
                    {
                        "request_id": request_id,
                        "method": request.method,
                        "path": request.url.path,
                        "route": route_path,
                        "status_code": status_code,
                        "elapsed_ms": round(duration_ms, 2),
                        "user_agent": request.headers.get("user-agent"),
                    }
                )
            )
            request_id_ctx.reset(token)
