"""Request context middleware: request IDs, timing and latency stats."""

import time
from collections import defaultdict
from dataclasses import dataclass, field
from uuid import uuid4

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger()

MAX_SAMPLES = 1000


@dataclass
class EndpointStats:
    """Rolling latency samples for one path."""

    latencies: list[float] = field(default_factory=list)

    def record(self, duration: float) -> None:
        self.latencies.append(duration)
        if len(self.latencies) > MAX_SAMPLES:
            del self.latencies[: len(self.latencies) - MAX_SAMPLES]

    def percentile(self, fraction: float) -> float:
        if not self.latencies:
            return 0.0
        ordered = sorted(self.latencies)
        return ordered[min(int(len(ordered) * fraction), len(ordered) - 1)]

    def to_dict(self) -> dict:
        count = len(self.latencies)
        avg = sum(self.latencies) / count if count else 0.0
        return {
            "count": count,
            "avg_ms": round(avg * 1000, 2),
            "p50_ms": round(self.percentile(0.5) * 1000, 2),
            "p95_ms": round(self.percentile(0.95) * 1000, 2),
        }


_endpoint_stats: dict[str, EndpointStats] = defaultdict(EndpointStats)


def get_endpoint_stats() -> dict[str, dict]:
    """Latency stats per request path."""
    return {path: stats.to_dict() for path, stats in _endpoint_stats.items()}


def reset_endpoint_stats() -> None:
    _endpoint_stats.clear()


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds a request ID into the log context and times each request.

    Honors an incoming ``X-Request-ID`` and echoes it back together with
    ``X-Response-Time-Ms``.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid4())
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                "request_failed",
                path=request.url.path,
                method=request.method,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
                exc_info=True,
            )
            raise
        duration = time.perf_counter() - start

        _endpoint_stats[request.url.path].record(duration)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time-Ms"] = str(round(duration * 1000, 2))

        logger.debug(
            "request_completed",
            path=request.url.path,
            method=request.method,
            status=response.status_code,
            duration_ms=round(duration * 1000, 2),
        )
        return response
