"""FastAPI 애플리케이션 팩토리."""

from __future__ import annotations

import html
import logging
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry
from pydantic import BaseModel

from conntrack_exporter.utils.config import Config
from conntrack_exporter.web.metrics import get_metrics_output, scrape_requests

if TYPE_CHECKING:
    from conntrack_exporter.services.collector_service import ConntrackCollectorService

logger = logging.getLogger("conntrack_exporter.web.server")


class HealthResponse(BaseModel):
    status: str
    running: bool
    interval: float
    cycles: int
    failures: int
    last_success: float | None = None
    last_error: str | None = None
    tracked_keys: int
    seen_keys: int


# ---------------------------------------------------------------------------
# 동시 스크레이프 제한기
# ---------------------------------------------------------------------------
class _InFlightLimiter:
    """동시에 처리 중인 스크레이프 수를 제한한다. limit=0이면 무제한."""

    def __init__(self, limit: int) -> None:
        self.limit     = limit
        self.in_flight = 0

    def try_acquire(self) -> bool:
        """슬롯이 있으면 점유하고 True를 반환한다."""
        if self.limit and self.in_flight >= self.limit:
            return False
        self.in_flight += 1
        return True

    def release(self) -> None:
        self.in_flight -= 1


# ---------------------------------------------------------------------------
# 미들웨어 설정
# ---------------------------------------------------------------------------
def _setup_middleware(app: FastAPI, telemetry_path: str, max_requests: int) -> None:
    """텔레메트리 경로에 동시 요청 제한과 요청 카운트 미들웨어를 등록한다."""
    limiter = _InFlightLimiter(max_requests)

    @app.middleware("http")
    async def scrape_limit_middleware(request: Request, call_next):
        """제한을 넘는 스크레이프는 503으로 즉시 거절한다."""
        if request.url.path != telemetry_path:
            return await call_next(request)

        if not limiter.try_acquire():
            scrape_requests.labels(code="503").inc()
            logger.warning("Rejected scrape: %d requests already in flight", limiter.in_flight)
            return Response(
                content="Limit of concurrent requests reached, try again later.\n",
                status_code=503,
                media_type="text/plain",
            )
        try:
            response = await call_next(request)
        finally:
            limiter.release()
        scrape_requests.labels(code=str(response.status_code)).inc()
        return response


# ---------------------------------------------------------------------------
# 시스템 엔드포인트 (헬스체크, 메트릭, 랜딩 페이지)
# ---------------------------------------------------------------------------
def _register_system_endpoints(
    app: FastAPI,
    registry: CollectorRegistry,
    telemetry_path: str,
    collector: ConntrackCollectorService | None,
) -> None:
    """헬스체크(/health), 메트릭(telemetry_path), 루트(/) 엔드포인트를 등록한다."""

    @app.get(telemetry_path)
    async def metrics_endpoint():
        """Prometheus 형식의 메트릭 데이터를 반환한다.

        수집 사이클이 실패해도 마지막으로 게시된 상태를 그대로 반환한다.
        """
        return Response(content=get_metrics_output(registry), media_type=CONTENT_TYPE_LATEST)

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        """수집 루프 상태를 점검한다. 한 번도 성공하지 못했거나 멈췄으면 503."""
        if collector is None:
            return JSONResponse({"status": "not_configured"}, status_code=503)

        status  = collector.status()
        healthy = status["running"] and status["last_success"] is not None
        body    = HealthResponse(status="ok" if healthy else "degraded", **status)
        return JSONResponse(body.model_dump(), status_code=200 if healthy else 503)

    landing = (
        "<html><head><title>Conntrack Exporter</title></head><body>"
        "<h1>Conntrack Exporter</h1>"
        f'<p><a href="{html.escape(telemetry_path)}">Metrics</a></p>'
        "</body></html>"
    )

    @app.get("/", response_class=HTMLResponse)
    async def root():
        """텔레메트리 경로로 링크하는 랜딩 페이지를 반환한다."""
        return landing


# ---------------------------------------------------------------------------
# 애플리케이션 팩토리
# ---------------------------------------------------------------------------
def create_app(
    config: Config,
    registry: CollectorRegistry,
    collector: ConntrackCollectorService | None = None,
    version: str = "dev",
) -> FastAPI:
    """FastAPI 애플리케이션을 생성하고 구성한다."""
    telemetry_path = config.get("web.telemetry_path", "/metrics")
    if not telemetry_path.startswith("/"):
        telemetry_path = "/" + telemetry_path
    max_requests = config.get("web.max_requests", 40)

    app = FastAPI(
        title="Conntrack Exporter",
        description="Prometheus exporter for the kernel connection tracking table",
        version=version,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    _setup_middleware(app, telemetry_path, max_requests)
    _register_system_endpoints(app, registry, telemetry_path, collector)

    return app
