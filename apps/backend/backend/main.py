from __future__ import annotations

import asyncio
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import Response
from structlog import contextvars as structlog_contextvars

from .config import settings
from .errors import ClockError, ReviewConflictError, ValidationError
from .logging import configure_logging, logger
from .metrics import registry
from .middleware import RateLimitMiddleware, RequestIDMiddleware
from .routers import config as cfg
from .routers import health, problems, quiz, review


class AccessLogAndMetricsMiddleware(BaseHTTPMiddleware):
    """Emit structured request logs and capture latency/metrics for each call.

    すべてのリクエストに `request_id` を紐付けて構造化ログを出し、
    ルートテンプレート単位で遅延・ステータスをメトリクスへ記録する。
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:  # type: ignore[override]
        start = time.time()
        path = request.url.path
        method = request.method
        request_id = getattr(request.state, "request_id", None)
        if request_id:
            structlog_contextvars.bind_contextvars(request_id=request_id)
        client_ip = request.client.host if request.client else "unknown"
        is_error = False
        is_timeout = False
        status_code: int | None = None
        error_type: str | None = None
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        except Exception as exc:
            is_error = True
            status_code = 500
            error_type = exc.__class__.__name__
            is_timeout = isinstance(exc, asyncio.TimeoutError)
            raise
        finally:
            latency_ms = (time.time() - start) * 1000
            # /api/problems/{problem_id} のようにテンプレートで集計し、ID ごとにキーが増えないようにする
            route = request.scope.get("route")
            route_path = getattr(route, "path", path)
            registry.record(
                f"{method} {route_path}",
                latency_ms,
                status_code=status_code,
                is_error=is_error,
                is_timeout=is_timeout,
            )
            log_method = logger.error if is_error else logger.info
            log_method(
                "request_complete",
                path=path,
                method=method,
                latency_ms=latency_ms,
                is_error=is_error,
                is_timeout=is_timeout,
                status_code=status_code,
                error_type=error_type,
                client_ip=client_ip,
            )
            if request_id:
                structlog_contextvars.unbind_contextvars("request_id")


async def _validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    logger.info("validation_rejected", field=exc.field, path=request.url.path)
    return JSONResponse(status_code=422, content={"detail": str(exc), "field": exc.field})


async def _review_conflict_handler(request: Request, exc: ReviewConflictError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc), "problem_id": exc.problem_id})


async def _clock_error_handler(request: Request, exc: ClockError) -> JSONResponse:
    logger.error("clock_unavailable", error=str(exc), path=request.url.path)
    return JSONResponse(status_code=503, content={"detail": "time source unavailable"})


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance."""
    configure_logging()
    app = FastAPI(title="Problem Review API", version="0.1.0")

    configured_origins = list(settings.allowed_cors_origins)
    allow_credentials = bool(configured_origins)
    if not configured_origins:
        configured_origins = ["*"]

    # ワイルドカード許可時は資格情報を無効化する
    app.add_middleware(
        CORSMiddleware,
        allow_origins=configured_origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Middleware stack (inner → outer): CORS → AccessLog → RequestID → RateLimit
    # Starlette では後から追加したミドルウェアが外側で実行される。RequestID を
    # AccessLog の外側に置き、ログ出力時点で request_id が採番済みになるようにする。
    app.add_middleware(AccessLogAndMetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        ip_capacity_per_minute=settings.rate_limit_per_min_ip,
    )

    app.add_exception_handler(ValidationError, _validation_error_handler)
    app.add_exception_handler(ReviewConflictError, _review_conflict_handler)
    app.add_exception_handler(ClockError, _clock_error_handler)

    app.include_router(problems.router, prefix="/api/problems")
    app.include_router(review.router, prefix="/api/review")
    app.include_router(quiz.router, prefix="/api/quiz")
    app.include_router(health.router)
    app.include_router(cfg.router, prefix="/api")

    logger.info("app_created", environment=settings.environment, db_path=settings.problems_db_path)
    return app


app = create_app()
