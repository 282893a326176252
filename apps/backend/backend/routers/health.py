from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..dependencies import get_store
from ..logging import logger
from ..metrics import registry
from ..store import ProblemSQLiteStore

router = APIRouter()


@router.get("/healthz")
def health_check() -> dict[str, str]:
    """Simple liveness endpoint.

    監視ツールやコンテナオーケストレータからの疎通確認に使用。
    """
    return {"status": "ok"}


@router.get("/readyz")
def readiness_check(store: ProblemSQLiteStore = Depends(get_store)) -> JSONResponse:
    """Readiness: the SQLite database can be opened and queried."""
    try:
        problems = store.count_problems()
    except Exception as exc:
        logger.error("readiness_failed", error=repr(exc))
        return JSONResponse(status_code=503, content={"status": "unavailable"})
    return JSONResponse(content={"status": "ok", "problems": problems})


@router.get("/metrics")
def metrics() -> JSONResponse:
    """Return in-memory metrics snapshot.

    p95/エラー/タイムアウト/ステータス別件数をルート別に返す簡易メトリクス。
    """
    return JSONResponse(content={"routes": registry.snapshot()})
