from __future__ import annotations

from ..config import settings
from .events import ProblemEvent, ProblemEventHub
from .problems import UPDATABLE_FIELDS, ProblemSQLiteStore


def _create_store() -> ProblemSQLiteStore:
    """アプリ全体で共有する SQLite ベースのストアを初期化する。"""

    return ProblemSQLiteStore(db_path=settings.problems_db_path)


store = _create_store()

__all__ = [
    "ProblemEvent",
    "ProblemEventHub",
    "ProblemSQLiteStore",
    "UPDATABLE_FIELDS",
    "store",
]
