"""FastAPI dependencies shared by the routers.

テストでは `app.dependency_overrides` で固定時計や一時ストアに差し替える。
"""

from __future__ import annotations

from .clock import Clock, system_clock
from .store import ProblemSQLiteStore, store


def get_store() -> ProblemSQLiteStore:
    return store


def get_clock() -> Clock:
    return system_clock
