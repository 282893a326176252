"""Domain errors shared by the scheduler, the store and the HTTP layer.

ルーター側ではこれらをステータスコードへ写像する（`backend.main` を参照）。
"""

from __future__ import annotations

from typing import Any


class ValidationError(ValueError):
    """Raised when a scheduler input is outside its accepted domain.

    confidence が 1〜5 の範囲外、difficulty が Easy/Medium/Hard 以外などの場合に
    送出する。値を丸めて続行することはしない。
    """

    def __init__(self, field: str, value: Any, message: str) -> None:
        super().__init__(message)
        self.field = field
        self.value = value


class ClockError(RuntimeError):
    """Raised when the injected time source is unavailable or returns an invalid time."""


class ReviewConflictError(RuntimeError):
    """Raised when a conditional review write finds the stored problem already changed."""

    def __init__(self, problem_id: str) -> None:
        super().__init__(f"problem {problem_id!r} was reviewed concurrently")
        self.problem_id = problem_id
