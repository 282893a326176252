"""Change notifications emitted by the problem store.

画面側は共有ストレージのポーリングやグローバルイベントに頼らず、
`ProblemEventHub.subscribe` で明示的に購読する。
"""

from __future__ import annotations

from dataclasses import dataclass
from threading import Lock
from typing import Callable, Literal

from ..logging import logger
from ..models.problem import Problem

EventKind = Literal["created", "updated", "reviewed", "deleted"]


@dataclass(frozen=True)
class ProblemEvent:
    kind: EventKind
    problem_id: str
    problem: Problem | None = None


Listener = Callable[[ProblemEvent], None]


class ProblemEventHub:
    """Thread-safe fan-out of committed store changes to subscribers."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []
        self._lock = Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` and return a callable that removes it again."""

        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def publish(self, event: ProblemEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                # 書き込みはコミット済み。購読者の失敗は他の購読者へ波及させない
                logger.exception(
                    "problem_listener_failed",
                    kind=event.kind,
                    problem_id=event.problem_id,
                )
