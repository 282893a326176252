"""Injectable time sources.

スケジューラは現在時刻を直接参照せず、ここで定義する `Clock`
（引数なしで aware な datetime を返す callable）を受け取る。
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Callable

from .errors import ClockError

Clock = Callable[[], datetime]


def system_clock() -> datetime:
    """Return the current UTC time."""
    return datetime.now(UTC)


class FixedClock:
    """A clock frozen at a given instant; `advance` moves it forward."""

    def __init__(self, at: datetime) -> None:
        self._now = _ensure_aware(at)

    def __call__(self) -> datetime:
        return self._now

    def advance(self, **delta: float) -> datetime:
        self._now = self._now + timedelta(**delta)
        return self._now


def _ensure_aware(value: object) -> datetime:
    if not isinstance(value, datetime):
        raise ClockError(f"time source returned {type(value).__name__}, expected datetime")
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        # naive な時刻はどのタイムゾーンか判別できないため拒否する
        raise ClockError("time source returned a naive datetime")
    return value


def resolve_now(now: datetime | None = None, clock: Clock = system_clock) -> datetime:
    """Return ``now`` if given, otherwise ask ``clock``; fail with ClockError.

    時刻源が例外を投げた場合や不正な値を返した場合はエポック等で代用せず、
    ClockError としてスケジューリングを中断する。
    """

    if now is not None:
        return _ensure_aware(now)
    try:
        value = clock()
    except ClockError:
        raise
    except Exception as exc:
        raise ClockError(f"time source failed: {exc!r}") from exc
    return _ensure_aware(value)
