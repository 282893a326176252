"""Confidence-driven spaced repetition scheduler.

自己申告の confidence（1〜5）と「成功レビュー回数」（confidence ≥ 4 の回数）から
次回レビュー日時を計算し、問題を due / upcoming に分類する純粋関数群。

- 基本間隔（日）: 1→1, 2→2, 3→4, 4→7, 5→14
- ブースト: review_count > 0 かつ confidence ≥ 4 のとき基本間隔 × min(review_count, 3)
- 日付計算は timedelta(days=n) による暦日加算（時刻は維持される）

I/O・ログ・リトライは行わない。現在時刻は引数 `now` か注入された `Clock` から得る。
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Any, NamedTuple

from .clock import Clock, resolve_now, system_clock
from .errors import ValidationError
from .models.problem import (
    CONFIDENCE_MAX,
    CONFIDENCE_MIN,
    Attempt,
    Difficulty,
    Problem,
)

BASE_INTERVAL_DAYS: dict[int, int] = {1: 1, 2: 2, 3: 4, 4: 7, 5: 14}
SUCCESS_CONFIDENCE = 4
BOOST_CAP = 3
DEFAULT_CONFIDENCE = 3

TARGET_TIME_SECONDS: dict[Difficulty, int] = {
    Difficulty.easy: 15 * 60,
    Difficulty.medium: 25 * 60,
    Difficulty.hard: 35 * 60,
}


class ReviewPartition(NamedTuple):
    due: tuple[Problem, ...]
    upcoming: tuple[Problem, ...]


def _validate_confidence(confidence: Any) -> int:
    # bool は int のサブクラスなので明示的に弾く
    if isinstance(confidence, bool) or not isinstance(confidence, int):
        raise ValidationError("confidence", confidence, f"confidence must be an integer, got {confidence!r}")
    if not CONFIDENCE_MIN <= confidence <= CONFIDENCE_MAX:
        raise ValidationError(
            "confidence",
            confidence,
            f"confidence must be between {CONFIDENCE_MIN} and {CONFIDENCE_MAX}, got {confidence}",
        )
    return confidence


def _validate_non_negative(field: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(field, value, f"{field} must be a non-negative integer, got {value!r}")
    return value


def interval_days(confidence: int, review_count: int) -> int:
    """Return the review interval in days for the given confidence and prior successes."""

    confidence = _validate_confidence(confidence)
    review_count = _validate_non_negative("review_count", review_count)
    days = BASE_INTERVAL_DAYS[confidence]
    if review_count > 0 and confidence >= SUCCESS_CONFIDENCE:
        days *= min(review_count, BOOST_CAP)
    return days


def compute_next_review(
    confidence: int,
    review_count: int,
    *,
    now: datetime | None = None,
    clock: Clock = system_clock,
) -> datetime:
    """Compute the next review timestamp.

    :func:`record_review` passes the success count *after* counting the review
    being recorded. The result is always at least one calendar day after ``now``.
    """

    days = interval_days(confidence, review_count)
    current = resolve_now(now, clock)
    return current + timedelta(days=days)


def get_target_time(difficulty: Difficulty | str) -> int:
    """Return the target solve time in seconds for a difficulty."""

    try:
        key = Difficulty(difficulty)
    except ValueError:
        raise ValidationError(
            "difficulty",
            difficulty,
            f"difficulty must be one of {[d.value for d in Difficulty]}, got {difficulty!r}",
        ) from None
    return TARGET_TIME_SECONDS[key]


def classify_for_review(problems: Iterable[Problem], now: datetime) -> ReviewPartition:
    """Split problems into due (next_review <= now) and upcoming, earliest first.

    `sorted` は安定ソートなので、同じ next_review を持つ問題は入力順を保つ。
    """

    current = resolve_now(now)
    due: list[Problem] = []
    upcoming: list[Problem] = []
    for problem in problems:
        if problem.next_review.tzinfo is None or problem.next_review.utcoffset() is None:
            raise ValidationError(
                "next_review",
                problem.next_review,
                f"problem {problem.id!r} has a naive next_review",
            )
        if problem.next_review <= current:
            due.append(problem)
        else:
            upcoming.append(problem)
    return ReviewPartition(
        due=tuple(sorted(due, key=lambda p: p.next_review)),
        upcoming=tuple(sorted(upcoming, key=lambda p: p.next_review)),
    )


def record_review(
    problem: Problem,
    confidence: int,
    time_spent_seconds: int,
    now: datetime,
) -> Problem:
    """Apply one review event and return the updated problem.

    入力の problem は変更しない。attempts は新しいタプルとして生成する。
    永続化は呼び出し側（ProblemStore）の責務。
    """

    confidence = _validate_confidence(confidence)
    time_spent_seconds = _validate_non_negative("time_spent_seconds", time_spent_seconds)
    current = resolve_now(now)

    attempt = Attempt(date=current, time_spent=time_spent_seconds, confidence=confidence)
    new_review_count = problem.review_count + 1 if confidence >= SUCCESS_CONFIDENCE else problem.review_count
    next_review = compute_next_review(confidence, new_review_count, now=current)
    return problem.model_copy(
        update={
            "attempts": (*problem.attempts, attempt),
            "confidence": confidence,
            "review_count": new_review_count,
            "last_reviewed": current,
            "next_review": next_review,
            "updated_at": current,
        }
    )


def new_problem(
    problem_id: str,
    *,
    name: str,
    pattern: str,
    difficulty: Difficulty | str,
    now: datetime,
    **fields: Any,
) -> Problem:
    """Build a freshly created problem: neutral confidence, due immediately."""

    current = resolve_now(now)
    target_time = get_target_time(difficulty)
    date_solved = fields.pop("date_solved", None) or current
    mistakes = tuple(fields.pop("mistakes", None) or ())
    return Problem(
        id=problem_id,
        name=name,
        pattern=pattern,
        difficulty=Difficulty(difficulty),
        date_solved=date_solved,
        confidence=DEFAULT_CONFIDENCE,
        last_reviewed=current,
        next_review=current,
        review_count=0,
        attempts=(),
        target_time=target_time,
        mistakes=mistakes,
        created_at=current,
        updated_at=current,
        **fields,
    )


__all__ = [
    "BASE_INTERVAL_DAYS",
    "BOOST_CAP",
    "ReviewPartition",
    "TARGET_TIME_SECONDS",
    "classify_for_review",
    "compute_next_review",
    "get_target_time",
    "interval_days",
    "new_problem",
    "record_review",
]
