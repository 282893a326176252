from fastapi import APIRouter, Depends, HTTPException

from ..clock import Clock, resolve_now
from ..dependencies import get_clock, get_store
from ..models.problem import Problem, ReviewRequest, ReviewScheduleResponse
from ..store import ProblemSQLiteStore

router = APIRouter(tags=["review"])


@router.get("/schedule", response_model=ReviewScheduleResponse, summary="復習予定（due / upcoming）を取得")
def review_schedule(
    store: ProblemSQLiteStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> ReviewScheduleResponse:
    """Return due and upcoming problems, each ordered by next review (earliest first).

    - due: next_review <= now
    - upcoming: それ以外
    """
    now = resolve_now(clock=clock)
    partition = store.review_schedule(now)
    return ReviewScheduleResponse(
        now=now,
        due=list(partition.due),
        upcoming=list(partition.upcoming),
        due_count=len(partition.due),
        upcoming_count=len(partition.upcoming),
    )


@router.post("/{problem_id}", response_model=Problem, summary="レビュー結果を記録して次回日時を更新")
def review_problem(
    problem_id: str,
    req: ReviewRequest,
    store: ProblemSQLiteStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> Problem:
    """Record a review with the given confidence and return the rescheduled problem."""
    updated = store.apply_review(
        problem_id,
        confidence=req.confidence,
        time_spent_seconds=req.time_spent_seconds,
        now=resolve_now(clock=clock),
    )
    if updated is None:
        raise HTTPException(status_code=404, detail="problem not found")
    return updated
