from fastapi import APIRouter, Depends, HTTPException, Query, Response

from ..clock import Clock, resolve_now
from ..dependencies import get_clock, get_store
from ..models.problem import (
    Difficulty,
    Problem,
    ProblemCreateRequest,
    ProblemListResponse,
    ProblemUpdateRequest,
)
from ..store import ProblemSQLiteStore

router = APIRouter(tags=["problems"])


@router.post("", response_model=Problem, status_code=201, summary="問題を登録")
def create_problem(
    req: ProblemCreateRequest,
    store: ProblemSQLiteStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> Problem:
    """Register a problem. It starts at confidence 3 and is due immediately."""
    return store.create_problem(req, now=resolve_now(clock=clock))


@router.get("", response_model=ProblemListResponse, summary="問題一覧（パターン/難易度/キーワードで絞り込み）")
def list_problems(
    pattern: str | None = None,
    difficulty: Difficulty | None = None,
    q: str | None = Query(default=None, max_length=200),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    store: ProblemSQLiteStore = Depends(get_store),
) -> ProblemListResponse:
    items = store.list_problems(
        pattern=pattern,
        difficulty=difficulty,
        search=q,
        limit=limit,
        offset=offset,
    )
    return ProblemListResponse(items=items, limit=limit, offset=offset)


@router.get("/{problem_id}", response_model=Problem, summary="問題の詳細")
def get_problem(problem_id: str, store: ProblemSQLiteStore = Depends(get_store)) -> Problem:
    problem = store.get_problem(problem_id)
    if problem is None:
        raise HTTPException(status_code=404, detail="problem not found")
    return problem


@router.patch("/{problem_id}", response_model=Problem, summary="問題の説明項目を更新")
def update_problem(
    problem_id: str,
    req: ProblemUpdateRequest,
    store: ProblemSQLiteStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> Problem:
    """Update descriptive fields only; schedule fields change through reviews."""
    changes = req.model_dump(exclude_unset=True)
    updated = store.update_problem(problem_id, changes, now=resolve_now(clock=clock))
    if updated is None:
        raise HTTPException(status_code=404, detail="problem not found")
    return updated


@router.delete("/{problem_id}", status_code=204, summary="問題を削除")
def delete_problem(problem_id: str, store: ProblemSQLiteStore = Depends(get_store)) -> Response:
    if not store.delete_problem(problem_id):
        raise HTTPException(status_code=404, detail="problem not found")
    return Response(status_code=204)
