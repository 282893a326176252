from fastapi import APIRouter, Depends, HTTPException

from ..clock import Clock, resolve_now
from ..dependencies import get_clock, get_store
from ..flows.quiz import QuizFlow
from ..models.problem import (
    PATTERNS,
    QuizAnswerRequest,
    QuizAnswerResponse,
    QuizStartRequest,
    QuizStartResponse,
)
from ..store import ProblemSQLiteStore

router = APIRouter(tags=["quiz"])


def get_quiz_flow(store: ProblemSQLiteStore = Depends(get_store)) -> QuizFlow:
    return QuizFlow(store)


@router.post("/start", response_model=QuizStartResponse, summary="クイズの出題セットを作成")
def start_quiz(
    req: QuizStartRequest,
    flow: QuizFlow = Depends(get_quiz_flow),
) -> QuizStartResponse:
    return QuizStartResponse(items=flow.start(limit=req.limit), patterns=list(PATTERNS))


@router.post("/answer", response_model=QuizAnswerResponse, summary="パターン回答を採点（confidence 指定時はレビューも記録）")
def answer_quiz(
    req: QuizAnswerRequest,
    flow: QuizFlow = Depends(get_quiz_flow),
    clock: Clock = Depends(get_clock),
) -> QuizAnswerResponse:
    result = flow.answer(
        req.problem_id,
        req.guessed_pattern,
        now=resolve_now(clock=clock),
        confidence=req.confidence,
        time_spent_seconds=req.time_spent_seconds,
    )
    if result is None:
        raise HTTPException(status_code=404, detail="problem not found")
    return QuizAnswerResponse(
        correct=result.correct,
        correct_pattern=result.problem.pattern,
        reviewed=result.reviewed,
        problem=result.problem,
    )
