"""Pattern-recognition quiz.

保存済みの問題からランダムに出題し、利用者が当てたパターンの正誤を返す。
confidence が添えられた回答のみレビューとして記録する（未選択ならスケジュールは変えない）。
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import datetime

from ..config import settings
from ..models.problem import Problem
from ..store.problems import ProblemSQLiteStore


@dataclass(frozen=True)
class QuizAnswer:
    correct: bool
    reviewed: bool
    problem: Problem


class QuizFlow:
    def __init__(
        self,
        store: ProblemSQLiteStore,
        *,
        rng: random.Random | None = None,
        max_questions: int | None = None,
    ) -> None:
        self._store = store
        self._rng = rng or random.Random()
        self._max_questions = max(1, max_questions or settings.quiz_max_questions)

    def start(self, limit: int | None = None) -> list[Problem]:
        """Pick a random question set without repeats, capped at the configured maximum."""

        problems = self._store.all_problems()
        size = self._max_questions if limit is None else min(max(1, limit), self._max_questions)
        return self._rng.sample(problems, min(size, len(problems)))

    def answer(
        self,
        problem_id: str,
        guessed_pattern: str,
        *,
        now: datetime,
        confidence: int | None = None,
        time_spent_seconds: int = 0,
    ) -> QuizAnswer | None:
        """Grade a guess and optionally record the review. None if the problem is unknown."""

        problem = self._store.get_problem(problem_id)
        if problem is None:
            return None
        correct = guessed_pattern == problem.pattern
        if confidence is None:
            return QuizAnswer(correct=correct, reviewed=False, problem=problem)
        updated = self._store.apply_review(problem_id, confidence, time_spent_seconds, now)
        if updated is None:
            # 採点と記録の間に削除された
            return None
        return QuizAnswer(correct=correct, reviewed=True, problem=updated)
