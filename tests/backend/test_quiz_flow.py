import random
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from backend.errors import ValidationError
from backend.flows import QuizFlow
from backend.models.problem import PATTERNS, ProblemCreateRequest
from backend.store import ProblemSQLiteStore

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


@pytest.fixture()
def store(tmp_path: Path) -> ProblemSQLiteStore:
    return ProblemSQLiteStore(str(tmp_path / "quiz.sqlite3"))


def _seed(store: ProblemSQLiteStore, count: int) -> list[str]:
    ids: list[str] = []
    for i in range(count):
        payload = ProblemCreateRequest(
            name=f"Problem {i}",
            pattern=PATTERNS[i % len(PATTERNS)],
            difficulty="Medium",
            key_clue=f"clue {i}",
        )
        ids.append(store.create_problem(payload, now=NOW + timedelta(minutes=i)).id)
    return ids


def test_start_defaults_to_configured_maximum_without_repeats(store: ProblemSQLiteStore) -> None:
    _seed(store, 15)
    flow = QuizFlow(store, rng=random.Random(0), max_questions=10)

    items = flow.start()

    assert len(items) == 10
    assert len({p.id for p in items}) == 10


def test_start_respects_limit_and_cap(store: ProblemSQLiteStore) -> None:
    _seed(store, 8)
    flow = QuizFlow(store, rng=random.Random(1), max_questions=5)

    assert len(flow.start(limit=3)) == 3
    assert len(flow.start(limit=50)) == 5


def test_start_with_fewer_problems_than_limit(store: ProblemSQLiteStore) -> None:
    ids = _seed(store, 2)
    flow = QuizFlow(store, rng=random.Random(2), max_questions=10)

    assert sorted(p.id for p in flow.start()) == sorted(ids)


def test_start_on_empty_store(store: ProblemSQLiteStore) -> None:
    assert QuizFlow(store, rng=random.Random(3)).start() == []


def test_start_is_reproducible_with_seeded_rng(store: ProblemSQLiteStore) -> None:
    _seed(store, 12)
    first = [p.id for p in QuizFlow(store, rng=random.Random(42), max_questions=4).start()]
    second = [p.id for p in QuizFlow(store, rng=random.Random(42), max_questions=4).start()]
    assert first == second


def test_answer_without_confidence_only_grades(store: ProblemSQLiteStore) -> None:
    (problem_id,) = _seed(store, 1)
    before = store.get_problem(problem_id)
    flow = QuizFlow(store)

    result = flow.answer(problem_id, PATTERNS[0], now=NOW + timedelta(hours=1))

    assert result is not None
    assert result.correct is True
    assert result.reviewed is False
    assert store.get_problem(problem_id) == before


def test_wrong_guess_with_confidence_is_still_recorded(store: ProblemSQLiteStore) -> None:
    (problem_id,) = _seed(store, 1)
    flow = QuizFlow(store)
    answered_at = NOW + timedelta(hours=1)

    result = flow.answer(problem_id, "Graphs", now=answered_at, confidence=2, time_spent_seconds=90)

    assert result is not None
    assert result.correct is False
    assert result.reviewed is True
    assert result.problem.confidence == 2
    assert result.problem.next_review == answered_at + timedelta(days=2)
    assert store.get_problem(problem_id) == result.problem


def test_answer_with_invalid_confidence_raises(store: ProblemSQLiteStore) -> None:
    (problem_id,) = _seed(store, 1)
    with pytest.raises(ValidationError):
        QuizFlow(store).answer(problem_id, PATTERNS[0], now=NOW, confidence=9)


def test_answer_unknown_problem(store: ProblemSQLiteStore) -> None:
    assert QuizFlow(store).answer("pb:missing", PATTERNS[0], now=NOW) is None
