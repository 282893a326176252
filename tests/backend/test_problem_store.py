from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from backend.errors import ReviewConflictError, ValidationError
from backend.models.problem import ProblemCreateRequest
from backend.scheduler import record_review
from backend.store import ProblemEvent, ProblemSQLiteStore

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


@pytest.fixture()
def store(tmp_path: Path) -> ProblemSQLiteStore:
    return ProblemSQLiteStore(str(tmp_path / "nested" / "problems.sqlite3"))


def _payload(**overrides: object) -> ProblemCreateRequest:
    data: dict[str, object] = {
        "name": "Two Sum",
        "pattern": "Arrays & Hashing",
        "difficulty": "Easy",
        "key_clue": "complement lookup in a hash map",
        "mistakes": ["forgot duplicates"],
    }
    data.update(overrides)
    return ProblemCreateRequest.model_validate(data)


def test_create_applies_lifecycle_defaults_and_round_trips(store: ProblemSQLiteStore) -> None:
    created = store.create_problem(_payload(), now=NOW)

    assert created.id.startswith("pb:")
    assert created.confidence == 3
    assert created.review_count == 0
    assert created.next_review == created.last_reviewed == NOW
    assert created.target_time == 900
    assert store.get_problem(created.id) == created
    assert store.count_problems() == 1


def test_get_unknown_problem_returns_none(store: ProblemSQLiteStore) -> None:
    assert store.get_problem("pb:missing") is None


def test_list_filters_by_pattern_difficulty_and_search(store: ProblemSQLiteStore) -> None:
    store.create_problem(_payload(), now=NOW)
    store.create_problem(
        _payload(name="Longest Substring", pattern="Sliding Window", difficulty="Medium", key_clue="shrink window on repeat"),
        now=NOW + timedelta(minutes=1),
    )
    store.create_problem(
        _payload(name="Median of Two Sorted Arrays", pattern="Binary Search", difficulty="Hard", key_clue="partition"),
        now=NOW + timedelta(minutes=2),
    )

    assert [p.name for p in store.list_problems()] == [
        "Median of Two Sorted Arrays",
        "Longest Substring",
        "Two Sum",
    ]
    assert [p.name for p in store.list_problems(pattern="Sliding Window")] == ["Longest Substring"]
    assert [p.name for p in store.list_problems(difficulty="Hard")] == ["Median of Two Sorted Arrays"]
    assert [p.name for p in store.list_problems(search="TWO")] == ["Median of Two Sorted Arrays", "Two Sum"]
    assert [p.name for p in store.list_problems(search="shrink")] == ["Longest Substring"]
    assert store.list_problems(search="%") == []
    assert [p.name for p in store.list_problems(limit=1, offset=1)] == ["Longest Substring"]


def test_list_rejects_unknown_difficulty(store: ProblemSQLiteStore) -> None:
    with pytest.raises(ValidationError):
        store.list_problems(difficulty="Expert")


def test_update_changes_descriptive_fields_only(store: ProblemSQLiteStore) -> None:
    created = store.create_problem(_payload(), now=NOW)
    later = NOW + timedelta(hours=1)

    updated = store.update_problem(
        created.id,
        {"notes": "use dict", "difficulty": "Hard", "mistakes": ["off by one"]},
        now=later,
    )

    assert updated is not None
    assert updated.notes == "use dict"
    assert updated.difficulty.value == "Hard"
    assert updated.mistakes == ("off by one",)
    # target_time は作成時に固定され、難易度変更では再計算しない
    assert updated.target_time == 900
    assert updated.updated_at == later
    assert updated.next_review == created.next_review
    assert store.get_problem(created.id) == updated


@pytest.mark.parametrize("field", ["confidence", "review_count", "next_review", "attempts", "target_time", "id"])
def test_update_refuses_scheduler_owned_fields(store: ProblemSQLiteStore, field: str) -> None:
    created = store.create_problem(_payload(), now=NOW)
    with pytest.raises(ValidationError):
        store.update_problem(created.id, {field: 5}, now=NOW)
    assert store.get_problem(created.id) == created


def test_update_refuses_null_for_required_fields(store: ProblemSQLiteStore) -> None:
    created = store.create_problem(_payload(), now=NOW)
    with pytest.raises(ValidationError):
        store.update_problem(created.id, {"name": None}, now=NOW)
    cleared = store.update_problem(created.id, {"leetcode_url": None}, now=NOW)
    assert cleared is not None and cleared.leetcode_url is None


def test_update_unknown_problem_returns_none(store: ProblemSQLiteStore) -> None:
    assert store.update_problem("pb:missing", {"notes": "x"}, now=NOW) is None


def test_delete_problem(store: ProblemSQLiteStore) -> None:
    created = store.create_problem(_payload(), now=NOW)

    assert store.delete_problem(created.id) is True
    assert store.delete_problem(created.id) is False
    assert store.get_problem(created.id) is None


def test_apply_review_persists_scheduler_output(store: ProblemSQLiteStore) -> None:
    created = store.create_problem(_payload(), now=NOW)
    review_time = NOW + timedelta(days=1)

    updated = store.apply_review(created.id, 5, 420, review_time)

    assert updated == record_review(created, 5, 420, review_time)
    assert store.get_problem(created.id) == updated
    assert updated is not None and updated.next_review == review_time + timedelta(days=14)


def test_apply_review_rejects_invalid_confidence_without_writing(store: ProblemSQLiteStore) -> None:
    created = store.create_problem(_payload(), now=NOW)

    with pytest.raises(ValidationError):
        store.apply_review(created.id, 7, 60, NOW)

    assert store.get_problem(created.id) == created


def test_apply_review_unknown_problem_returns_none(store: ProblemSQLiteStore) -> None:
    assert store.apply_review("pb:missing", 4, 60, NOW) is None


def test_save_review_rejects_stale_expected_state(store: ProblemSQLiteStore) -> None:
    original = store.create_problem(_payload(), now=NOW)
    first = record_review(original, 4, 100, NOW + timedelta(hours=1))
    second = record_review(original, 2, 100, NOW + timedelta(hours=2))

    store.save_review(first, expected=original)
    with pytest.raises(ReviewConflictError) as excinfo:
        store.save_review(second, expected=original)

    assert excinfo.value.problem_id == original.id
    assert store.get_problem(original.id) == first


def test_concurrent_reviews_are_all_applied(store: ProblemSQLiteStore) -> None:
    created = store.create_problem(_payload(), now=NOW)
    errors: list[BaseException] = []

    def _review(offset: int) -> None:
        try:
            store.apply_review(created.id, 4, 30, NOW + timedelta(minutes=offset))
        except BaseException as exc:  # pragma: no cover - surfaced by the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=_review, args=(i,)) for i in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    final = store.get_problem(created.id)
    assert final is not None
    assert final.review_count == 8
    assert len(final.attempts) == 8


def test_review_schedule_splits_due_and_upcoming(store: ProblemSQLiteStore) -> None:
    first = store.create_problem(_payload(name="A"), now=NOW)
    second = store.create_problem(_payload(name="B"), now=NOW + timedelta(minutes=5))
    third = store.create_problem(_payload(name="C"), now=NOW + timedelta(minutes=10))
    store.apply_review(second.id, 5, 60, NOW + timedelta(minutes=20))

    partition = store.review_schedule(NOW + timedelta(hours=1))

    assert [p.id for p in partition.due] == [first.id, third.id]
    assert [p.id for p in partition.upcoming] == [second.id]


def test_subscribers_receive_committed_changes(store: ProblemSQLiteStore) -> None:
    received: list[ProblemEvent] = []
    unsubscribe = store.subscribe(received.append)

    created = store.create_problem(_payload(), now=NOW)
    store.apply_review(created.id, 4, 60, NOW)
    store.update_problem(created.id, {"notes": "n"}, now=NOW)
    store.delete_problem(created.id)
    unsubscribe()
    store.create_problem(_payload(name="Ignored"), now=NOW)

    assert [e.kind for e in received] == ["created", "reviewed", "updated", "deleted"]
    assert all(e.problem_id == created.id for e in received)
    assert received[1].problem is not None and received[1].problem.review_count == 1
    assert received[3].problem is None


def test_failing_subscriber_does_not_break_writes_or_other_subscribers(store: ProblemSQLiteStore) -> None:
    received: list[str] = []

    def _broken(_: ProblemEvent) -> None:
        raise RuntimeError("listener bug")

    store.subscribe(_broken)
    store.subscribe(lambda event: received.append(event.kind))

    created = store.create_problem(_payload(), now=NOW)

    assert received == ["created"]
    assert store.get_problem(created.id) == created


def test_failed_review_does_not_notify(store: ProblemSQLiteStore) -> None:
    created = store.create_problem(_payload(), now=NOW)
    received: list[ProblemEvent] = []
    store.subscribe(received.append)

    with pytest.raises(ValidationError):
        store.apply_review(created.id, 0, 60, NOW)

    assert received == []


def test_save_review_rejects_stale_write_with_identical_schedule_fields(store: ProblemSQLiteStore) -> None:
    # 自信度 4 未満・同時刻のレビューは review_count と last_reviewed が一致してしまう
    original = store.create_problem(_payload(), now=NOW)
    first = record_review(original, 3, 10, NOW)
    stale = record_review(original, 2, 99, NOW)
    assert (first.review_count, first.last_reviewed) == (stale.review_count, stale.last_reviewed)

    store.save_review(first, expected=original)
    with pytest.raises(ReviewConflictError):
        store.save_review(stale, expected=original)

    stored = store.get_problem(original.id)
    assert stored == first
    assert [(a.confidence, a.time_spent) for a in stored.attempts] == [(3, 10)]


def test_update_rejects_unknown_difficulty_as_validation_error(store: ProblemSQLiteStore) -> None:
    created = store.create_problem(_payload(), now=NOW)

    with pytest.raises(ValidationError) as excinfo:
        store.update_problem(created.id, {"difficulty": "Expert"}, now=NOW)

    assert excinfo.value.field == "difficulty"
    assert store.get_problem(created.id) == created
