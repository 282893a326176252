from __future__ import annotations

import json
import sqlite3
from collections.abc import Mapping
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Callable, Iterator

from ..errors import ReviewConflictError, ValidationError
from ..id_factory import generate_problem_id
from ..logging import logger
from ..models.problem import Difficulty, Problem, ProblemCreateRequest
from ..scheduler import ReviewPartition, classify_for_review, new_problem, record_review
from .common import escape_like, normalize_non_negative_int
from .events import Listener, ProblemEvent, ProblemEventHub

_COLUMNS: tuple[str, ...] = (
    "id",
    "name",
    "pattern",
    "difficulty",
    "key_clue",
    "approach",
    "date_solved",
    "confidence",
    "last_reviewed",
    "next_review",
    "review_count",
    "attempts",
    "target_time",
    "notes",
    "solution",
    "solution_typescript",
    "mistakes",
    "leetcode_url",
    "created_at",
    "updated_at",
)
# attempts は追記のみなので、その件数をレビューの版番号として条件付き更新に使う
_STORED_COLUMNS: tuple[str, ...] = (*_COLUMNS, "attempt_count")

# 説明用の属性のみ。スケジュール関連の列は apply_review/save_review からしか書き換えない。
UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {
        "name",
        "pattern",
        "difficulty",
        "key_clue",
        "approach",
        "notes",
        "solution",
        "solution_typescript",
        "mistakes",
        "leetcode_url",
    }
)
_NULLABLE_FIELDS: frozenset[str] = frozenset({"solution_typescript", "leetcode_url"})

_DEFAULT_LIST_LIMIT = 100


def _to_db_time(value: datetime) -> str:
    """UTC に揃えた ISO 文字列にする（文字列比較・ソートが時刻順になるように）。"""

    return value.astimezone(UTC).isoformat()


class ProblemSQLiteStore:
    """SQLite-backed persistence layer for practice problems.

    - 1 操作ごとに接続を開閉する（WAL モード）
    - レビューの書き込みは BEGIN IMMEDIATE と条件付き UPDATE で保護し、
      古い読み取りに基づく書き込みが新しいレビューを上書きしないようにする
    - コミット後に `subscribe` した購読者へ変更イベントを通知する
    """

    def __init__(self, db_path: str, *, id_factory: Callable[[], str] = generate_problem_id) -> None:
        self.db_path = db_path
        self._id_factory = id_factory
        self._events = ProblemEventHub()
        self._ensure_dirs()
        self._init_db()

    # --- low-level helpers ---
    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.db_path, timeout=10.0, isolation_level=None, check_same_thread=False
        )
        conn.row_factory = sqlite3.Row
        with conn:  # autocommit on pragma
            conn.execute("pragma journal_mode=WAL;")
            conn.execute("pragma foreign_keys=ON;")
        return conn

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _immediate(self) -> Iterator[sqlite3.Connection]:
        """書き込みロックを先に取得するトランザクション。例外時はロールバックして再送出。"""

        with self._conn() as conn:
            conn.execute("BEGIN IMMEDIATE;")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK;")
                raise
            else:
                conn.execute("COMMIT;")

    def _ensure_dirs(self) -> None:
        p = Path(self.db_path)
        if p.parent and not p.parent.exists():
            p.parent.mkdir(parents=True, exist_ok=True)

    def _init_db(self) -> None:
        with self._conn() as conn:
            with conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS problems (
                        id TEXT PRIMARY KEY,
                        name TEXT NOT NULL,
                        pattern TEXT NOT NULL,
                        difficulty TEXT NOT NULL CHECK (difficulty IN ('Easy', 'Medium', 'Hard')),
                        key_clue TEXT NOT NULL DEFAULT '',
                        approach TEXT NOT NULL DEFAULT '',
                        date_solved TEXT NOT NULL,
                        confidence INTEGER NOT NULL CHECK (confidence BETWEEN 1 AND 5),
                        last_reviewed TEXT NOT NULL,
                        next_review TEXT NOT NULL,
                        review_count INTEGER NOT NULL DEFAULT 0 CHECK (review_count >= 0),
                        attempts TEXT NOT NULL DEFAULT '[]',
                        attempt_count INTEGER NOT NULL DEFAULT 0 CHECK (attempt_count >= 0),
                        target_time INTEGER NOT NULL,
                        notes TEXT NOT NULL DEFAULT '',
                        solution TEXT NOT NULL DEFAULT '',
                        solution_typescript TEXT,
                        mistakes TEXT NOT NULL DEFAULT '[]',
                        leetcode_url TEXT,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    );
                    """
                )
                conn.execute("CREATE INDEX IF NOT EXISTS idx_problems_next_review ON problems(next_review);")
                conn.execute("CREATE INDEX IF NOT EXISTS idx_problems_pattern ON problems(pattern);")
                conn.execute("CREATE INDEX IF NOT EXISTS idx_problems_created_at ON problems(created_at);")

    @staticmethod
    def _row_to_problem(row: sqlite3.Row) -> Problem:
        data = {key: row[key] for key in _COLUMNS}
        data["attempts"] = json.loads(row["attempts"] or "[]")
        data["mistakes"] = json.loads(row["mistakes"] or "[]")
        return Problem.model_validate(data)

    @staticmethod
    def _problem_to_params(problem: Problem) -> dict[str, Any]:
        return {
            "id": problem.id,
            "name": problem.name,
            "pattern": problem.pattern,
            "difficulty": problem.difficulty.value,
            "key_clue": problem.key_clue,
            "approach": problem.approach,
            "date_solved": _to_db_time(problem.date_solved),
            "confidence": problem.confidence,
            "last_reviewed": _to_db_time(problem.last_reviewed),
            "next_review": _to_db_time(problem.next_review),
            "review_count": problem.review_count,
            "attempts": json.dumps(
                [attempt.model_dump(mode="json") for attempt in problem.attempts],
                ensure_ascii=False,
            ),
            "attempt_count": len(problem.attempts),
            "target_time": problem.target_time,
            "notes": problem.notes,
            "solution": problem.solution,
            "solution_typescript": problem.solution_typescript,
            "mistakes": json.dumps(list(problem.mistakes), ensure_ascii=False),
            "leetcode_url": problem.leetcode_url,
            "created_at": _to_db_time(problem.created_at),
            "updated_at": _to_db_time(problem.updated_at),
        }

    def _fetch(self, conn: sqlite3.Connection, problem_id: str) -> Problem | None:
        cur = conn.execute("SELECT * FROM problems WHERE id = ?;", (problem_id,))
        row = cur.fetchone()
        return self._row_to_problem(row) if row is not None else None

    # --- subscriptions ---
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns the unsubscribe callable."""

        return self._events.subscribe(listener)

    # --- CRUD ---
    def create_problem(self, payload: ProblemCreateRequest, now: datetime) -> Problem:
        """Insert a new problem with the scheduler's creation defaults."""

        fields = payload.model_dump(exclude={"name", "pattern", "difficulty"})
        problem = new_problem(
            self._id_factory(),
            name=payload.name,
            pattern=payload.pattern,
            difficulty=payload.difficulty,
            now=now,
            **fields,
        )
        params = self._problem_to_params(problem)
        placeholders = ", ".join(f":{col}" for col in _STORED_COLUMNS)
        with self._conn() as conn:
            with conn:
                conn.execute(
                    f"INSERT INTO problems({', '.join(_STORED_COLUMNS)}) VALUES ({placeholders});",
                    params,
                )
        logger.info(
            "problem_created",
            problem_id=problem.id,
            difficulty=problem.difficulty.value,
            pattern=problem.pattern,
        )
        self._events.publish(ProblemEvent("created", problem.id, problem))
        return problem

    def get_problem(self, problem_id: str) -> Problem | None:
        with self._conn() as conn:
            return self._fetch(conn, problem_id)

    def list_problems(
        self,
        *,
        pattern: str | None = None,
        difficulty: Difficulty | str | None = None,
        search: str | None = None,
        limit: int = _DEFAULT_LIST_LIMIT,
        offset: int = 0,
    ) -> list[Problem]:
        """List problems newest first, optionally filtered.

        `search` は name / key_clue の部分一致（大文字小文字を区別しない）。
        """

        clauses: list[str] = []
        params: list[Any] = []
        if pattern:
            clauses.append("pattern = ?")
            params.append(pattern)
        if difficulty:
            try:
                params.append(Difficulty(difficulty).value)
            except ValueError:
                raise ValidationError("difficulty", difficulty, f"unknown difficulty {difficulty!r}") from None
            clauses.append("difficulty = ?")
        term = (search or "").strip().lower()
        if term:
            like = f"%{escape_like(term)}%"
            clauses.append("(lower(name) LIKE ? ESCAPE '\\' OR lower(key_clue) LIKE ? ESCAPE '\\')")
            params.extend([like, like])
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.extend([normalize_non_negative_int(limit), normalize_non_negative_int(offset)])
        with self._conn() as conn:
            cur = conn.execute(
                f"SELECT * FROM problems {where} ORDER BY created_at DESC, id ASC LIMIT ? OFFSET ?;",
                params,
            )
            return [self._row_to_problem(row) for row in cur.fetchall()]

    def count_problems(self) -> int:
        with self._conn() as conn:
            row = conn.execute("SELECT COUNT(1) AS c FROM problems;").fetchone()
            return int(row["c"])

    def all_problems(self) -> list[Problem]:
        with self._conn() as conn:
            cur = conn.execute("SELECT * FROM problems ORDER BY created_at ASC, id ASC;")
            return [self._row_to_problem(row) for row in cur.fetchall()]

    def update_problem(
        self, problem_id: str, changes: Mapping[str, Any], now: datetime
    ) -> Problem | None:
        """Update descriptive fields. Returns None when the problem does not exist."""

        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            field = sorted(unknown)[0]
            raise ValidationError(field, changes[field], f"field {field!r} cannot be updated directly")
        update = dict(changes)
        for key, value in update.items():
            if value is None and key not in _NULLABLE_FIELDS:
                raise ValidationError(key, value, f"field {key!r} must not be null")
        if "difficulty" in update:
            try:
                update["difficulty"] = Difficulty(update["difficulty"])
            except ValueError:
                raise ValidationError(
                    "difficulty", update["difficulty"], f"unknown difficulty {update['difficulty']!r}"
                ) from None
        if "mistakes" in update:
            update["mistakes"] = tuple(update["mistakes"] or ())
        update["updated_at"] = now

        with self._immediate() as conn:
            current = self._fetch(conn, problem_id)
            if current is None:
                return None
            updated = current.model_copy(update=update)
            params = self._problem_to_params(updated)
            assignments = ", ".join(f"{col} = :{col}" for col in (*sorted(UPDATABLE_FIELDS), "updated_at"))
            conn.execute(f"UPDATE problems SET {assignments} WHERE id = :id;", params)
        logger.info("problem_updated", problem_id=problem_id, fields=sorted(changes))
        self._events.publish(ProblemEvent("updated", problem_id, updated))
        return updated

    def delete_problem(self, problem_id: str) -> bool:
        """問題を削除する。成功時True、存在しない場合False。"""

        with self._conn() as conn:
            with conn:
                cur = conn.execute("DELETE FROM problems WHERE id = ?;", (problem_id,))
                deleted = cur.rowcount > 0
        if deleted:
            logger.info("problem_deleted", problem_id=problem_id)
            self._events.publish(ProblemEvent("deleted", problem_id))
        return deleted

    # --- reviews ---
    def _write_review(self, conn: sqlite3.Connection, updated: Problem, expected: Problem) -> None:
        params = self._problem_to_params(updated)
        cur = conn.execute(
            """
            UPDATE problems
            SET confidence = :confidence,
                review_count = :review_count,
                last_reviewed = :last_reviewed,
                next_review = :next_review,
                attempts = :attempts,
                attempt_count = :attempt_count,
                updated_at = :updated_at
            WHERE id = :id
              AND attempt_count = :expected_attempt_count
              AND review_count = :expected_review_count
              AND last_reviewed = :expected_last_reviewed;
            """,
            {
                **params,
                "expected_attempt_count": len(expected.attempts),
                "expected_review_count": expected.review_count,
                "expected_last_reviewed": _to_db_time(expected.last_reviewed),
            },
        )
        if cur.rowcount == 0:
            logger.warning("review_conflict", problem_id=updated.id)
            raise ReviewConflictError(updated.id)

    def _log_review(self, problem: Problem) -> None:
        logger.info(
            "problem_reviewed",
            problem_id=problem.id,
            confidence=problem.confidence,
            review_count=problem.review_count,
            next_review=problem.next_review.isoformat(),
        )
        self._events.publish(ProblemEvent("reviewed", problem.id, problem))

    def apply_review(
        self,
        problem_id: str,
        confidence: int,
        time_spent_seconds: int,
        now: datetime,
    ) -> Problem | None:
        """Record a review atomically: read, schedule, conditionally write.

        バリデーションエラーはロールバックしてそのまま呼び出し側へ送出する。
        """

        with self._immediate() as conn:
            current = self._fetch(conn, problem_id)
            if current is None:
                return None
            updated = record_review(current, confidence, time_spent_seconds, now)
            self._write_review(conn, updated, expected=current)
        self._log_review(updated)
        return updated

    def save_review(self, updated: Problem, expected: Problem) -> Problem:
        """Persist a review computed by the caller, only if ``expected`` is still current."""

        if updated.id != expected.id:
            raise ValueError("updated and expected must refer to the same problem")
        with self._immediate() as conn:
            self._write_review(conn, updated, expected=expected)
        self._log_review(updated)
        return updated

    def review_schedule(self, now: datetime) -> ReviewPartition:
        return classify_for_review(self.all_problems(), now)
