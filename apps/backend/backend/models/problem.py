from __future__ import annotations

from enum import Enum

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, field_validator


# 問題を分類するアルゴリズムパターン。クイズの選択肢としてもそのまま使う。
PATTERNS: tuple[str, ...] = (
    "Two Pointers",
    "Sliding Window",
    "Binary Search",
    "Trees",
    "Graphs",
    "Dynamic Programming",
    "Backtracking",
    "Arrays & Hashing",
    "Linked Lists",
    "Heap",
    "Greedy",
    "Other",
)

CONFIDENCE_MIN = 1
CONFIDENCE_MAX = 5


def _validate_pattern(value: str) -> str:
    if value not in PATTERNS:
        raise ValueError(f"pattern must be one of {list(PATTERNS)}")
    return value


class Difficulty(str, Enum):
    """Problem difficulty; determines the target solve time."""

    easy = "Easy"
    medium = "Medium"
    hard = "Hard"


class Attempt(BaseModel):
    """One recorded review attempt. Never modified after it is appended."""

    model_config = ConfigDict(frozen=True)

    date: AwareDatetime
    time_spent: int = Field(ge=0, description="Seconds spent on the attempt")
    confidence: int = Field(ge=CONFIDENCE_MIN, le=CONFIDENCE_MAX)


class Problem(BaseModel):
    """A practice problem together with its review schedule.

    スケジューラが扱うのは confidence / review_count / last_reviewed /
    next_review / attempts / target_time のみで、それ以外は表示用の属性。
    値はイミュータブルで、更新は常に新しいインスタンスを生成する。
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    pattern: str
    difficulty: Difficulty
    key_clue: str = ""
    approach: str = ""
    date_solved: AwareDatetime
    # Spaced repetition
    confidence: int = Field(ge=CONFIDENCE_MIN, le=CONFIDENCE_MAX)
    last_reviewed: AwareDatetime
    next_review: AwareDatetime
    review_count: int = Field(ge=0)
    # Time tracking
    attempts: tuple[Attempt, ...] = ()
    target_time: int = Field(ge=0, description="Target solve time in seconds")
    # Notes & solutions
    notes: str = ""
    solution: str = ""
    solution_typescript: str | None = None
    mistakes: tuple[str, ...] = ()
    leetcode_url: str | None = None
    created_at: AwareDatetime
    updated_at: AwareDatetime


class ProblemCreateRequest(BaseModel):
    """新規問題の登録リクエスト。スケジュール関連の値はサーバ側で決定する。"""

    name: str = Field(min_length=1, max_length=200)
    pattern: str = Field(min_length=1, max_length=64)
    difficulty: Difficulty
    key_clue: str = Field(min_length=1, max_length=2000)
    approach: str = ""
    date_solved: AwareDatetime | None = None
    notes: str = ""
    solution: str = ""
    solution_typescript: str | None = None
    mistakes: list[str] = Field(default_factory=list)
    leetcode_url: str | None = None

    @field_validator("pattern")
    @classmethod
    def _known_pattern(cls, value: str) -> str:
        return _validate_pattern(value)


class ProblemUpdateRequest(BaseModel):
    """Partial update of descriptive fields.

    confidence や next_review などスケジューラが管理する値はここでは変更できない
    （レビュー API 経由でのみ更新される）。
    """

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=200)
    pattern: str | None = Field(default=None, min_length=1, max_length=64)
    difficulty: Difficulty | None = None
    key_clue: str | None = Field(default=None, min_length=1, max_length=2000)
    approach: str | None = None
    notes: str | None = None
    solution: str | None = None
    solution_typescript: str | None = None
    mistakes: list[str] | None = None
    leetcode_url: str | None = None

    @field_validator("pattern")
    @classmethod
    def _known_pattern(cls, value: str | None) -> str | None:
        return None if value is None else _validate_pattern(value)


class ProblemListResponse(BaseModel):
    items: list[Problem]
    limit: int
    offset: int


class ReviewRequest(BaseModel):
    """レビュー結果の送信。confidence の範囲チェックはスケジューラで行う。"""

    confidence: int
    time_spent_seconds: int = Field(default=0, ge=0)


class ReviewScheduleResponse(BaseModel):
    """Due/upcoming partition, each sorted by next_review ascending."""

    now: AwareDatetime
    due: list[Problem]
    upcoming: list[Problem]
    due_count: int
    upcoming_count: int


class QuizStartRequest(BaseModel):
    limit: int | None = Field(default=None, ge=1)


class QuizStartResponse(BaseModel):
    items: list[Problem]
    patterns: list[str]


class QuizAnswerRequest(BaseModel):
    problem_id: str
    guessed_pattern: str
    confidence: int | None = None
    time_spent_seconds: int = Field(default=0, ge=0)


class QuizAnswerResponse(BaseModel):
    correct: bool
    correct_pattern: str
    reviewed: bool
    problem: Problem
