from fastapi import APIRouter

from ..config import settings
from ..models.problem import PATTERNS, Difficulty
from ..scheduler import get_target_time


router = APIRouter()


@router.get("/config")
def get_runtime_config() -> dict[str, object]:
    """Expose runtime config needed by the frontend.

    フロントエンドが選択肢やタイマー表示に使う値を返す。
    target_times は難易度ごとの目標解答時間（秒）。
    """
    return {
        "quiz_max_questions": settings.quiz_max_questions,
        "patterns": list(PATTERNS),
        "difficulties": [d.value for d in Difficulty],
        "target_times": {d.value: get_target_time(d) for d in Difficulty},
    }
