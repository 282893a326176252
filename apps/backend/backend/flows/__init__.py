"""Flow 層。ストアとスケジューラを組み合わせた複数ステップの処理をまとめる。"""

from .quiz import QuizAnswer, QuizFlow

__all__ = ["QuizAnswer", "QuizFlow"]
