"""ID 生成ユーティリティ。

問題 ID は URL パスにそのまま載せられる文字だけで構成し、
prefix "pb:" を付けた UUID を使用する。
"""

from __future__ import annotations

import uuid


def generate_problem_id() -> str:
    """問題の新規 ID を生成する。"""

    return f"pb:{uuid.uuid4().hex}"
