from __future__ import annotations

from typing import Any


def normalize_non_negative_int(value: Any) -> int:
    """与えられた値を非負整数に正規化する。

    一覧 API の limit/offset は UI のバグで負値や文字列が送られることがあるため、
    SQL に渡す前にゼロ以上へ矯正しておく。"""

    try:
        ivalue = int(value)
    except (TypeError, ValueError):
        return 0
    return ivalue if ivalue >= 0 else 0


def escape_like(text: str) -> str:
    """LIKE 検索用に `%`/`_`/`\\` をエスケープする（ESCAPE '\\' と併用）。"""

    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
