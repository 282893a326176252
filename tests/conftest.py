"""Pytest configuration shared by the backend test suite."""

import os
import sys
import tempfile
from pathlib import Path

_BACKEND_ROOT = Path(__file__).resolve().parents[1] / "apps" / "backend"
if str(_BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(_BACKEND_ROOT))

# モジュール読み込み時にシングルトンのストアが生成されるため、作業ディレクトリに
# `.data/` を作らないよう一時ディレクトリの DB を既定値にしておく。
os.environ.setdefault(
    "PROBLEMS_DB_PATH",
    str(Path(tempfile.mkdtemp(prefix="problems-tests-")) / "problems.sqlite3"),
)
# API テストは同一クライアント IP から連続で叩くため、レート制限を実質無効化する。
os.environ.setdefault("RATE_LIMIT_PER_MIN_IP", "100000")
