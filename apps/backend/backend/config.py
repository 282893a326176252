from typing import Annotated

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources.types import NoDecode


DEFAULT_DB_PATH = ".data/problems.sqlite3"
_IN_MEMORY_DB_PATHS = frozenset({":memory:", ""})


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    環境変数から読み込まれるアプリ設定クラス。
    - environment: 実行環境（development/staging/production など）
    - problems_db_path: 問題レコードを保存する SQLite のパス
    - quiz_max_questions: クイズ 1 回あたりの最大出題数
    """

    environment: str = Field(
        default="development",
        description="Runtime environment / 実行環境",
    )

    # --- データ永続化設定 ---
    problems_db_path: str = Field(
        default=DEFAULT_DB_PATH,
        description="Path to SQLite database for problem records / 問題レコード用SQLite DBパス",
    )

    # --- クイズ ---
    quiz_max_questions: int = Field(
        default=10,
        ge=1,
        description="Max problems per quiz round / クイズ1回あたりの最大出題数",
    )

    # --- Operations/Observability ---
    rate_limit_per_min_ip: int = Field(
        default=240,
        description="Per-IP API requests per minute / IP単位の毎分上限",
    )
    log_level: str = Field(
        default="INFO",
        description="Root log level / ルートロガーのログレベル",
    )
    sentry_dsn: str | None = Field(
        default=None, description="Sentry DSN (enable if set)"
    )
    # なぜ: CORS の許可オリジンを設定ファイルから明示する。未設定の場合は
    # ワイルドカード（認証クッキー非許可）にフォールバックする。
    allowed_cors_origins: Annotated[tuple[str, ...], NoDecode] = Field(
        default=(),
        description=(
            "Comma separated CORS origins / CORS で許可するオリジンのカンマ区切り一覧"
        ),
        validation_alias=AliasChoices("allowed_cors_origins", "cors_allowed_origins"),
    )

    # --- Strict mode ---
    strict_mode: bool = Field(
        default=True,
        description="Fail fast on missing/invalid configuration (disable only for tests)",
    )

    # Pydantic v2 settings config
    # - env_file: .env を読み込む
    # - extra: .env に存在する未使用キーを無視
    # - case_sensitive: 環境変数キーの大小文字を区別しない
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    @field_validator("allowed_cors_origins", mode="before")
    @classmethod
    def _normalise_allowed_cors_origins(
        cls, raw_origins: object
    ) -> tuple[str, ...] | object:  # pragma: no cover - pydantic handles typing
        """Convert environment input into a deduplicated tuple of origins.

        `.env` で管理すると空白や重複が混ざりやすいため、FastAPI へ渡す前に
        トリムと重複排除を行う。
        """

        if raw_origins is None:
            candidates: list[str] = []
        elif isinstance(raw_origins, str):
            candidates = raw_origins.split(",")
        else:
            try:
                candidates = list(raw_origins)
            except TypeError:
                return raw_origins

        normalised: list[str] = []
        seen: set[str] = set()
        for candidate in candidates:
            if not isinstance(candidate, str):
                continue
            trimmed = candidate.strip()
            if not trimmed or trimmed in seen:
                continue
            seen.add(trimmed)
            normalised.append(trimmed)

        return tuple(normalised)

    @field_validator("log_level", mode="after")
    @classmethod
    def _normalise_log_level(cls, value: str) -> str:
        level = (value or "").strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"LOG_LEVEL must be a standard logging level, got {value!r}")
        return level

    @model_validator(mode="after")
    def _reject_volatile_db_in_strict_mode(self) -> "Settings":
        """Refuse an in-memory database when STRICT_MODE is enabled.

        なぜ: `:memory:` は接続ごとに別 DB になるため、レビュー結果が
        リクエストをまたいで失われる。テスト以外では起動時に拒否する。
        """

        db_path = (self.problems_db_path or "").strip()
        if self.strict_mode and db_path in _IN_MEMORY_DB_PATHS:
            raise ValueError(
                "PROBLEMS_DB_PATH must point to a file when STRICT_MODE=true",
            )
        return self


settings = Settings()
