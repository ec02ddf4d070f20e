"""Application settings loaded from environment variables / .env."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "Halaqat"
    APP_DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    DATA_DIR: Path = BASE_DIR / "data"
    DATABASE_URL: str = f"sqlite+aiosqlite:///{BASE_DIR / 'data' / 'halaqat.db'}"

    # Authenticated email header set by the upstream access proxy
    CF_AUTH_HEADER: str = "cf-access-authenticated-user-email"

    # Exam scoring policy
    EXAM_DEDUCTION_RATE: float = 1.0
    EXAM_CURRENT_PART_POOL: int = 100
    EXAM_CUMULATIVE_WEIGHT: int = 100
    EXAM_GATEKEEPER_THRESHOLD: float = 75.0
    EXAM_PASSING_THRESHOLD: float = 70.0
    EXAM_CURRENT_QUESTION_COUNT: int = 3
    EXAM_AWARD_POINTS_ON_COMMIT: bool = False

    # Point ledger
    MANUAL_POINTS_BUDGET_PER_SESSION: int = 20
    MANUAL_POINTS_MAX_ABS: int = 10
    POINT_HISTORY_DEFAULT_LIMIT: int = 50


settings = Settings()
