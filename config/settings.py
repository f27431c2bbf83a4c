"""Runtime configuration, read from the environment and ``.env``."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # === Goal ===
    WEEKLY_TARGET_RETURN: float = 0.05  # 5% per week
    STARTING_VALUE: float = 10000.0  # quote currency

    # === Sizing ===
    MAX_POSITION_FRACTION: float = 0.5
    MIN_CASH_RESERVE_FRACTION: float = 0.0
    MINIMUM_TRADE_NOTIONAL: float = 25.0  # quote currency
    TRADE_FEE_RATE: float = 0.0  # fraction of notional
    AUTONOMY_LEVEL: float = 1.0

    # === Urgency (days remaining in the goal week) ===
    URGENCY_HIGH_DAYS: float = 2.0
    URGENCY_MEDIUM_DAYS: float = 4.0

    # === Market score buckets ===
    SCORE_POOR_BELOW: float = 0.3
    SCORE_WEAK_MAX: float = 0.4
    SCORE_MODERATE_MAX: float = 0.6
    SCORE_STRONG_MAX: float = 0.7

    # === Scheduling ===
    DECISION_INTERVAL_MS: int = 60_000  # 1 minute
    CACHE_TTL_MS: int = 300_000  # 5 minutes

    # === Metrics ===
    RISK_FREE_RATE: float = 0.02  # annualized
    SNAPSHOT_HISTORY: int = 10_080  # in-memory snapshots, one week at 1 minute

    # === Market intelligence ===
    INTEL_BASE_URL: str = "http://localhost:4000"
    INTEL_TIMEOUT_SECONDS: float = 10.0

    # === Database ===
    DATABASE_URL: str = "sqlite+aiosqlite:///data/pacer.db"

    # === Logging ===
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    model_config = {"env_file": ".env"}


settings = Settings()
