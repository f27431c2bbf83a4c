"""Configuration validators."""

from config.settings import Settings
from src.exceptions import ConfigError


def _require_fraction(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ConfigError(f"{name} must be within [0, 1], got {value}")


def validate_trading_settings(s: Settings) -> None:
    """Raise ConfigError if the trading parameters are out of range."""
    if s.STARTING_VALUE <= 0:
        raise ConfigError("STARTING_VALUE must be positive")
    if s.WEEKLY_TARGET_RETURN < 0:
        raise ConfigError("WEEKLY_TARGET_RETURN must not be negative")
    _require_fraction("MAX_POSITION_FRACTION", s.MAX_POSITION_FRACTION)
    _require_fraction("MIN_CASH_RESERVE_FRACTION", s.MIN_CASH_RESERVE_FRACTION)
    _require_fraction("TRADE_FEE_RATE", s.TRADE_FEE_RATE)
    _require_fraction("AUTONOMY_LEVEL", s.AUTONOMY_LEVEL)
    if s.MINIMUM_TRADE_NOTIONAL < 0:
        raise ConfigError("MINIMUM_TRADE_NOTIONAL must not be negative")
    if s.DECISION_INTERVAL_MS <= 0:
        raise ConfigError("DECISION_INTERVAL_MS must be positive")
    if s.CACHE_TTL_MS < 0:
        raise ConfigError("CACHE_TTL_MS must not be negative")
    if s.SNAPSHOT_HISTORY < 1:
        raise ConfigError("SNAPSHOT_HISTORY must be at least 1")
    if not 0 <= s.URGENCY_HIGH_DAYS <= s.URGENCY_MEDIUM_DAYS <= 7:
        raise ConfigError(
            "urgency thresholds must satisfy 0 <= HIGH <= MEDIUM <= 7 days"
        )
    bounds = [
        s.SCORE_POOR_BELOW,
        s.SCORE_WEAK_MAX,
        s.SCORE_MODERATE_MAX,
        s.SCORE_STRONG_MAX,
    ]
    if bounds != sorted(bounds) or bounds[0] < 0 or bounds[-1] > 1:
        raise ConfigError("market score bucket thresholds must be ascending in [0, 1]")


def validate_intel_endpoint(s: Settings) -> None:
    """Raise ConfigError if the market intelligence endpoint is missing."""
    if not s.INTEL_BASE_URL:
        raise ConfigError("INTEL_BASE_URL is required")
