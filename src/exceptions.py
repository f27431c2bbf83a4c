"""Custom exceptions for the Pacer trading simulator."""


class PacerError(Exception):
    """Base exception for all Pacer errors."""


class ValidationError(PacerError):
    """Malformed execution, signal, or goal input."""


class InsufficientInventory(PacerError):
    """A sell's quantity exceeds the open lot quantity."""


class ExecutionRejected(PacerError):
    """A decision could not be applied against current balances."""


class InsufficientFunds(ExecutionRejected):
    """Not enough quote balance to pay for a buy."""


class InsufficientHoldings(ExecutionRejected):
    """Not enough base balance to cover a sell."""


class DataUnavailable(PacerError):
    """A market-intelligence source failed to refresh."""


class ConcurrencyViolation(PacerError):
    """An overlapping cycle or a stale state version was detected."""


class PersistenceError(PacerError):
    """Database persistence failure."""


class ConfigError(PacerError):
    """Missing or invalid configuration."""
