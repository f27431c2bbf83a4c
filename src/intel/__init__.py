"""Market intelligence: signal model, HTTP sources, and TTL cache."""

from .cache import MarketIntelligenceCache
from .signal import NEUTRAL_SIGNAL, MarketIntelligence, MarketSignal
from .sources import MarketIntelClient

__all__ = [
    "MarketIntelligenceCache",
    "MarketIntelClient",
    "MarketIntelligence",
    "MarketSignal",
    "NEUTRAL_SIGNAL",
]
