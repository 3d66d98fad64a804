"""Market data adapter layer - abstracts over upstream quote providers."""

from finance_api.adapters.market.alpha_vantage import AlphaVantageClient
from finance_api.adapters.market.base import AbstractMarketDataClient
from finance_api.adapters.market.factory import create_market_client

__all__ = [
    "AbstractMarketDataClient",
    "AlphaVantageClient",
    "create_market_client",
]
