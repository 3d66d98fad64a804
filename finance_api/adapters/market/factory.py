"""Factory pattern for creating market data client instances."""

from finance_api.adapters.market.alpha_vantage import AlphaVantageClient
from finance_api.adapters.market.base import AbstractMarketDataClient
from finance_api.core.config import MarketDataSettings, settings
from finance_api.core.errors import ValidationAppError


def create_market_client(market_settings: MarketDataSettings | None = None) -> AbstractMarketDataClient:
    """Instantiate the configured market data client.

    Returns:
        AbstractMarketDataClient: Configured client instance.

    Raises:
        ValidationAppError: If provider-specific requirements are not met.
    """
    cfg = market_settings or settings.market
    provider = cfg.provider.lower()

    if provider == "alphavantage":
        if not cfg.api_key:
            raise ValidationAppError(
                code="market_missing_api_key",
                message="Alpha Vantage provider requires MARKET_API_KEY environment variable",
            )
        return AlphaVantageClient(
            api_key=cfg.api_key,
            base_url=cfg.base_url,
            timeout_seconds=cfg.timeout_seconds,
        )

    raise ValidationAppError(
        code="market_unknown_provider",
        message=f"Unknown market data provider: '{provider}'. Supported providers: alphavantage",
    )
