"""Alpha Vantage market data client adapter."""

from typing import Any

import httpx

from finance_api.adapters.market.base import AbstractMarketDataClient
from finance_api.core.errors import MarketDataAppError


def _to_float(value: str | None) -> float | None:
    if value in (None, ""):
        return None
    return float(value.rstrip("%"))


class AlphaVantageClient(AbstractMarketDataClient):
    """Client for the Alpha Vantage ``GLOBAL_QUOTE`` endpoint.

    The free tier allows only a handful of calls per minute, which is why
    quotes are served through the response cache.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://www.alphavantage.co",
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the shared async HTTP client.

        Args:
            api_key: Alpha Vantage API key.
            base_url: Provider base URL.
            timeout_seconds: Timeout for requests in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self.api_key = api_key
        self.client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout_seconds,
            transport=transport,
        )

    async def get_quote(self, symbol: str) -> dict[str, Any]:
        """Fetch and normalize a ``GLOBAL_QUOTE`` payload.

        Raises:
            MarketDataAppError: On transport errors, non-2xx responses, provider
                notes (throttling) or an empty quote.
        """
        params = {"function": "GLOBAL_QUOTE", "symbol": symbol, "apikey": self.api_key}

        try:
            response = await self.client.get("/query", params=params)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise MarketDataAppError(
                code="market_provider_error",
                message=f"Alpha Vantage request failed: {type(exc).__name__}",
                details={"symbol": symbol, "provider": "alphavantage"},
            ) from exc

        # Throttled responses come back as 200 with a "Note"/"Information" field
        notice = payload.get("Note") or payload.get("Information")
        if notice:
            raise MarketDataAppError(
                code="market_provider_throttled",
                message="Alpha Vantage rejected the request (rate limited)",
                details={"symbol": symbol, "provider": "alphavantage"},
            )

        raw = payload.get("Global Quote") or {}
        if not raw.get("01. symbol"):
            raise MarketDataAppError(
                code="market_symbol_not_found",
                message=f"No quote available for symbol '{symbol}'",
                details={"symbol": symbol, "provider": "alphavantage"},
            )

        try:
            volume = raw.get("06. volume")
            return {
                "symbol": raw["01. symbol"],
                "open": _to_float(raw.get("02. open")),
                "high": _to_float(raw.get("03. high")),
                "low": _to_float(raw.get("04. low")),
                "price": _to_float(raw.get("05. price")),
                "volume": int(volume) if volume else None,
                "latest_trading_day": raw.get("07. latest trading day"),
                "previous_close": _to_float(raw.get("08. previous close")),
                "change": _to_float(raw.get("09. change")),
                "change_percent": _to_float(raw.get("10. change percent")),
                "source": "alphavantage",
            }
        except ValueError as exc:
            raise MarketDataAppError(
                code="market_invalid_payload",
                message="Alpha Vantage returned a malformed quote",
                details={"symbol": symbol, "provider": "alphavantage"},
            ) from exc

    async def aclose(self) -> None:
        await self.client.aclose()
