from typing import Annotated

from fastapi import APIRouter, Depends, Path, Query

from finance_api.core.dependencies import get_market_service
from finance_api.core.rate_limit import rate_limit
from finance_api.schemas.market import QuoteResponse, QuotesResponse
from finance_api.services.market_service import MarketDataService, parse_symbols

router = APIRouter(tags=["Market"], dependencies=[Depends(rate_limit("market"))])


@router.get("/market/quote/{symbol}", response_model=QuoteResponse)
async def get_quote(
    symbol: Annotated[str, Path(description="Ticker symbol, e.g. AAPL or PETR4.SA")],
    service: Annotated[MarketDataService, Depends(get_market_service)],
) -> QuoteResponse:
    """Return the latest quote for a symbol.

    Served from the response cache when a fresh quote is held; otherwise the
    upstream provider is called and the result cached.

    Raises:
        ValidationAppError: 400 when the symbol is invalid.
        MarketDataAppError: 502 when the provider fails on a cache miss.
    """
    quote = await service.get_quote(symbol)
    return QuoteResponse(symbol=quote.get("symbol", symbol.upper()), quote=quote)


@router.get("/market/quotes", response_model=QuotesResponse)
async def get_quotes(
    symbols: Annotated[str, Query(description="Comma-separated ticker symbols")],
    service: Annotated[MarketDataService, Depends(get_market_service)],
) -> QuotesResponse:
    """Return quotes for several symbols with a single upstream call for all misses.

    If the provider fails, symbols with an expired cached quote still return
    it; symbols without any cached quote are listed under ``missing``.
    """
    quotes, missing = await service.get_quotes(parse_symbols(symbols))
    return QuotesResponse(quotes=quotes, missing=missing)
