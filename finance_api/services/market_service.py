"""Market data service serving quotes through the response cache.

The upstream provider is slow and rate limited, so every quote lookup goes
through the cache first:
- Single quotes use ``get_or_set`` keyed by ``quote:{SYMBOL}``
- Multi-symbol lookups use ``batch_get`` so all misses share one upstream call
  and a failing provider degrades to stale quotes where available
"""

import logging
import re
from typing import Any

from finance_api.adapters.market.base import AbstractMarketDataClient
from finance_api.core.errors import ValidationAppError
from finance_api.utils.cache_keys import quote_key, symbol_from_key
from finance_api.utils.cache_service import CacheService

logger = logging.getLogger(__name__)

_SYMBOL_RE = re.compile(r"^[A-Z0-9.\-^=]{1,15}$")

MAX_BATCH_SYMBOLS = 25


def normalize_symbol(symbol: str) -> str:
    """Upper-case and validate a ticker symbol.

    Raises:
        ValidationAppError: If the symbol is empty or has unsupported characters.
    """
    normalized = (symbol or "").strip().upper()
    if not _SYMBOL_RE.match(normalized):
        raise ValidationAppError(
            code="invalid_symbol",
            message="Symbol must be 1-15 characters of A-Z, 0-9, '.', '-', '^' or '='",
            details={"symbol": symbol},
        )
    return normalized


def parse_symbols(raw: str) -> list[str]:
    """Split a comma-separated symbol list, normalizing and de-duplicating it.

    Raises:
        ValidationAppError: If no symbols are given, too many are given, or any is invalid.
    """
    symbols: list[str] = []
    for part in raw.split(","):
        if not part.strip():
            continue
        symbol = normalize_symbol(part)
        if symbol not in symbols:
            symbols.append(symbol)

    if not symbols:
        raise ValidationAppError(
            code="missing_symbols",
            message="Provide at least one symbol",
        )
    if len(symbols) > MAX_BATCH_SYMBOLS:
        raise ValidationAppError(
            code="too_many_symbols",
            message=f"At most {MAX_BATCH_SYMBOLS} symbols per request",
            details={"symbols": symbols},
        )
    return symbols


class MarketDataService:
    """Cache-backed access to upstream quotes.

    Attributes:
        client: Upstream market data client.
        cache: Shared response cache.
        quote_ttl_ms: TTL applied to cached quotes.
    """

    def __init__(
        self,
        client: AbstractMarketDataClient,
        cache: CacheService,
        quote_ttl_ms: int | None = None,
    ) -> None:
        self.client = client
        self.cache = cache
        self.quote_ttl_ms = quote_ttl_ms

    async def get_quote(self, symbol: str) -> dict[str, Any]:
        """Return the quote for symbol, fetching upstream only on a cache miss.

        Raises:
            ValidationAppError: If the symbol is invalid.
            MarketDataAppError: If the upstream fetch fails.
        """
        normalized = normalize_symbol(symbol)

        async def fetch() -> dict[str, Any]:
            logger.info("market.quote_fetch", extra={"symbol": normalized})
            return await self.client.get_quote(normalized)

        return await self.cache.get_or_set(quote_key(normalized), fetch, self.quote_ttl_ms)

    async def get_quotes(self, symbols: list[str]) -> tuple[dict[str, dict[str, Any]], list[str]]:
        """Return quotes for several symbols plus the symbols that could not be resolved.

        Args:
            symbols: Already normalized symbols (see parse_symbols).

        Returns:
            Tuple of (quotes by symbol, unresolved symbols).
        """

        async def fetch(missing_keys: list[str]) -> dict[str, dict[str, Any]]:
            missing_symbols = [symbol_from_key(key) for key in missing_keys]
            logger.info("market.quotes_fetch", extra={"symbols": missing_symbols})
            quotes = await self.client.get_quotes(missing_symbols)
            return {quote_key(symbol): quote for symbol, quote in quotes.items()}

        keys = [quote_key(symbol) for symbol in symbols]
        resolved = await self.cache.batch_get(keys, fetch, self.quote_ttl_ms)

        quotes = {symbol_from_key(key): value for key, value in resolved.items()}
        missing = [symbol for symbol in symbols if symbol not in quotes]
        return quotes, missing
