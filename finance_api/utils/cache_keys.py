"""Deterministic cache key builders for market data queries.

Keys are namespaced by query type so different lookups for the same symbol
never collide (``quote:AAPL`` vs ``overview:AAPL``).

The quote routes only use ``quote_key``. The remaining builders keep the
dashboard's full key layout (intraday and daily series, news, search,
indicators, company overview, symbol validation) so new lookups can share
the cache without inventing their own prefixes.
"""

from __future__ import annotations

from typing import Sequence


def quote_key(symbol: str) -> str:
    return f"quote:{symbol}"


def intraday_key(symbol: str, interval: str) -> str:
    return f"intraday:{symbol}:{interval}"


def daily_key(symbol: str) -> str:
    return f"daily:{symbol}"


def news_key(symbols: Sequence[str], topics: Sequence[str], limit: int) -> str:
    return f"news:{','.join(symbols)}:{','.join(topics)}:{limit}"


def search_key(query: str) -> str:
    """Search keys are case-insensitive."""
    return f"search:{query.lower()}"


def technical_key(symbol: str, indicator: str, interval: str) -> str:
    return f"technical:{symbol}:{indicator}:{interval}"


def overview_key(symbol: str) -> str:
    return f"overview:{symbol}"


def validation_key(symbol: str) -> str:
    return f"validation:{symbol}"


def symbol_from_key(key: str) -> str:
    """Extract the symbol from a single-symbol key such as ``quote:AAPL``."""

    _, _, rest = key.partition(":")
    return rest.split(":", 1)[0]
