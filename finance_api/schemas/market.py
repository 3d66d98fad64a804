"""Pydantic schemas for market data and diagnostics responses."""

from __future__ import annotations

from typing import Any, Dict, List

from pydantic import BaseModel, Field


class QuoteResponse(BaseModel):
    """Latest quote for a single symbol."""

    symbol: str = Field(..., description="Normalized ticker symbol.")
    quote: Dict[str, Any] = Field(
        ..., description="Provider quote (price, change, volume, open/high/low, ...)."
    )


class QuotesResponse(BaseModel):
    """Quotes for several symbols resolved in one request."""

    quotes: Dict[str, Dict[str, Any]] = Field(
        default_factory=dict,
        description="Quotes keyed by symbol. May include stale quotes if the provider failed.",
    )
    missing: List[str] = Field(
        default_factory=list,
        description="Symbols with neither a fresh nor a stale quote available.",
    )


class CacheStatsResponse(BaseModel):
    """Response cache statistics."""

    size: int = Field(..., description="Number of entries currently held.")
    hits: int
    misses: int
    hit_rate: float = Field(..., description="hits / (hits + misses); 0 when no lookups yet.")
    total_memory: int = Field(..., description="Approximate footprint in bytes (estimate).")
    oldest_entry: int = Field(..., description="Creation time of the oldest entry (epoch ms).")
    newest_entry: int = Field(..., description="Creation time of the newest entry (epoch ms).")
