import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any

from finance_api.core.errors import MarketDataAppError

logger = logging.getLogger(__name__)

# Failures that concern one symbol only; anything else fails the whole batch
PER_SYMBOL_ERROR_CODES = frozenset({"market_symbol_not_found", "market_invalid_payload"})


class AbstractMarketDataClient(ABC):
	"""Interface for upstream market data providers."""

	@abstractmethod
	async def get_quote(self, symbol: str) -> dict[str, Any]:
		"""Fetch the latest quote for a single symbol.

		Args:
			symbol: Normalized (upper-case) ticker symbol.

		Returns:
			dict[str, Any]: Quote with symbol, price, change, change_percent,
				volume, open, high, low, previous_close.

		Raises:
			MarketDataAppError: If the provider call fails or returns no quote.
		"""
		...

	async def get_quotes(self, symbols: list[str]) -> dict[str, dict[str, Any]]:
		"""Fetch quotes for several symbols concurrently.

		Symbols the provider does not know (or returns garbage for) are left
		out of the result. Any other failure, such as a transport error or
		throttling, fails the whole batch.

		Args:
			symbols: Normalized ticker symbols.

		Returns:
			dict[str, dict[str, Any]]: Quotes keyed by symbol, for the subset
				that resolved.

		Raises:
			MarketDataAppError: If a provider-wide failure occurred.
		"""
		results = await asyncio.gather(
			*(self.get_quote(symbol) for symbol in symbols),
			return_exceptions=True,
		)

		quotes: dict[str, dict[str, Any]] = {}
		skipped: list[str] = []
		for symbol, result in zip(symbols, results):
			if isinstance(result, MarketDataAppError) and result.code in PER_SYMBOL_ERROR_CODES:
				skipped.append(symbol)
			elif isinstance(result, BaseException):
				raise result
			else:
				quotes[symbol] = result

		if skipped:
			logger.info("market.quotes_skipped", extra={"symbols": skipped})
		return quotes

	async def aclose(self) -> None:
		"""Release network resources held by the client."""
