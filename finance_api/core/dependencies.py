"""FastAPI dependencies exposing the process-wide services held on ``app.state``.

The instances are created once by the application lifespan and destroyed at
shutdown; routes receive them through ``Depends`` instead of importing
module-level singletons.
"""

from __future__ import annotations

from fastapi import Request

from finance_api.services.market_service import MarketDataService
from finance_api.utils.cache_service import CacheService


def get_cache(request: Request) -> CacheService:
    return request.app.state.cache


def get_market_service(request: Request) -> MarketDataService:
    return request.app.state.market_service
