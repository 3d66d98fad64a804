from __future__ import annotations

from finance_api.api.routes.health import router as health_router
from finance_api.api.routes.market import router as market_router

__all__ = ["health_router", "market_router"]
