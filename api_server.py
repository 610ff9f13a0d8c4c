"""FastAPI server for the NSE market data cache."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Query
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config.settings import settings
from market_cache.enhanced_cache import EnhancedCacheManager, MarketDataPoller
from schemas.request_schemas import IndicatorRequest, InvalidateRequest
from schemas.response_schemas import (
    CacheStatsResponse,
    CacheSummaryResponse,
    CleanupResponse,
    ErrorResponse,
    IndicatorSummaryResponse,
    InvalidateResponse,
)
from tools.durable_store import SqliteDurableStore
from tools.error_handler import MarketCacheError, format_error_response
from tools.health_checker import get_health_status
from tools.indicators import PriceData, compute_indicator_summary
from tools.market_data import MarketDataService
from tools.nse_client import NSEClient

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

cache_manager = EnhancedCacheManager()
market_poller = MarketDataPoller(cache_manager)
nse_client = NSEClient()


@lru_cache(maxsize=1)
def get_durable_store() -> SqliteDurableStore:
    return SqliteDurableStore(settings.durable_store_path)


def get_cache_manager() -> EnhancedCacheManager:
    return cache_manager


def get_market_data(
    manager: EnhancedCacheManager = Depends(get_cache_manager),
) -> MarketDataService:
    return MarketDataService(manager, nse_client, get_durable_store())


@asynccontextmanager
async def lifespan(_: FastAPI):
    cache_manager.init()
    logger.info("Market cache API started store=%s", settings.durable_store_path)
    try:
        yield
    finally:
        market_poller.stop_all_polling()
        await cache_manager.shutdown_all()
        await nse_client.aclose()
        logger.info("Market cache API shut down cleanly")


app = FastAPI(title="NSE Market Data Cache", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _status_for(exc: MarketCacheError) -> int:
    if exc.error_category == "NETWORK_ERROR":
        return 502
    return 400


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_, exc: RequestValidationError) -> JSONResponse:
    payload = ErrorResponse(
        error_category="VALIDATION_ERROR",
        failed_step="REQUEST_VALIDATION",
        error_message=str(exc),
    )
    return JSONResponse(status_code=422, content=payload.model_dump())


@app.exception_handler(MarketCacheError)
async def market_error_handler(_, exc: MarketCacheError) -> JSONResponse:
    payload = format_error_response(exc, failed_step=exc.failed_step)
    return JSONResponse(status_code=_status_for(exc), content=payload.model_dump())


@app.exception_handler(ValueError)
async def value_error_handler(_, exc: ValueError) -> JSONResponse:
    payload = ErrorResponse(error_category="VALIDATION_ERROR", failed_step=None, error_message=str(exc))
    return JSONResponse(status_code=400, content=payload.model_dump())


@app.exception_handler(Exception)
async def unhandled_exception_handler(_, exc: Exception) -> JSONResponse:
    payload = format_error_response(exc)
    return JSONResponse(status_code=500, content=payload.model_dump())


@app.get("/api/cache")
async def cache_info(
    action: Optional[str] = Query(default=None),
    manager: EnhancedCacheManager = Depends(get_cache_manager),
):
    if action == "cleanup":
        evicted = manager.tiers.cleanup_expired_keys()
        return CleanupResponse(evicted=evicted)

    if action == "metrics":
        return manager.tiers.metrics()

    if action == "stats":
        return CacheStatsResponse(**manager.get_stats())

    metrics = manager.tiers.metrics()
    return CacheSummaryResponse(caches={name: {"keys": tier["keys"]} for name, tier in metrics.items()})


@app.post("/api/cache/invalidate", response_model=InvalidateResponse)
async def invalidate(
    request: InvalidateRequest,
    manager: EnhancedCacheManager = Depends(get_cache_manager),
) -> InvalidateResponse:
    manager.invalidate(request.key)
    return InvalidateResponse(key=request.key)


@app.post("/api/indicators", response_model=IndicatorSummaryResponse)
async def indicators(request: IndicatorRequest) -> IndicatorSummaryResponse:
    series = [
        PriceData(p.timestamp, p.open, p.high, p.low, p.close, p.volume)
        for p in request.prices
    ]
    return IndicatorSummaryResponse(**compute_indicator_summary(series))


@app.get("/api/stock/{symbol}")
async def stock_quote(
    symbol: str,
    refresh: bool = False,
    service: MarketDataService = Depends(get_market_data),
) -> Dict[str, Any]:
    data = await service.get_stock_quote(symbol, force_refresh=refresh)
    market_poller.start_polling(symbol, "stock")
    return {"symbol": symbol.strip().upper(), "data": data}


@app.get("/api/stock/{symbol}/chart")
async def stock_chart(
    symbol: str,
    days: str = "1D",
    service: MarketDataService = Depends(get_market_data),
) -> Dict[str, Any]:
    data = await service.get_stock_chart(symbol, days)
    return {"symbol": symbol.strip().upper(), "days": days.strip().upper(), "data": data}


@app.get("/api/stock/{symbol}/trends")
async def stock_trends(
    symbol: str,
    service: MarketDataService = Depends(get_market_data),
) -> Dict[str, Any]:
    return {"symbol": symbol.strip().upper(), "data": await service.get_stock_trends(symbol)}


@app.get("/api/stock/{symbol}/corporate/{kind}")
async def corporate_data(
    symbol: str,
    kind: str,
    service: MarketDataService = Depends(get_market_data),
) -> Dict[str, Any]:
    data = await service.get_corporate_data(symbol, kind)
    return {"symbol": symbol.strip().upper(), "type": kind.lower(), "data": data}


@app.get("/api/index/{index_name}")
async def index_quote(
    index_name: str,
    service: MarketDataService = Depends(get_market_data),
) -> Dict[str, Any]:
    data = await service.get_index_quote(index_name)
    market_poller.start_polling(index_name, "index")
    return {"index": index_name, "data": data}


@app.delete("/api/polling/{kind}/{symbol}")
async def stop_polling(kind: str, symbol: str) -> Dict[str, Any]:
    stopped = market_poller.stop_polling(symbol, kind)
    return {"stopped": stopped, "active": market_poller.get_active_polling()}


@app.get("/api/health")
async def health(manager: EnhancedCacheManager = Depends(get_cache_manager)):
    return get_health_status(manager, settings.durable_store_path)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api_server:app", host=settings.api_host, port=settings.api_port)
