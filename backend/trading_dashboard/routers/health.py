from fastapi import APIRouter, Depends

from trading_dashboard.core.deps import get_engine
from trading_dashboard.services.market_engine import MarketEngine

router = APIRouter(tags=["health"])

@router.get("/health")
def health(engine: MarketEngine = Depends(get_engine)):
    return {
        "status": "ok",
        "engine_running": engine.running,
        "ticks": engine.tick_count,
        "subscribers": engine.subscriber_count,
    }
