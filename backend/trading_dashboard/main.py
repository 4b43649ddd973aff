import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from trading_dashboard.core.config import Settings, settings as default_settings
from trading_dashboard.core.log_config import setup_logging
from trading_dashboard.routers import health, market
from trading_dashboard.services.market_engine import MarketEngine

logger = logging.getLogger(__name__)

def create_app(settings: Optional[Settings] = None, engine: Optional[MarketEngine] = None) -> FastAPI:
    settings = settings or default_settings
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # an injected engine belongs to the caller and outlives the app
        owns_engine = engine is None
        market_engine = engine or MarketEngine(
            interval=settings.tick_interval_seconds,
            history_cap=settings.history_cap,
            history_days=settings.history_days,
        )
        app.state.engine = market_engine
        market_engine.start()
        logger.info("trading dashboard API up (env=%s)", settings.app_env)
        try:
            yield
        finally:
            if owns_engine:
                market_engine.stop()

    app = FastAPI(title="Trading Dashboard API", version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, prefix="/api")
    app.include_router(market.router, prefix="/api")
    return app

app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("trading_dashboard.main:app", host="0.0.0.0", port=8000)
