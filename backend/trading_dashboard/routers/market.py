import asyncio
import contextlib
import logging
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from trading_dashboard.core.deps import get_engine, get_ws_engine
from trading_dashboard.models.market import HistoryPoint, Instrument, MarketCategory
from trading_dashboard.services.market_engine import MarketEngine
from trading_dashboard.services.overview import market_overview

logger = logging.getLogger(__name__)

router = APIRouter(tags=["market"])

class InstrumentOut(BaseModel):
    symbol: str
    name: str
    category: MarketCategory
    price: float
    change: float
    change_percent: float
    currency: str
    last_updated: datetime

class HistoryPointOut(BaseModel):
    timestamp: datetime
    value: float

class OverviewOut(BaseModel):
    total: int
    assets_up: int
    assets_down: int
    unchanged: int
    average_volatility: float
    last_update: Optional[datetime] = None

def _instrument_out(inst: Instrument) -> InstrumentOut:
    return InstrumentOut(
        symbol=inst.symbol,
        name=inst.name,
        category=inst.category,
        price=float(inst.price),
        change=float(inst.change),
        change_percent=float(inst.change_percent),
        currency=inst.currency,
        last_updated=inst.last_updated,
    )

def _points_out(points: List[HistoryPoint]) -> List[HistoryPointOut]:
    return [HistoryPointOut(timestamp=p.timestamp, value=float(p.value)) for p in points]

def _select(engine: MarketEngine, category: Optional[MarketCategory]) -> Dict[str, Instrument]:
    return engine.snapshot() if category is None else engine.by_category(category)

@router.get("/market", response_model=List[InstrumentOut])
def list_instruments(category: Optional[MarketCategory] = None, engine: MarketEngine = Depends(get_engine)):
    return [_instrument_out(i) for i in _select(engine, category).values()]

@router.get("/market/categories", response_model=List[MarketCategory])
def list_categories(engine: MarketEngine = Depends(get_engine)):
    return engine.categories()

@router.get("/market/overview", response_model=OverviewOut)
def overview(category: Optional[MarketCategory] = None, engine: MarketEngine = Depends(get_engine)):
    ov = market_overview(_select(engine, category).values())
    return OverviewOut(
        total=ov.total,
        assets_up=ov.assets_up,
        assets_down=ov.assets_down,
        unchanged=ov.unchanged,
        average_volatility=float(ov.average_volatility),
        last_update=ov.last_update,
    )

# defined BEFORE /market/{symbol} so "history" is not read as a symbol
@router.get("/market/history", response_model=Dict[str, List[HistoryPointOut]])
def history_for_symbols(symbols: List[str] = Query(default=[]), engine: MarketEngine = Depends(get_engine)):
    return {sym: _points_out(points) for sym, points in engine.history_for(symbols).items()}

@router.get("/market/{symbol}", response_model=InstrumentOut)
def get_instrument(symbol: str, engine: MarketEngine = Depends(get_engine)):
    inst = engine.get(symbol)
    if inst is None:
        raise HTTPException(status_code=404, detail=f"unknown symbol: {symbol}")
    return _instrument_out(inst)

@router.get("/market/{symbol}/history", response_model=List[HistoryPointOut])
def get_history(symbol: str, engine: MarketEngine = Depends(get_engine)):
    return _points_out(engine.history(symbol))

def _snapshot_payload(engine: MarketEngine) -> dict:
    return {
        "type": "snapshot",
        "tick": engine.tick_count,
        "items": [_instrument_out(i).model_dump(mode="json") for i in engine.snapshot().values()],
    }

@router.websocket("/ws/market")
async def ws_market(ws: WebSocket):
    engine = get_ws_engine(ws)
    await ws.accept()

    loop = asyncio.get_running_loop()
    wakeups: "asyncio.Queue[None]" = asyncio.Queue(maxsize=1)

    def _offer() -> None:
        try:
            wakeups.put_nowait(None)
        except asyncio.QueueFull:
            pass  # a wake-up is already pending

    def _on_update() -> None:
        # called on the engine thread
        loop.call_soon_threadsafe(_offer)

    async def _pump() -> None:
        try:
            await ws.send_json(_snapshot_payload(engine))
            while True:
                await wakeups.get()
                await ws.send_json(_snapshot_payload(engine))
        except Exception as e:
            logger.warning("market stream: send failed (%s)", e)

    engine.subscribe(_on_update)
    logger.info("market stream: client connected")
    sender = asyncio.create_task(_pump())
    try:
        # incoming frames are ignored; this only watches for the close
        while True:
            await ws.receive_text()
    except WebSocketDisconnect:
        logger.info("market stream: client disconnected")
    finally:
        engine.unsubscribe(_on_update)
        sender.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sender
