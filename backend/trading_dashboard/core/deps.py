from fastapi import Request, WebSocket

from trading_dashboard.services.market_engine import MarketEngine

def get_engine(request: Request) -> MarketEngine:
    return request.app.state.engine

def get_ws_engine(ws: WebSocket) -> MarketEngine:
    return ws.app.state.engine
