from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from trading_dashboard.services.market_engine import ZERO, round_cents
from trading_dashboard.models.market import Instrument

@dataclass(frozen=True)
class MarketOverview:
    total: int
    assets_up: int
    assets_down: int
    unchanged: int
    average_volatility: Decimal   # mean |change_percent|
    last_update: Optional[datetime]

def market_overview(instruments: Iterable[Instrument]) -> MarketOverview:
    """
    Dashboard header numbers for a set of instruments.
    An empty set gives zeros and no last_update.
    """
    items = list(instruments)
    up = sum(1 for i in items if i.change_percent > 0)
    down = sum(1 for i in items if i.change_percent < 0)

    if items:
        avg = round_cents(sum((abs(i.change_percent) for i in items), ZERO) / len(items))
        last = max(i.last_updated for i in items)
    else:
        avg = ZERO
        last = None

    return MarketOverview(
        total=len(items),
        assets_up=up,
        assets_down=down,
        unchanged=len(items) - up - down,
        average_volatility=avg,
        last_update=last,
    )
