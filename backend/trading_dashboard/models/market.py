from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

class MarketCategory(str, Enum):
    INDICES = "Indices"
    CRYPTO = "Crypto"
    COMMODITIES = "Commodities"
    BONDS = "Bonds"

@dataclass(frozen=True)
class Instrument:
    symbol: str
    name: str
    category: MarketCategory
    price: Decimal
    change: Decimal
    change_percent: Decimal
    currency: str          # currency code, or "%" for yields
    last_updated: datetime

@dataclass(frozen=True)
class HistoryPoint:
    timestamp: datetime
    value: Decimal

@dataclass(frozen=True)
class InstrumentSeed:
    symbol: str
    name: str
    category: MarketCategory
    price: Decimal
    currency: str

DEFAULT_SEEDS = (
    InstrumentSeed("CAC40", "CAC 40", MarketCategory.INDICES, Decimal("7854.32"), "EUR"),
    InstrumentSeed("SP500", "S&P 500", MarketCategory.INDICES, Decimal("4789.45"), "USD"),
    InstrumentSeed("NASDAQ", "NASDAQ 100", MarketCategory.INDICES, Decimal("16234.78"), "USD"),
    InstrumentSeed("BTC", "Bitcoin", MarketCategory.CRYPTO, Decimal("43250.00"), "USD"),
    InstrumentSeed("ETH", "Ethereum", MarketCategory.CRYPTO, Decimal("2580.45"), "USD"),
    InstrumentSeed("GOLD", "Gold", MarketCategory.COMMODITIES, Decimal("2045.67"), "USD"),
    InstrumentSeed("US10Y", "US Treasury 10Y", MarketCategory.BONDS, Decimal("4.35"), "%"),
    InstrumentSeed("FR10Y", "France 10Y", MarketCategory.BONDS, Decimal("2.89"), "%"),
    InstrumentSeed("DE10Y", "Germany 10Y", MarketCategory.BONDS, Decimal("2.45"), "%"),
    InstrumentSeed("EU10Y", "EU 10Y", MarketCategory.BONDS, Decimal("2.67"), "%"),
)
