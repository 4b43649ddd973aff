"""
Simulated market feed for the dashboard.

One background worker perturbs every instrument on a fixed period, keeps a
bounded price history per symbol and pings subscribers after each pass.
Readers get point-in-time copies: the instrument table is rebuilt aside and
swapped in whole, so a reader never sees half of a tick.
"""
import logging
import random
import threading
from collections import deque
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN
from typing import Callable, Deque, Dict, Iterable, List, Optional, Sequence, Tuple

from trading_dashboard.models.market import (
    DEFAULT_SEEDS,
    HistoryPoint,
    Instrument,
    InstrumentSeed,
    MarketCategory,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

CRYPTO_SYMBOLS = frozenset({"BTC", "ETH"})
COMMODITY_SYMBOL = "GOLD"

HISTORY_SPREAD = 0.05  # seed history sits within +/-2.5% of the start price

Subscriber = Callable[[], None]

class InvalidSeedError(ValueError):
    pass

def _utc_now() -> datetime:
    return datetime.now(timezone.utc)

def round_cents(x: Decimal) -> Decimal:
    return x.quantize(CENT, rounding=ROUND_HALF_EVEN)

def max_variation(symbol: str, category: MarketCategory) -> float:
    """Largest relative swing (peak to peak) allowed for one tick."""
    if symbol in CRYPTO_SYMBOLS:
        return 0.03
    if symbol == COMMODITY_SYMBOL:
        return 0.01
    if category == MarketCategory.BONDS:
        return 0.005
    return 0.015

def perturb(price: Decimal, draw: float, bound: float) -> Decimal:
    # draw in [0, 1) maps to a variation in [-bound/2, +bound/2)
    if bound < 0:
        raise ValueError(f"variation bound must be >= 0, got {bound}")
    variation = (draw - 0.5) * bound
    return round_cents(price * (1 + Decimal(str(variation))))

def percent_change(old: Decimal, new: Decimal) -> Decimal:
    if old == 0:
        return ZERO
    return round_cents((new - old) / old * 100)

def _validate(seeds: Sequence[InstrumentSeed], interval: float, history_cap: int, history_days: int) -> None:
    if not seeds:
        raise InvalidSeedError("at least one instrument seed is required")
    if interval <= 0:
        raise InvalidSeedError("tick interval must be > 0")
    if history_cap <= 0:
        raise InvalidSeedError("history_cap must be > 0")
    if history_days < 0:
        raise InvalidSeedError("history_days must be >= 0")

    seen = set()
    for s in seeds:
        if not s.symbol:
            raise InvalidSeedError("instrument symbol must be non-empty")
        if s.symbol in seen:
            raise InvalidSeedError(f"duplicate instrument symbol: {s.symbol}")
        if not isinstance(s.category, MarketCategory):
            raise InvalidSeedError(f"{s.symbol}: unknown category {s.category!r}")
        try:
            price = Decimal(s.price)
        except (InvalidOperation, TypeError, ValueError):
            raise InvalidSeedError(f"{s.symbol}: start price {s.price!r} is not a number") from None
        # the engine stores the price in cents, so that is what must stay positive
        if not price.is_finite() or round_cents(price) <= 0:
            raise InvalidSeedError(f"{s.symbol}: start price must be > 0 after rounding to cents, got {s.price}")
        seen.add(s.symbol)

class MarketEngine:
    """
    Owns the instrument table and every history sequence.

    Lifecycle: construct (seeds + history), start() to tick every `interval`
    seconds on a daemon thread, stop() to tear down. stop() is terminal and
    guarantees no tick or notification fires once it has returned.
    """

    def __init__(
        self,
        seeds: Iterable[InstrumentSeed] = DEFAULT_SEEDS,
        interval: float = 3.0,
        history_cap: int = 50,
        history_days: int = 7,
        rng: Optional[Callable[[], float]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        seeds = list(seeds)
        _validate(seeds, interval, history_cap, history_days)

        self._interval = float(interval)
        self._history_cap = history_cap
        self._rng = rng or random.random
        self._clock = clock or _utc_now

        self._write_lock = threading.Lock()    # serialises ticks and stop()
        self._notify_lock = threading.Lock()    # held for a whole notify pass
        self._local = threading.local()
        self._subscribers_lock = threading.Lock()
        self._subscribers: List[Subscriber] = []

        self._stop_event = threading.Event()
        self._closed = False
        self._worker: Optional[threading.Thread] = None
        self._ticks = 0

        now = self._clock()
        self._instruments: Dict[str, Instrument] = {}
        # writer-only deques; readers see the tuples published in _history
        self._series: Dict[str, Deque[HistoryPoint]] = {}
        for s in seeds:
            price = round_cents(Decimal(s.price))
            self._instruments[s.symbol] = Instrument(
                symbol=s.symbol,
                name=s.name,
                category=s.category,
                price=price,
                change=ZERO,
                change_percent=ZERO,
                currency=s.currency,
                last_updated=now,
            )
            self._series[s.symbol] = self._seed_history(price, now, history_days)
        self._history: Dict[str, Tuple[HistoryPoint, ...]] = self._publish_history()

    def _seed_history(self, price: Decimal, now: datetime, days: int) -> Deque[HistoryPoint]:
        points: Deque[HistoryPoint] = deque(maxlen=self._history_cap)
        for i in range(days):
            ts = now - timedelta(days=days - 1 - i)
            points.append(HistoryPoint(timestamp=ts, value=perturb(price, self._rng(), HISTORY_SPREAD)))
        return points

    def _publish_history(self) -> Dict[str, Tuple[HistoryPoint, ...]]:
        return {sym: tuple(points) for sym, points in self._series.items()}

    # ---------- lifecycle ----------

    @property
    def running(self) -> bool:
        return self._worker is not None and self._worker.is_alive() and not self._stop_event.is_set()

    @property
    def tick_count(self) -> int:
        return self._ticks

    @property
    def subscriber_count(self) -> int:
        with self._subscribers_lock:
            return len(self._subscribers)

    def start(self) -> None:
        if self._closed:
            raise RuntimeError("market engine is stopped")
        if self._worker is not None:
            return
        self._worker = threading.Thread(target=self._run, daemon=True, name="market-engine")
        self._worker.start()
        logger.info(
            "market engine started: %d instruments, tick every %.1fs",
            len(self._instruments), self._interval,
        )

    def stop(self) -> None:
        self._stop_event.set()
        with self._write_lock:
            already_closed = self._closed
            self._closed = True

        # a subscriber calling stop() must not wait on its own notify pass
        if not getattr(self._local, "notifying", False):
            # wait out a notify pass already in flight on another thread
            with self._notify_lock:
                pass
            worker = self._worker
            if worker is not None and worker is not threading.current_thread():
                worker.join()

        if not already_closed:
            logger.info("market engine stopped after %d ticks", self._ticks)

    def __enter__(self) -> "MarketEngine":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def _run(self) -> None:
        try:
            while not self._stop_event.is_set():
                if not self._advance():
                    break
                self._notify()
                if self._stop_event.wait(self._interval):
                    break
        except Exception:
            logger.exception("market engine worker crashed")
            raise

    # ---------- tick ----------

    def tick(self) -> None:
        """Run one full pass over every instrument, then notify subscribers."""
        if not self._advance():
            raise RuntimeError("market engine is stopped")
        self._notify()

    def _advance(self) -> bool:
        with self._write_lock:
            if self._closed:
                return False

            now = self._clock()
            updated: Dict[str, Instrument] = {}
            for symbol, inst in self._instruments.items():
                updated[symbol] = self._next_state(inst, now)

            for symbol, inst in updated.items():
                self._series[symbol].append(HistoryPoint(timestamp=now, value=inst.price))
            self._instruments = updated
            self._history = self._publish_history()
            self._ticks += 1

        logger.debug("tick %d applied to %d instruments", self._ticks, len(updated))
        return True

    def _next_state(self, inst: Instrument, now: datetime) -> Instrument:
        bound = max_variation(inst.symbol, inst.category)
        new_price = perturb(inst.price, self._rng(), bound)
        return Instrument(
            symbol=inst.symbol,
            name=inst.name,
            category=inst.category,
            price=new_price,
            change=new_price - inst.price,
            change_percent=percent_change(inst.price, new_price),
            currency=inst.currency,
            last_updated=now,
        )

    # ---------- subscribers ----------

    def subscribe(self, callback: Subscriber) -> Subscriber:
        with self._subscribers_lock:
            self._subscribers.append(callback)
        return callback

    def unsubscribe(self, callback: Subscriber) -> None:
        with self._subscribers_lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def _notify(self) -> None:
        with self._notify_lock:
            with self._subscribers_lock:
                subscribers = list(self._subscribers)

            self._local.notifying = True
            try:
                for callback in subscribers:
                    if self._stop_event.is_set():
                        break
                    try:
                        callback()
                    except Exception:
                        logger.exception("market subscriber %r failed", callback)
            finally:
                self._local.notifying = False

    # ---------- reads ----------

    def snapshot(self) -> Dict[str, Instrument]:
        # published tables are never mutated, a shallow copy is a snapshot
        return dict(self._instruments)

    def get(self, symbol: str) -> Optional[Instrument]:
        return self._instruments.get(symbol)

    def by_category(self, category: MarketCategory) -> Dict[str, Instrument]:
        return {sym: inst for sym, inst in self._instruments.items() if inst.category == category}

    def categories(self) -> List[MarketCategory]:
        """Categories that have at least one instrument, in declaration order."""
        present = {inst.category for inst in self._instruments.values()}
        return [c for c in MarketCategory if c in present]

    def history(self, symbol: str) -> List[HistoryPoint]:
        return list(self._history.get(symbol, ()))

    def history_for(self, symbols: Iterable[str]) -> Dict[str, List[HistoryPoint]]:
        history = self._history
        return {sym: list(history[sym]) for sym in symbols if sym in history}
