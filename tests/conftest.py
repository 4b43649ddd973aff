import itertools
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from trading_dashboard.core.config import Settings
from trading_dashboard.main import create_app
from trading_dashboard.services.market_engine import MarketEngine

T0 = datetime(2026, 1, 5, 9, 30, tzinfo=timezone.utc)

class FixedDraw:
    """Random source replaying the given draws forever (0.5 = no move)."""

    def __init__(self, *values):
        self._it = itertools.cycle(values or (0.5,))

    def __call__(self) -> float:
        return next(self._it)

class StepClock:
    """Clock advancing by `step` on every read."""

    def __init__(self, start: datetime = T0, step: timedelta = timedelta(seconds=3)):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now += self.step
        return current

@pytest.fixture
def make_engine():
    """Factory for engines with a fixed clock; every engine is stopped at teardown."""
    created = []

    def _make(*, draws=(0.5,), rng=None, **kwargs):
        kwargs.setdefault("interval", 60)
        kwargs.setdefault("clock", StepClock())
        eng = MarketEngine(rng=rng or FixedDraw(*draws), **kwargs)
        created.append(eng)
        return eng

    yield _make
    for eng in created:
        eng.stop()

@pytest.fixture
def engine(make_engine):
    return make_engine()

@pytest.fixture
def api_engine():
    # long interval: only the start-up tick fires on its own
    eng = MarketEngine(interval=3600, rng=FixedDraw(0.9, 0.1, 0.5), clock=StepClock())
    yield eng
    eng.stop()

@pytest.fixture
def client(api_engine):
    settings = Settings(tick_interval_seconds=3600, cors_origins=["http://testserver"])
    with TestClient(create_app(settings, engine=api_engine)) as c:
        yield c
