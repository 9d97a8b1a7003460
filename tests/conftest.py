"""
Pytest fixtures for the expense service test suite.

Every test gets a fresh in-memory SQLite database. Time is frozen at
Wednesday 2024-05-15 12:00 UTC, so the current week runs Sunday 2024-05-12
through Saturday 2024-05-18 and the 16th onwards counts as future-dated.
"""

import os

# Must be set before ``database`` is imported anywhere.
os.environ["DATABASE_URL"] = "sqlite://"

import uuid
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import crud
import models
from clock import FixedClock
from currency import CurrencyConverter, RateCache
from database import Base
from exceptions import RateSourceError
from fraud import GeneralHeuristic, ReceiptHeuristic
from policy import PolicyEvaluator

NOW = datetime(2024, 5, 15, 12, 0, 0, tzinfo=timezone.utc)
TODAY = NOW.date()

# INR-based rates as an exchangerate.host style provider would return them.
PROVIDER_RATES = {
    "USD": Decimal("0.012"),
    "EUR": Decimal("0.011"),
    "GBP": Decimal("0.0094"),
}


class StubRateSource:
    """Rate provider double that counts calls and can be made to fail."""

    def __init__(self, rates=None, fail=False):
        self.rates = dict(PROVIDER_RATES if rates is None else rates)
        self.fail = fail
        self.calls = 0

    def fetch_daily_rates(self, base_currency):
        self.calls += 1
        if self.fail:
            raise RateSourceError("provider unavailable")
        return dict(self.rates)


class ScriptedRandom:
    """Returns the given values in order, repeating the last one."""

    def __init__(self, *values):
        self.values = list(values) or [0.99]

    def random(self):
        if len(self.values) > 1:
            return self.values.pop(0)
        return self.values[0]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    crud.seed_default_policies(session)
    yield session
    session.close()


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def rate_source():
    return StubRateSource()


@pytest.fixture
def converter(rate_source, clock):
    return CurrencyConverter(rate_source, RateCache(), clock)


@pytest.fixture
def make_rate_source():
    return StubRateSource


@pytest.fixture
def make_rng():
    return ScriptedRandom


@pytest.fixture
def quiet_rng():
    """Never trips the random receipt flag."""
    return ScriptedRandom(0.99)


@pytest.fixture
def evaluator(db, converter, clock, quiet_rng):
    return PolicyEvaluator(db, converter, GeneralHeuristic(clock), ReceiptHeuristic(quiet_rng))


@pytest.fixture
def add_expense(db):
    """Persist an expense directly, bypassing evaluation."""

    def _add(**overrides):
        fields = {
            "id": str(uuid.uuid4()),
            "idempotency_key": str(uuid.uuid4()),
            "user_id": "emp-1",
            "amount": Decimal("100.00"),
            "currency": "INR",
            "date": TODAY,
            "category": "Travelling",
            "description": "Taxi to client office",
            "status": "approved",
        }
        fields.update(overrides)
        expense = models.Expense(**fields)
        db.add(expense)
        db.commit()
        db.refresh(expense)
        return expense

    return _add
