"""Shared fixtures: reference centers, emission table, in-memory store and API client."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from config import Settings
from database import InMemoryRecordStore
from emissions import load_default_table
from ledger import CarbonLedger
from main import create_app
from schemas import Center

SEED_CENTERS = [
    Center(name="Near Hostel A", latitude=31.2266, longitude=75.6411, city="Ludhiana", country="India"),
    Center(name="Near TAN", latitude=31.2141, longitude=75.6590, city="Ludhiana", country="India"),
    Center(name="Near The COS", latitude=31.2459, longitude=75.6350, city="Ludhiana", country="India"),
    Center(name="Near The Hostel PG", latitude=31.2015, longitude=75.6180, city="Ludhiana", country="India"),
    Center(name="Near The Main Gate Parking", latitude=31.2893, longitude=75.6275, city="Ludhiana", country="India"),
]


class FakeClock:
    """Settable UTC clock."""

    def __init__(self, now=None):
        self.now = now or datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def table():
    return load_default_table()


@pytest.fixture
def store():
    return InMemoryRecordStore(centers=SEED_CENTERS)


@pytest.fixture
def ledger(store, table, clock):
    return CarbonLedger(store, table, clock=clock)


@pytest.fixture
def client(store, table, clock):
    app = create_app(settings=Settings(), store=store, table=table, clock=clock)
    with TestClient(app) as c:
        yield c
