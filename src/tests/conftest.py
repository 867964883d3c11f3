import pytest
import pytest_asyncio
from datetime import datetime, timedelta

import httpx

from lending.core.library import Library
from lending.core.policy import LendingPolicy
from lending.db import SqlStore
from lending.deps import get_library
from lending.main import app

START = datetime(2024, 1, 10, 10, 0)

class FakeClock:
    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)

@pytest.fixture
def clock():
    return FakeClock(START)

@pytest.fixture
def policy(clock):
    return LendingPolicy(clock=clock)

@pytest.fixture
def library(policy):
    return Library(policy=policy)

@pytest.fixture
def sql_store():
    store = SqlStore.from_url("sqlite:///:memory:")
    try:
        yield store
    finally:
        store.dispose()

@pytest.fixture
def sql_library(sql_store, policy):
    return Library.from_store(sql_store, policy)

@pytest_asyncio.fixture
async def client(library):
    app.dependency_overrides[get_library] = lambda: library
    transport = httpx.ASGITransport(app=app)
    try:
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
            yield c
    finally:
        app.dependency_overrides.clear()
