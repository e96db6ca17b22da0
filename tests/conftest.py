"""Shared fixtures: a controllable clock and a throwaway SQLite database."""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from cardtime.db.database import Database
from cardtime.services.host import CardContext, Person


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def db(tmp_path):
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'cardtime.db'}")
    await database.init()
    yield database
    await database.dispose()


@pytest.fixture
def alice():
    return Person(id="m-alice", name="Alice")


@pytest.fixture
def bob():
    return Person(id="m-bob", name="Bob")


@pytest.fixture
def card():
    return CardContext(board_id="b1", card_id="c1", card_name="Login page", list_name="Doing")
