from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from cropbid.core.database import build_engine, build_session_factory, create_all
from cropbid.schemas.session import SubjectSummary
from cropbid.services.bidding_service import BiddingService
from cropbid.services.session_store import InMemorySessionStore
from cropbid.services.subject_linkage import SubjectDirectory, SubjectLinkage

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
# Session created with harvest period 2026-11 closes at the end of November
NOVEMBER_END = datetime(2026, 11, 30, 23, 59, 59, 999999, tzinfo=timezone.utc)

TOMATO_LOT = SubjectSummary(
    crop_type="Tomato", district="Nashik", village="Pimpalgaon", area_acres=2.5
)


class FakeClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeDirectory(SubjectDirectory):
    def __init__(self, lots=None):
        self.lots = dict(lots or {})
        self.calls = []

    async def get_subject_summary(self, subject_ref):
        self.calls.append(subject_ref)
        return self.lots.get(subject_ref)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def directory():
    return FakeDirectory({"lot-1": TOMATO_LOT})


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def service(store, directory, clock):
    return BiddingService(store=store, linkage=SubjectLinkage(directory), clock=clock)


@pytest_asyncio.fixture
async def sqlite_engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'bidding.db'}")
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(sqlite_engine):
    return build_session_factory(sqlite_engine)
