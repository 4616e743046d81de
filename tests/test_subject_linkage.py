from uuid import uuid4

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from cropbid.core.redis import RedisClient
from cropbid.models.subject import CropLot
from cropbid.schemas.session import SubjectSummary
from cropbid.services.subject_linkage import SqlSubjectDirectory, SubjectLinkage

from .conftest import TOMATO_LOT, FakeDirectory


class _FakeRedis:
    def __init__(self, fail=False):
        self.values = {}
        self.expiry = {}
        self.fail = fail

    async def get(self, key):
        if self.fail:
            raise RedisConnectionError("redis is down")
        return self.values.get(key)

    async def set(self, key, value, ex=None):
        if self.fail:
            raise RedisConnectionError("redis is down")
        self.values[key] = value
        self.expiry[key] = ex
        return True


class _BrokenDirectory(FakeDirectory):
    async def get_subject_summary(self, subject_ref):
        raise ConnectionRefusedError("database unreachable")


@pytest.mark.asyncio
async def test_summary_is_cached_in_redis(directory):
    redis = _FakeRedis()
    linkage = SubjectLinkage(directory, redis, cache_ttl=60)

    assert await linkage.summarize("lot-1") == TOMATO_LOT
    assert await linkage.summarize("lot-1") == TOMATO_LOT

    assert directory.calls == ["lot-1"]
    assert redis.expiry["subject:summary:lot-1"] == 60


@pytest.mark.asyncio
async def test_missing_subject_gives_empty_summary_and_is_not_cached(directory):
    redis = _FakeRedis()
    linkage = SubjectLinkage(directory, redis)

    assert await linkage.summarize("lot-gone") == SubjectSummary()
    assert redis.values == {}


@pytest.mark.asyncio
async def test_redis_outage_falls_back_to_directory(directory):
    linkage = SubjectLinkage(directory, _FakeRedis(fail=True))
    assert await linkage.summarize("lot-1") == TOMATO_LOT


@pytest.mark.asyncio
async def test_directory_outage_gives_empty_summary():
    linkage = SubjectLinkage(_BrokenDirectory())
    assert await linkage.summarize("lot-1") == SubjectSummary()


@pytest.mark.asyncio
async def test_disconnected_redis_client_is_skipped(directory):
    linkage = SubjectLinkage(directory, RedisClient())
    assert await linkage.summarize("lot-1") == TOMATO_LOT


@pytest.mark.asyncio
async def test_summarize_many_looks_each_subject_up_once(directory):
    linkage = SubjectLinkage(directory)
    summaries = await linkage.summarize_many(["lot-1", "lot-x", "lot-1"])

    assert summaries == {"lot-1": TOMATO_LOT, "lot-x": SubjectSummary()}
    assert directory.calls == ["lot-1", "lot-x"]


@pytest.mark.asyncio
async def test_sql_directory_reads_crop_lots(session_factory):
    lot_id = uuid4()
    async with session_factory() as db:
        db.add(
            CropLot(
                id=lot_id,
                owner_id="farmer-1",
                owner_name="Sunita Patil",
                crop_type="Grapes",
                variety="Thompson Seedless",
                state="Maharashtra",
                district="Nashik",
                village="Dindori",
                area_acres=3.0,
                sown_month="2026-03",
                harvest_month="2026-11",
            )
        )
        await db.commit()

    directory = SqlSubjectDirectory(session_factory)

    assert await directory.get_subject_summary(str(lot_id)) == SubjectSummary(
        crop_type="Grapes", district="Nashik", village="Dindori", area_acres=3.0
    )
    assert await directory.get_subject_summary(str(uuid4())) is None
    assert await directory.get_subject_summary("not-a-uuid") is None
