"""Crop lot lookups for presentation payloads.

Sessions only hold a weak ``subject_ref``. Resolving it is best-effort: an
unknown lot, a malformed reference or an unreachable backend all produce an
empty ``SubjectSummary`` instead of failing the read.
"""

import logging
from abc import ABC, abstractmethod
from typing import Iterable, Optional
from uuid import UUID

from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cropbid.core.config import settings
from cropbid.core.redis import RedisClient
from cropbid.models.subject import CropLot
from cropbid.schemas.session import SubjectSummary

logger = logging.getLogger(__name__)


class SubjectDirectory(ABC):
    @abstractmethod
    async def get_subject_summary(self, subject_ref: str) -> Optional[SubjectSummary]:
        """Summary of the lot, or None when it does not exist."""


class SqlSubjectDirectory(SubjectDirectory):
    """Reads the ``crop_lots`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_subject_summary(self, subject_ref: str) -> Optional[SubjectSummary]:
        try:
            lot_id = UUID(subject_ref)
        except ValueError:
            return None

        async with self._session_factory() as db:
            result = await db.execute(
                select(
                    CropLot.crop_type,
                    CropLot.district,
                    CropLot.village,
                    CropLot.area_acres,
                ).where(CropLot.id == lot_id)
            )
            row = result.first()

        if row is None:
            return None

        crop_type, district, village, area_acres = row
        return SubjectSummary(
            crop_type=crop_type,
            district=district,
            village=village,
            area_acres=area_acres,
        )


class SubjectLinkage:
    """Resolves subject references through an optional Redis cache."""

    def __init__(
        self,
        directory: SubjectDirectory,
        redis: RedisClient | Redis | None = None,
        cache_ttl: int | None = None,
    ):
        self._directory = directory
        self._redis = redis
        self._cache_ttl = cache_ttl or settings.SUBJECT_CACHE_TTL_SECONDS

    def _cache(self) -> Optional[Redis]:
        if isinstance(self._redis, RedisClient):
            return self._redis.get_client() if self._redis.is_connected else None
        return self._redis

    async def summarize(self, subject_ref: str) -> SubjectSummary:
        cache = self._cache()
        cache_key = f"subject:summary:{subject_ref}"

        if cache is not None:
            try:
                cached = await cache.get(cache_key)
                if cached:
                    return SubjectSummary.model_validate_json(cached)
            except (RedisError, ValidationError) as e:
                logger.warning(f"Subject cache read failed for {subject_ref}: {e}")

        try:
            summary = await self._directory.get_subject_summary(subject_ref)
        except (DBAPIError, OSError) as e:
            logger.warning(f"Subject lookup failed for {subject_ref}: {e}")
            return SubjectSummary()

        if summary is None:
            logger.info(f"Subject {subject_ref} not found, returning empty summary")
            return SubjectSummary()

        if cache is not None:
            try:
                await cache.set(cache_key, summary.model_dump_json(), ex=self._cache_ttl)
            except RedisError as e:
                logger.warning(f"Subject cache write failed for {subject_ref}: {e}")

        return summary

    async def summarize_many(self, subject_refs: Iterable[str]) -> dict[str, SubjectSummary]:
        summaries: dict[str, SubjectSummary] = {}
        for ref in subject_refs:
            if ref not in summaries:
                summaries[ref] = await self.summarize(ref)
        return summaries
