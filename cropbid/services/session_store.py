"""Persistence of bidding sessions.

Both stores implement the same contract: ``replace`` is a compare-and-swap on
the session's ``version``. It writes the new snapshot only when the stored
version still equals ``expected_version`` and reports whether it did, so
read-validate-write cycles on one session never interleave, even across
service instances sharing a database.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cropbid.core.errors import SessionAlreadyActive, StoreUnavailable
from cropbid.models.session import BiddingSession
from cropbid.schemas.bid import Bid
from cropbid.schemas.session import BiddingSessionState, SessionStatus
from cropbid.services.timer_policy import ensure_utc

logger = logging.getLogger(__name__)


class SessionStore(ABC):
    @abstractmethod
    async def create(self, session: BiddingSessionState) -> None:
        """Insert a new session; SessionAlreadyActive if its subject has one."""

    @abstractmethod
    async def get(self, session_id: UUID) -> Optional[BiddingSessionState]:
        ...

    @abstractmethod
    async def find_ongoing_for_subject(
        self, subject_ref: str
    ) -> Optional[BiddingSessionState]:
        ...

    @abstractmethod
    async def list_ongoing(self, ends_after: datetime) -> list[BiddingSessionState]:
        """Ongoing sessions whose end time is later than ``ends_after``."""

    @abstractmethod
    async def replace(
        self, session: BiddingSessionState, expected_version: int
    ) -> bool:
        ...


def _to_state(row: BiddingSession) -> BiddingSessionState:
    return BiddingSessionState(
        id=row.id,
        subject_ref=row.subject_ref,
        owner_id=row.owner_id,
        minimum_bid=row.minimum_bid,
        start_time=ensure_utc(row.start_time),
        end_time=ensure_utc(row.end_time),
        status=SessionStatus(row.status),
        bids=[Bid.model_validate(item) for item in row.bids or []],
        version=row.version,
    )


def _dump_bids(session: BiddingSessionState) -> list[dict]:
    return [bid.model_dump(mode="json") for bid in session.bids]


class SqlAlchemySessionStore(SessionStore):
    """Sessions in the ``bidding_sessions`` table, one short transaction per call."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create(self, session: BiddingSessionState) -> None:
        record = BiddingSession(
            id=session.id,
            subject_ref=session.subject_ref,
            owner_id=session.owner_id,
            minimum_bid=session.minimum_bid,
            start_time=session.start_time,
            end_time=session.end_time,
            status=session.status.value,
            bids=_dump_bids(session),
            version=session.version,
        )
        try:
            async with self._session_factory() as db:
                db.add(record)
                await db.commit()
        except IntegrityError as e:
            raise SessionAlreadyActive(
                f"Subject {session.subject_ref} already has an ongoing session"
            ) from e
        except (DBAPIError, OSError) as e:
            raise StoreUnavailable(f"Failed to create session: {e}") from e

    async def get(self, session_id: UUID) -> Optional[BiddingSessionState]:
        return await self._fetch_one(
            select(BiddingSession).where(BiddingSession.id == session_id)
        )

    async def find_ongoing_for_subject(
        self, subject_ref: str
    ) -> Optional[BiddingSessionState]:
        return await self._fetch_one(
            select(BiddingSession).where(
                BiddingSession.subject_ref == subject_ref,
                BiddingSession.status == SessionStatus.ONGOING.value,
            )
        )

    async def list_ongoing(self, ends_after: datetime) -> list[BiddingSessionState]:
        stmt = (
            select(BiddingSession)
            .where(
                BiddingSession.status == SessionStatus.ONGOING.value,
                BiddingSession.end_time > ends_after,
            )
            .order_by(BiddingSession.end_time.asc())
        )
        try:
            async with self._session_factory() as db:
                result = await db.execute(stmt)
                return [_to_state(row) for row in result.scalars().all()]
        except (DBAPIError, OSError) as e:
            raise StoreUnavailable(f"Failed to list sessions: {e}") from e

    async def replace(
        self, session: BiddingSessionState, expected_version: int
    ) -> bool:
        stmt = (
            update(BiddingSession)
            .where(
                BiddingSession.id == session.id,
                BiddingSession.version == expected_version,
            )
            .values(
                status=session.status.value,
                bids=_dump_bids(session),
                version=session.version,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            async with self._session_factory() as db:
                result = await db.execute(stmt)
                await db.commit()
        except (DBAPIError, OSError) as e:
            raise StoreUnavailable(f"Failed to update session {session.id}: {e}") from e

        return result.rowcount == 1

    async def _fetch_one(self, stmt) -> Optional[BiddingSessionState]:
        try:
            async with self._session_factory() as db:
                result = await db.execute(stmt)
                row = result.scalars().first()
        except (DBAPIError, OSError) as e:
            raise StoreUnavailable(f"Failed to read session: {e}") from e

        return _to_state(row) if row is not None else None


class InMemorySessionStore(SessionStore):
    """Process-local store for development and tests.

    Snapshots are copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self):
        self._sessions: dict[UUID, BiddingSessionState] = {}
        self._lock = asyncio.Lock()

    async def create(self, session: BiddingSessionState) -> None:
        async with self._lock:
            if self._ongoing_for(session.subject_ref) is not None:
                raise SessionAlreadyActive(
                    f"Subject {session.subject_ref} already has an ongoing session"
                )
            self._sessions[session.id] = session.model_copy(deep=True)

    async def get(self, session_id: UUID) -> Optional[BiddingSessionState]:
        # Yield like a real round-trip so concurrent callers interleave
        await asyncio.sleep(0)
        stored = self._sessions.get(session_id)
        return stored.model_copy(deep=True) if stored is not None else None

    async def find_ongoing_for_subject(
        self, subject_ref: str
    ) -> Optional[BiddingSessionState]:
        await asyncio.sleep(0)
        stored = self._ongoing_for(subject_ref)
        return stored.model_copy(deep=True) if stored is not None else None

    async def list_ongoing(self, ends_after: datetime) -> list[BiddingSessionState]:
        await asyncio.sleep(0)
        sessions = [
            s.model_copy(deep=True)
            for s in self._sessions.values()
            if s.status == SessionStatus.ONGOING and s.end_time > ends_after
        ]
        return sorted(sessions, key=lambda s: s.end_time)

    async def replace(
        self, session: BiddingSessionState, expected_version: int
    ) -> bool:
        await asyncio.sleep(0)
        async with self._lock:
            stored = self._sessions.get(session.id)
            if stored is None or stored.version != expected_version:
                return False
            self._sessions[session.id] = session.model_copy(deep=True)
            return True

    def _ongoing_for(self, subject_ref: str) -> Optional[BiddingSessionState]:
        for stored in self._sessions.values():
            if stored.subject_ref == subject_ref and stored.status == SessionStatus.ONGOING:
                return stored
        return None
