import logging
import math
from datetime import datetime
from typing import Callable, Optional, TypeVar
from uuid import UUID, uuid4

from cropbid.core.config import settings
from cropbid.core.errors import (
    BidNotFound,
    InvalidInput,
    NotFound,
    SessionAlreadyActive,
    StoreUnavailable,
    Unauthorized,
)
from cropbid.schemas.bid import Bid
from cropbid.schemas.session import (
    ActiveSessionEntry,
    BiddingSessionState,
    SessionDetail,
    SessionStatus,
)
from cropbid.services.session_store import SessionStore
from cropbid.services.subject_linkage import SubjectLinkage
from cropbid.services.timer_policy import (
    compute_end_time,
    is_open,
    remaining_seconds,
    utcnow,
)
from cropbid.services.validation import validate_bid

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Builds the next snapshot from the current one; returns (next or None, result).
# None means "nothing to write".
Mutation = Callable[
    [BiddingSessionState, datetime], tuple[Optional[BiddingSessionState], T]
]


class BiddingService:
    """Session lifecycle and bid ledger operations.

    Every mutation is a read-validate-write cycle committed with the store's
    compare-and-swap on ``version``. A lost race re-reads the session and
    re-runs validation from scratch, so an accepted bid was always checked
    against the ledger it was appended to.
    """

    def __init__(
        self,
        store: SessionStore,
        linkage: SubjectLinkage,
        clock: Callable[[], datetime] = utcnow,
        max_attempts: int | None = None,
    ):
        self._store = store
        self._linkage = linkage
        self._clock = clock
        self._max_attempts = max_attempts or settings.BID_UPDATE_MAX_ATTEMPTS

    async def create_session(
        self,
        subject_ref: str,
        minimum_bid: float,
        harvest_period: str,
        owner_id: str | None = None,
    ) -> UUID:
        """Open a bidding session on a crop lot and return its id."""
        if not subject_ref:
            raise InvalidInput("subject_ref is required")
        if minimum_bid is None or not math.isfinite(minimum_bid) or minimum_bid <= 0:
            raise InvalidInput("minimum_bid must be a finite number greater than zero")

        now = self._clock()
        end_time = compute_end_time(harvest_period, now)

        if await self._store.find_ongoing_for_subject(subject_ref) is not None:
            raise SessionAlreadyActive(
                f"Subject {subject_ref} already has an ongoing session"
            )

        session = BiddingSessionState(
            id=uuid4(),
            subject_ref=subject_ref,
            owner_id=owner_id,
            minimum_bid=minimum_bid,
            start_time=now,
            end_time=end_time,
            status=SessionStatus.ONGOING,
            bids=[],
            version=0,
        )
        await self._store.create(session)

        logger.info(
            f"Session {session.id} started for subject {subject_ref}, "
            f"minimum {minimum_bid}, ends {end_time.isoformat()}"
        )
        return session.id

    async def submit_bid(
        self,
        session_id: UUID,
        bidder_name: str,
        bidder_email: str,
        amount_per_unit: float,
    ) -> Bid:
        """Append a bid to the ledger after validating it against the latest state."""

        def append(session: BiddingSessionState, now: datetime):
            validate_bid(session, amount_per_unit, now)
            bid = Bid(
                bid_id=uuid4(),
                bidder_name=bidder_name,
                bidder_email=bidder_email,
                amount_per_unit=amount_per_unit,
                submitted_at=now,
            )
            return session.model_copy(update={"bids": [*session.bids, bid]}), bid

        _, bid = await self._mutate(session_id, append)
        logger.info(f"Bid {bid.bid_id} of {amount_per_unit} accepted for session {session_id}")
        return bid

    async def revise_bid(
        self,
        session_id: UUID,
        bidder_email: str,
        previous_amount: float,
        new_amount: float,
    ) -> Bid:
        """Revise the caller's bid identified by its current amount."""

        def locate(session: BiddingSessionState) -> Optional[int]:
            for index, bid in enumerate(session.bids):
                if (
                    bid.bidder_email == bidder_email
                    and bid.amount_per_unit == previous_amount
                ):
                    return index
            return None

        return await self._revise(session_id, locate, new_amount)

    async def revise_bid_by_id(
        self,
        session_id: UUID,
        bid_id: UUID,
        bidder_email: str,
        new_amount: float,
    ) -> Bid:
        """Revise the caller's bid identified by its stable id."""

        def locate(session: BiddingSessionState) -> Optional[int]:
            for index, bid in enumerate(session.bids):
                if bid.bid_id == bid_id and bid.bidder_email == bidder_email:
                    return index
            return None

        return await self._revise(session_id, locate, new_amount)

    async def stop_session(
        self, session_id: UUID, authorized: bool
    ) -> BiddingSessionState:
        """
        Stop a session and discard its ledger.

        Stopping an already stopped session succeeds without writing.
        """
        if not authorized:
            raise Unauthorized("Only the crop owner can stop this bidding session")

        def stop(session: BiddingSessionState, now: datetime):
            if session.status == SessionStatus.STOPPED:
                return None, session
            stopped = session.model_copy(
                update={"status": SessionStatus.STOPPED, "bids": []}
            )
            return stopped, session

        updated, previous = await self._mutate(session_id, stop)
        if updated is previous:
            logger.info(f"Session {session_id} already stopped")
        else:
            logger.info(
                f"Session {session_id} stopped, {previous.bid_count} bids discarded"
            )
        return updated

    async def get_session(self, session_id: UUID) -> SessionDetail:
        session = await self.load_session(session_id)
        now = self._clock()
        return SessionDetail(
            session=session,
            subject=await self._linkage.summarize(session.subject_ref),
            is_open=is_open(session, now),
            remaining_seconds=remaining_seconds(session, now),
        )

    async def get_active_session_for_subject(
        self, subject_ref: str
    ) -> BiddingSessionState:
        session = await self._store.find_ongoing_for_subject(subject_ref)
        if session is None:
            raise NotFound(f"No ongoing bidding session for subject {subject_ref}")
        return session

    async def list_active_sessions(self) -> list[ActiveSessionEntry]:
        """Open sessions, soonest-closing first."""
        now = self._clock()
        sessions = [
            s for s in await self._store.list_ongoing(ends_after=now) if is_open(s, now)
        ]
        sessions.sort(key=lambda s: s.end_time)

        summaries = await self._linkage.summarize_many(s.subject_ref for s in sessions)
        return [
            ActiveSessionEntry(
                session=s,
                subject=summaries[s.subject_ref],
                bid_count=s.bid_count,
                remaining_seconds=remaining_seconds(s, now),
            )
            for s in sessions
        ]

    async def list_bidder_bids(self, session_id: UUID, bidder_email: str) -> list[Bid]:
        session = await self.load_session(session_id)
        return [bid for bid in session.bids if bid.bidder_email == bidder_email]

    async def load_session(self, session_id: UUID) -> BiddingSessionState:
        session = await self._store.get(session_id)
        if session is None:
            raise NotFound(f"Bidding session {session_id} not found")
        return session

    async def _revise(
        self,
        session_id: UUID,
        locate: Callable[[BiddingSessionState], Optional[int]],
        new_amount: float,
    ) -> Bid:
        def replace(session: BiddingSessionState, now: datetime):
            index = locate(session)
            if index is None:
                raise BidNotFound("No matching bid to revise")

            target = session.bids[index]
            validate_bid(session, new_amount, now, exclude_bid_id=target.bid_id)

            revised = target.model_copy(
                update={"amount_per_unit": new_amount, "revised_at": now}
            )
            bids = list(session.bids)
            bids[index] = revised
            return session.model_copy(update={"bids": bids}), revised

        _, bid = await self._mutate(session_id, replace)
        logger.info(f"Bid {bid.bid_id} revised to {new_amount} in session {session_id}")
        return bid

    async def _mutate(
        self, session_id: UUID, mutation: Mutation
    ) -> tuple[BiddingSessionState, T]:
        """Apply ``mutation`` with compare-and-swap, retrying lost races."""
        for attempt in range(1, self._max_attempts + 1):
            current = await self.load_session(session_id)
            updated, result = mutation(current, self._clock())

            if updated is None:
                return current, result

            updated = updated.model_copy(update={"version": current.version + 1})
            if await self._store.replace(updated, expected_version=current.version):
                return updated, result

            logger.info(
                f"Version conflict on session {session_id} "
                f"(attempt {attempt}/{self._max_attempts}), re-reading"
            )

        raise StoreUnavailable(
            f"Session {session_id} is too busy, please retry"
        )
