"""Bid legality rules.

Pure functions over a session snapshot; nothing here touches the store.
"""

import logging
import math
from datetime import datetime
from typing import Optional
from uuid import UUID

from cropbid.core.errors import (
    BelowCurrentHighest,
    BelowMinimum,
    BiddingError,
    InvalidInput,
    SessionClosed,
    SessionExpired,
)
from cropbid.schemas.session import BiddingSessionState, SessionStatus
from cropbid.services.timer_policy import is_expired

logger = logging.getLogger(__name__)


def current_highest(
    session: BiddingSessionState, exclude_bid_id: Optional[UUID] = None
) -> Optional[float]:
    """Highest amount in the ledger, ignoring ``exclude_bid_id``."""
    amounts = [
        bid.amount_per_unit for bid in session.bids if bid.bid_id != exclude_bid_id
    ]
    return max(amounts) if amounts else None


def check_bid(
    session: BiddingSessionState,
    amount: float,
    now: datetime,
    exclude_bid_id: Optional[UUID] = None,
) -> tuple[bool, Optional[BiddingError]]:
    """
    Check whether ``amount`` may enter the session's ledger.

    A bid equal to the current highest is accepted, so traders can match
    the leading price.

    Args:
        session: Snapshot to validate against
        amount: Candidate amount per unit
        now: Evaluation time
        exclude_bid_id: Bid being replaced by a revision

    Returns:
        (True, None) when legal, otherwise (False, the rejection error).
        A non-finite or non-positive amount yields ``InvalidInput``.
    """
    if amount is None or not math.isfinite(amount) or amount <= 0:
        return False, InvalidInput("Bid amount must be a finite number greater than zero")

    if session.status != SessionStatus.ONGOING:
        return False, SessionClosed()

    if is_expired(session, now):
        return False, SessionExpired()

    if amount < session.minimum_bid:
        return False, BelowMinimum(f"Bid must be at least {session.minimum_bid}")

    highest = current_highest(session, exclude_bid_id=exclude_bid_id)
    if highest is not None and amount < highest:
        return False, BelowCurrentHighest(
            f"Bid must be at least the current highest bid of {highest}"
        )

    return True, None


def validate_bid(
    session: BiddingSessionState,
    amount: float,
    now: datetime,
    exclude_bid_id: Optional[UUID] = None,
) -> None:
    """Raise the matching error when ``amount`` is not legal."""
    ok, rejection = check_bid(session, amount, now, exclude_bid_id=exclude_bid_id)
    if not ok:
        logger.debug(f"Bid {amount} rejected for session {session.id}: {rejection.code}")
        raise rejection
