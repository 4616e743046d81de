# cropbid/api/bid.py
from uuid import UUID

from fastapi import APIRouter, Depends, status

from cropbid.api.deps import get_bidding_service, get_current_principal
from cropbid.core.jwt import Principal
from cropbid.schemas.bid import (
    BidCreate,
    BidderBidsResponse,
    BidResponse,
    BidRevise,
    BidReviseById,
)
from cropbid.schemas.session import (
    ActiveSessionEntry,
    BiddingSessionState,
    SessionCreate,
    SessionCreated,
    SessionDetail,
    StopResponse,
)
from cropbid.services.bidding_service import BiddingService

router = APIRouter()


@router.post(
    "/sessions", response_model=SessionCreated, status_code=status.HTTP_201_CREATED
)
async def create_session(
    body: SessionCreate,
    current_user: Principal = Depends(get_current_principal),
    service: BiddingService = Depends(get_bidding_service),
):
    """Start bidding on a crop lot. The caller becomes the session owner."""
    session_id = await service.create_session(
        subject_ref=body.subject_ref,
        minimum_bid=body.minimum_bid,
        harvest_period=body.harvest_period,
        owner_id=current_user.user_id,
    )
    session = await service.load_session(session_id)
    return SessionCreated(session_id=session_id, end_time=session.end_time)


@router.get("/sessions/active", response_model=list[ActiveSessionEntry])
async def list_active_sessions(
    service: BiddingService = Depends(get_bidding_service),
):
    """Open sessions for the marketplace, soonest-closing first"""
    return await service.list_active_sessions()


@router.get("/sessions/{session_id}", response_model=SessionDetail)
async def get_session(
    session_id: UUID,
    service: BiddingService = Depends(get_bidding_service),
):
    """Session with its ledger and crop lot details"""
    return await service.get_session(session_id)


@router.get("/subjects/{subject_ref}/session", response_model=BiddingSessionState)
async def get_active_session_for_subject(
    subject_ref: str,
    service: BiddingService = Depends(get_bidding_service),
):
    return await service.get_active_session_for_subject(subject_ref)


@router.post("/sessions/{session_id}/bids", response_model=BidResponse)
async def submit_bid(
    session_id: UUID,
    body: BidCreate,
    current_user: Principal = Depends(get_current_principal),
    service: BiddingService = Depends(get_bidding_service),
):
    """Submit a bid as the calling trader"""
    bid = await service.submit_bid(
        session_id=session_id,
        bidder_name=current_user.name,
        bidder_email=current_user.email,
        amount_per_unit=body.amount_per_unit,
    )
    return BidResponse(
        status="accepted",
        bid=bid,
        highest_bid=bid.amount_per_unit,
        message="Bid submitted successfully",
    )


@router.put("/sessions/{session_id}/bids", response_model=BidResponse)
async def revise_bid(
    session_id: UUID,
    body: BidRevise,
    current_user: Principal = Depends(get_current_principal),
    service: BiddingService = Depends(get_bidding_service),
):
    """Revise one of the caller's bids, addressed by its current amount"""
    bid = await service.revise_bid(
        session_id=session_id,
        bidder_email=current_user.email,
        previous_amount=body.previous_amount,
        new_amount=body.new_amount,
    )
    return await _revised_response(service, session_id, bid)


@router.put("/sessions/{session_id}/bids/{bid_id}", response_model=BidResponse)
async def revise_bid_by_id(
    session_id: UUID,
    bid_id: UUID,
    body: BidReviseById,
    current_user: Principal = Depends(get_current_principal),
    service: BiddingService = Depends(get_bidding_service),
):
    bid = await service.revise_bid_by_id(
        session_id=session_id,
        bid_id=bid_id,
        bidder_email=current_user.email,
        new_amount=body.new_amount,
    )
    return await _revised_response(service, session_id, bid)


@router.get("/sessions/{session_id}/bids/mine", response_model=BidderBidsResponse)
async def list_my_bids(
    session_id: UUID,
    current_user: Principal = Depends(get_current_principal),
    service: BiddingService = Depends(get_bidding_service),
):
    bids = await service.list_bidder_bids(session_id, current_user.email)
    return BidderBidsResponse(session_id=session_id, bids=bids)


@router.post("/sessions/{session_id}/stop", response_model=StopResponse)
async def stop_session(
    session_id: UUID,
    current_user: Principal = Depends(get_current_principal),
    service: BiddingService = Depends(get_bidding_service),
):
    """Stop bidding (session owner or admin only). Clears all bids."""
    session = await service.load_session(session_id)
    authorized = current_user.is_admin or (
        session.owner_id is not None and session.owner_id == current_user.user_id
    )
    stopped = await service.stop_session(session_id, authorized=authorized)
    return StopResponse(session_id=stopped.id, status=stopped.status)


async def _revised_response(
    service: BiddingService, session_id: UUID, bid
) -> BidResponse:
    session = await service.load_session(session_id)
    return BidResponse(
        status="revised",
        bid=bid,
        highest_bid=session.highest_bid or bid.amount_per_unit,
        message="Bid updated successfully",
    )
