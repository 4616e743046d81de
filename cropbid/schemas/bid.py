# cropbid/schemas/bid.py
from datetime import datetime
from typing import List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class Bid(BaseModel):
    """One accepted offer in a session's ledger"""

    bid_id: UUID = Field(default_factory=uuid4, description="Stable bid identifier")
    bidder_name: str = Field(..., description="Trader display name")
    bidder_email: str = Field(..., description="Trader email, scopes 'my bids'")
    amount_per_unit: float = Field(..., gt=0, allow_inf_nan=False, description="Offered price per acre")
    submitted_at: datetime = Field(..., description="Server-side acceptance time")
    revised_at: Optional[datetime] = Field(None, description="Last revision time")


class BidCreate(BaseModel):
    """Request schema for submitting a bid"""
    amount_per_unit: float = Field(..., gt=0, allow_inf_nan=False, description="Bid price per acre (must be positive)")

    class Config:
        json_schema_extra = {"example": {"amount_per_unit": 120.0}}


class BidRevise(BaseModel):
    """Request schema for revising one of the caller's bids by its amount"""
    previous_amount: float = Field(..., gt=0, allow_inf_nan=False, description="Amount of the bid being revised")
    new_amount: float = Field(..., gt=0, allow_inf_nan=False, description="Replacement amount")

    class Config:
        json_schema_extra = {"example": {"previous_amount": 120.0, "new_amount": 150.0}}


class BidReviseById(BaseModel):
    """Request schema for revising a bid addressed by its id"""
    new_amount: float = Field(..., gt=0, allow_inf_nan=False, description="Replacement amount")


class BidResponse(BaseModel):
    """Response schema after submitting or revising a bid"""
    status: str = Field(..., description="Bid status (accepted/revised)")
    bid: Bid
    highest_bid: float = Field(..., description="Highest amount in the ledger after this call")
    message: str = Field(..., description="Response message")


class BidderBidsResponse(BaseModel):
    """The caller's own bids in a session"""
    session_id: UUID
    bids: List[Bid]
