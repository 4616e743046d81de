# cropbid/schemas/session.py
import re
from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from cropbid.schemas.bid import Bid

HARVEST_PERIOD_PATTERN = re.compile(r"^\d{4}-\d{1,2}$")


class SessionStatus(str, Enum):
    ONGOING = "ongoing"
    STOPPED = "stopped"


class BiddingSessionState(BaseModel):
    """Snapshot of a bidding session as read from the store"""

    id: UUID
    subject_ref: str
    owner_id: Optional[str] = None
    minimum_bid: float = Field(..., gt=0, allow_inf_nan=False)
    start_time: datetime
    end_time: datetime
    status: SessionStatus = SessionStatus.ONGOING
    bids: List[Bid] = Field(default_factory=list)
    version: int = 0

    @property
    def bid_count(self) -> int:
        return len(self.bids)

    @property
    def highest_bid(self) -> Optional[float]:
        if not self.bids:
            return None
        return max(bid.amount_per_unit for bid in self.bids)


class SessionCreate(BaseModel):
    """Schema for starting a bidding session on a crop lot"""
    subject_ref: str = Field(..., min_length=1, max_length=64)
    minimum_bid: float = Field(..., allow_inf_nan=False, description="Floor price per acre")
    harvest_period: str = Field(..., description="Harvesting month as YYYY-MM")

    @field_validator("harvest_period")
    @classmethod
    def _check_period_format(cls, value: str) -> str:
        if not HARVEST_PERIOD_PATTERN.match(value.strip()):
            raise ValueError("harvest_period must look like YYYY-MM")
        return value.strip()

    class Config:
        json_schema_extra = {
            "example": {
                "subject_ref": "0b6f3c1e-6a53-4a55-9a4e-1b5d3f0d8a11",
                "minimum_bid": 100.0,
                "harvest_period": "2026-11",
            }
        }


class SessionCreated(BaseModel):
    session_id: UUID
    end_time: datetime
    message: str = "Bidding session started"


class SubjectSummary(BaseModel):
    """Display attributes of the crop lot behind a session"""
    crop_type: Optional[str] = None
    district: Optional[str] = None
    village: Optional[str] = None
    area_acres: Optional[float] = None


class SessionDetail(BaseModel):
    session: BiddingSessionState
    subject: SubjectSummary
    is_open: bool
    remaining_seconds: float


class ActiveSessionEntry(BaseModel):
    session: BiddingSessionState
    subject: SubjectSummary
    bid_count: int
    remaining_seconds: float


class StopResponse(BaseModel):
    session_id: UUID
    status: SessionStatus
    message: str = "Bidding session stopped"
