"""
SQLAlchemy ORM Models

All database models unified export point
"""

from cropbid.models.session import BiddingSession
from cropbid.models.subject import CropLot

__all__ = [
    "BiddingSession",
    "CropLot",
]
