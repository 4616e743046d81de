from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, Float, Index, Integer, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from cropbid.core.database import Base


class BiddingSession(Base):
    """BiddingSession ORM model

    One document-style record per session: the bid ledger lives in the
    ``bids`` JSON column and every mutation bumps ``version``.
    """

    __tablename__ = "bidding_sessions"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    subject_ref: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    owner_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    minimum_bid: Mapped[float] = mapped_column(Float, nullable=False)

    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )

    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="ongoing", index=True
    )
    bids: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        # At most one ongoing session per crop lot
        Index(
            "uq_bidding_sessions_ongoing_subject",
            "subject_ref",
            unique=True,
            postgresql_where=text("status = 'ongoing'"),
            sqlite_where=text("status = 'ongoing'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<BiddingSession(id={self.id}, subject_ref={self.subject_ref})>"
