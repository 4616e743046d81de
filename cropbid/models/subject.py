from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Float, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from cropbid.core.database import Base


class CropLot(Base):
    """CropLot ORM model

    A producer's harvestable lot. Owned by the crop input screens; the bidding
    engine only reads it to label sessions.
    """

    __tablename__ = "crop_lots"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    owner_name: Mapped[str] = mapped_column(String(100), nullable=False)

    crop_type: Mapped[str] = mapped_column(String(100), nullable=False)
    variety: Mapped[str | None] = mapped_column(String(100), nullable=True)

    state: Mapped[str] = mapped_column(String(100), nullable=False)
    district: Mapped[str] = mapped_column(String(100), nullable=False)
    village: Mapped[str] = mapped_column(String(100), nullable=False)
    area_acres: Mapped[float] = mapped_column(Float, nullable=False)

    sown_month: Mapped[str] = mapped_column(String(7), nullable=False)  # YYYY-MM
    harvest_month: Mapped[str] = mapped_column(String(7), nullable=False)  # YYYY-MM

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<CropLot(id={self.id}, crop_type={self.crop_type})>"
