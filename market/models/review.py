from datetime import datetime

from sqlalchemy import ForeignKey, Integer, String, Text, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from sqlalchemy.types import DateTime

from market.core.ids import gen_id
from market.models.base import Base


class Review(Base):
    __tablename__ = "reviews"
    __table_args__ = (
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_reviews_rating_range"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("rev"))

    listing_id: Mapped[str] = mapped_column(String, ForeignKey("listings.id"), nullable=False, index=True)
    author_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False)

    comment: Mapped[str] = mapped_column(Text, nullable=False)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
