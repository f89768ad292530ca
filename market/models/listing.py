from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from market.core.ids import gen_id
from market.models.base import Base, AuditMixin, JSONDoc
from market.schemas.listing import BuyerDetails, ListingImage, PurchaseRequest


DEFAULT_IMAGE_URL = "https://images.unsplash.com/photo-1600585154340-be6161a56a0c"


class Listing(AuditMixin, Base):
    __tablename__ = "listings"
    __table_args__ = (
        # a pending request can only exist on an unsold listing
        CheckConstraint("NOT (is_sold AND purchase_request IS NOT NULL)", name="ck_listings_sold_has_no_request"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("lst"))

    # Seller; never changes after creation
    owner_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False, index=True)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    price: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    location: Mapped[str] = mapped_column(String(200), nullable=False)
    country: Mapped[str] = mapped_column(String(120), nullable=False)

    # [{"url": ..., "key": ...}]; key is None for the placeholder image
    images: Mapped[list] = mapped_column(JSONDoc, nullable=False, default=list)

    is_sold: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    buyer_id: Mapped[str | None] = mapped_column(String, ForeignKey("users.id"), nullable=True)
    buyer_details: Mapped[dict | None] = mapped_column(JSONDoc, nullable=True)
    sold_price: Mapped[float | None] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)

    # Review ids, kept in step with the reviews table by the review service
    review_ids: Mapped[list] = mapped_column(JSONDoc, nullable=False, default=list)

    # Embedded purchase request sub-document; NULL while no request is pending
    purchase_request: Mapped[dict | None] = mapped_column(JSONDoc, nullable=True)

    # Optimistic concurrency token, bumped by every lifecycle write
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    @property
    def pending_request(self) -> PurchaseRequest | None:
        if self.purchase_request is None:
            return None
        return PurchaseRequest.model_validate(self.purchase_request)

    @property
    def image_refs(self) -> list[ListingImage]:
        return [ListingImage.model_validate(i) for i in self.images or []]

    @property
    def cover_image_url(self) -> str:
        refs = self.image_refs
        return refs[0].url if refs else DEFAULT_IMAGE_URL

    @property
    def sale_details(self) -> BuyerDetails | None:
        if self.buyer_details is None:
            return None
        return BuyerDetails.model_validate(self.buyer_details)
