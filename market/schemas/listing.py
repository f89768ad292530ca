from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class ListingImage(BaseModel):
    url: str
    key: str | None = None  # blob storage key; None for the placeholder


class ListingDraft(BaseModel):
    """Fields an owner may set on create and edit."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=5000)
    # Numeric(12, 2) column
    price: float = Field(..., ge=0, le=9_999_999_999.99, allow_inf_nan=False)
    location: str = Field(..., min_length=1, max_length=200)
    country: str = Field(..., min_length=1, max_length=120)


class BuyerDetails(BaseModel):
    # Snapshot captured at request time, not a live reference to the buyer.
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    address: str = Field(..., min_length=1, max_length=1000)


class PurchaseRequest(BaseModel):
    buyer_id: str
    buyer_details: BuyerDetails
    # "pending" is the only status ever persisted
    status: Literal["pending"] = "pending"
    seen_by_seller: bool = False
