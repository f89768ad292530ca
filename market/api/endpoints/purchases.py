import logging

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from market.api.deps import require_seller, require_viewer
from market.api.rendering import redirect, render
from market.core.db import get_db
from market.core.errors import Conflict, Forbidden, NotFound
from market.schemas.common import first_error_message
from market.schemas.listing import BuyerDetails
from market.services import listings as lifecycle
from market.services.roles import Viewer

log = logging.getLogger(__name__)

router = APIRouter()


@router.get("/listings/{listing_id}/buy")
async def buy_form(
    listing_id: str,
    request: Request,
    viewer: Viewer = Depends(require_viewer),
    db: AsyncSession = Depends(get_db),
):
    listing = await lifecycle.get_buyable_listing(db, viewer=viewer, listing_id=listing_id)
    return render(request, "listings/buy.html", viewer=viewer, listing=listing, error=None,
                  form={"name": viewer.username, "email": viewer.email})


@router.post("/listings/{listing_id}/buy")
async def buy(
    listing_id: str,
    request: Request,
    viewer: Viewer = Depends(require_viewer),
    db: AsyncSession = Depends(get_db),
):
    listing = await lifecycle.get_buyable_listing(db, viewer=viewer, listing_id=listing_id)

    raw = dict(await request.form())
    try:
        details = BuyerDetails.model_validate(raw)
    except PydanticValidationError as e:
        return render(request, "listings/buy.html", viewer=viewer, status_code=400,
                      listing=listing, error=first_error_message(e), form=raw)

    await lifecycle.request_purchase(db, viewer=viewer, listing_id=listing_id, details=details)
    await db.commit()
    return redirect(f"/listings/{listing_id}")


@router.get("/seller/requests")
async def requests_page(
    request: Request,
    viewer: Viewer = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    listings = await lifecycle.seller_requests(db, viewer=viewer)
    await db.commit()
    return render(request, "seller/requests.html", viewer=viewer, listings=listings)


@router.post("/listings/{listing_id}/approve")
async def approve(
    listing_id: str,
    viewer: Viewer = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    try:
        await lifecycle.approve_purchase(db, viewer=viewer, listing_id=listing_id)
    except (Forbidden, NotFound, Conflict) as e:
        log.info("approve rejected on %s: %s", listing_id, e.code)
        return redirect("/seller/requests")
    await db.commit()
    return redirect("/seller/requests")


@router.post("/listings/{listing_id}/decline")
async def decline(
    listing_id: str,
    viewer: Viewer = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    try:
        await lifecycle.decline_purchase(db, viewer=viewer, listing_id=listing_id)
    except (Forbidden, NotFound, Conflict) as e:
        log.info("decline rejected on %s: %s", listing_id, e.code)
        return redirect("/seller/requests")
    await db.commit()
    return redirect("/seller/requests")
