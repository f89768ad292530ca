from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from market.api.deps import require_viewer
from market.api.rendering import redirect, render
from market.core.db import get_db
from market.schemas.common import first_error_message
from market.schemas.review import ReviewDraft
from market.services import listings as lifecycle
from market.services import reviews as review_service
from market.services.roles import Viewer

router = APIRouter()


@router.post("/listings/{listing_id}/reviews")
async def create_review(
    listing_id: str,
    request: Request,
    viewer: Viewer = Depends(require_viewer),
    db: AsyncSession = Depends(get_db),
):
    raw = dict(await request.form())
    try:
        draft = ReviewDraft.model_validate(raw)
    except PydanticValidationError as e:
        detail = await lifecycle.get_listing_detail(db, listing_id)
        return render(request, "listings/show.html", viewer=viewer, status_code=400,
                      detail=detail, review_error=first_error_message(e))

    await review_service.add_review(db, viewer=viewer, listing_id=listing_id, draft=draft)
    await db.commit()
    return redirect(f"/listings/{listing_id}")


@router.delete("/listings/{listing_id}/reviews/{review_id}")
async def delete_review(
    listing_id: str,
    review_id: str,
    viewer: Viewer = Depends(require_viewer),
    db: AsyncSession = Depends(get_db),
):
    await review_service.remove_review(db, viewer=viewer, listing_id=listing_id, review_id=review_id)
    await db.commit()
    return redirect(f"/listings/{listing_id}")
