from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import UploadFile

from market.api.deps import get_viewer, require_viewer
from market.api.rendering import redirect, render
from market.core.db import get_db
from market.core.errors import ValidationError
from market.schemas.common import first_error_message
from market.schemas.listing import ListingDraft, ListingImage
from market.services import listings as lifecycle
from market.services.images import ImageUpload, discard_images, upload_images
from market.services.roles import Viewer
from market.services.storage import BlobStore, get_blob_store

router = APIRouter()

DRAFT_FIELDS = ("title", "description", "price", "location", "country")


async def _read_listing_form(request: Request) -> tuple[dict, list[ImageUpload], list[str]]:
    form = await request.form()
    raw = {k: form.get(k) for k in DRAFT_FIELDS if form.get(k) is not None}

    uploads: list[ImageUpload] = []
    for f in form.getlist("images"):
        # browsers send an empty part when no file was picked
        if isinstance(f, UploadFile) and f.filename:
            data = await f.read()
            if data:
                uploads.append(ImageUpload(filename=f.filename, content_type=f.content_type, data=data))

    remove_keys = [k for k in form.getlist("remove_images") if isinstance(k, str) and k]
    return raw, uploads, remove_keys


@router.get("/listings")
async def index(
    request: Request,
    viewer: Viewer | None = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    listings = await lifecycle.list_active_listings(db)
    return render(request, "listings/index.html", viewer=viewer, listings=listings)


@router.get("/listings/new")
async def new_form(request: Request, viewer: Viewer = Depends(require_viewer)):
    return render(request, "listings/new.html", viewer=viewer, error=None, form={})


@router.post("/listings")
async def create(
    request: Request,
    viewer: Viewer = Depends(require_viewer),
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
):
    raw, uploads, _ = await _read_listing_form(request)
    try:
        draft = ListingDraft.model_validate(raw)
        images = await upload_images(store, uploads)
    except PydanticValidationError as e:
        return render(request, "listings/new.html", viewer=viewer, status_code=400,
                      error=first_error_message(e), form=raw)
    except ValidationError as e:
        return render(request, "listings/new.html", viewer=viewer, status_code=400, error=e.message, form=raw)

    try:
        listing = await lifecycle.create_listing(db, viewer=viewer, draft=draft, images=images)
        await db.commit()
    except Exception:
        await discard_images(store, images)
        raise
    return redirect(f"/listings/{listing.id}")


@router.get("/listings/{listing_id}")
async def show(
    listing_id: str,
    request: Request,
    viewer: Viewer | None = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    detail = await lifecycle.get_listing_detail(db, listing_id)
    return render(request, "listings/show.html", viewer=viewer, detail=detail, review_error=None)


@router.get("/listings/{listing_id}/edit")
async def edit_form(
    listing_id: str,
    request: Request,
    viewer: Viewer = Depends(require_viewer),
    db: AsyncSession = Depends(get_db),
):
    listing = await lifecycle.get_editable_listing(db, viewer=viewer, listing_id=listing_id)
    return render(request, "listings/edit.html", viewer=viewer, listing=listing, error=None)


@router.put("/listings/{listing_id}")
async def update(
    listing_id: str,
    request: Request,
    viewer: Viewer = Depends(require_viewer),
    db: AsyncSession = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
):
    # Guards first so nothing is uploaded for a listing the viewer cannot edit.
    listing = await lifecycle.get_editable_listing(db, viewer=viewer, listing_id=listing_id)

    raw, uploads, remove_keys = await _read_listing_form(request)
    new_images: list[ListingImage] = []
    try:
        draft = ListingDraft.model_validate(raw)
        new_images = await upload_images(store, uploads)
        await lifecycle.edit_listing(
            db,
            viewer=viewer,
            listing_id=listing_id,
            draft=draft,
            new_images=new_images,
            remove_keys=remove_keys,
        )
        await db.commit()
    except PydanticValidationError as e:
        return render(request, "listings/edit.html", viewer=viewer, status_code=400,
                      listing=listing, error=first_error_message(e))
    except ValidationError as e:
        await discard_images(store, new_images)
        return render(request, "listings/edit.html", viewer=viewer, status_code=400,
                      listing=listing, error=e.message)
    except Exception:
        await discard_images(store, new_images)
        raise
    return redirect(f"/listings/{listing_id}")


@router.delete("/listings/{listing_id}")
async def destroy(
    listing_id: str,
    viewer: Viewer = Depends(require_viewer),
    db: AsyncSession = Depends(get_db),
):
    await lifecycle.delete_listing(db, viewer=viewer, listing_id=listing_id)
    await db.commit()
    return redirect("/listings")
