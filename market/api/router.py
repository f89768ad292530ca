from fastapi import APIRouter

from market.api.endpoints.health import router as health_router
from market.api.endpoints.auth import router as auth_router
from market.api.endpoints.listings import router as listings_router
from market.api.endpoints.purchases import router as purchases_router
from market.api.endpoints.reviews import router as reviews_router


router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(auth_router, tags=["auth"])
router.include_router(purchases_router, tags=["purchases"])
router.include_router(reviews_router, tags=["reviews"])
router.include_router(listings_router, tags=["listings"])
