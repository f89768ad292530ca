from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from market.core.db import get_db

router = APIRouter()


@router.get("/health")
async def health(db: AsyncSession = Depends(get_db)) -> dict:
    status = {"status": "ok", "database": "connected"}
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        status["database"] = "error"
    return status
