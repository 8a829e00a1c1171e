from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from blog_cms.auth import Identity
from blog_cms.database import get_db
from blog_cms.dependencies import get_identity, unwrap
from blog_cms.services import comment_service

router = APIRouter(prefix="/api/v1/comments", tags=["comments"])


@router.post("", status_code=201)
async def create_comment(
    payload: dict = Body(...),
    identity: Identity | None = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    return unwrap(await comment_service.create_comment(db, identity, payload))
