from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from blog_cms.auth import Identity
from blog_cms.database import get_db
from blog_cms.dependencies import get_identity, unwrap
from blog_cms.services import tag_service

router = APIRouter(prefix="/api/v1/tags", tags=["tags"])


@router.get("")
async def list_tags(db: AsyncSession = Depends(get_db)):
    return unwrap(await tag_service.get_tags(db))


@router.get("/search")
async def search_tags(q: str = Query(""), db: AsyncSession = Depends(get_db)):
    return unwrap(await tag_service.search_tags_by_prefix(db, q))


@router.get("/{slug}")
async def get_tag(slug: str, db: AsyncSession = Depends(get_db)):
    return unwrap(await tag_service.get_tag_by_slug(db, slug))


@router.post("")
async def create_or_get_tag(
    payload: dict = Body(...),
    identity: Identity | None = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    return unwrap(await tag_service.create_or_get_tag(db, identity, payload))


@router.post("/bulk")
async def create_or_get_tags(
    payload: dict = Body(...),
    identity: Identity | None = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    return unwrap(await tag_service.create_or_get_tags(db, identity, payload))
