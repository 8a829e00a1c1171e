from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from blog_cms.auth import Identity
from blog_cms.database import get_db
from blog_cms.dependencies import get_identity, unwrap
from blog_cms.services import category_service

router = APIRouter(prefix="/api/v1/categories", tags=["categories"])


@router.get("")
async def list_categories(db: AsyncSession = Depends(get_db)):
    return unwrap(await category_service.get_categories(db))


@router.get("/{slug}")
async def get_category(slug: str, db: AsyncSession = Depends(get_db)):
    return unwrap(await category_service.get_category_by_slug(db, slug))


@router.post("", status_code=201)
async def create_category(
    payload: dict = Body(...),
    identity: Identity | None = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    return unwrap(await category_service.create_category(db, identity, payload))


@router.patch("/{category_id}")
async def update_category(
    category_id: int,
    payload: dict = Body(...),
    identity: Identity | None = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    return unwrap(await category_service.update_category(db, identity, category_id, payload))


@router.delete("/{category_id}")
async def delete_category(
    category_id: int,
    identity: Identity | None = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    return unwrap(await category_service.delete_category(db, identity, category_id))
