from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from blog_cms.auth import Identity
from blog_cms.database import get_db
from blog_cms.dependencies import PaginationParams, get_identity, unwrap
from blog_cms.services import comment_service, post_service

router = APIRouter(prefix="/api/v1/posts", tags=["posts"])


@router.get("")
async def list_published_posts(
    category: str | None = Query(None, description="Category slug."),
    tag: str | None = Query(None, description="Tag slug."),
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    payload = pagination.as_payload(category_slug=category, tag_slug=tag)
    return unwrap(await post_service.get_published_posts(db, payload))


@router.get("/search")
async def search_posts(
    q: str = Query("", description="Search text."),
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return unwrap(await post_service.search_posts(db, pagination.as_payload(query=q)))


@router.get("/slug/{slug}")
async def get_post_by_slug(slug: str, db: AsyncSession = Depends(get_db)):
    return unwrap(await post_service.get_post_by_slug(db, slug))


@router.get("/{post_id}")
async def get_post(
    post_id: int,
    identity: Identity | None = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    return unwrap(await post_service.get_post_by_id(db, identity, post_id))


@router.post("", status_code=201)
async def create_post(
    payload: dict = Body(...),
    identity: Identity | None = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    return unwrap(await post_service.create_post(db, identity, payload))


@router.patch("/{post_id}")
async def update_post(
    post_id: int,
    payload: dict = Body(...),
    identity: Identity | None = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    return unwrap(await post_service.update_post(db, identity, post_id, payload))


@router.delete("/{post_id}")
async def delete_post(
    post_id: int,
    identity: Identity | None = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    return unwrap(await post_service.delete_post(db, identity, post_id))


@router.get("/{post_id}/comments")
async def list_post_comments(
    post_id: int,
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return unwrap(
        await comment_service.get_public_comments(db, post_id, pagination.as_payload())
    )
