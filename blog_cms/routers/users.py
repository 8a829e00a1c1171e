from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from blog_cms.auth import Identity
from blog_cms.database import get_db
from blog_cms.dependencies import PaginationParams, get_identity, unwrap
from blog_cms.models import PostStatus
from blog_cms.services import post_service, user_service

router = APIRouter(prefix="/api/v1", tags=["users"])


# --- The caller ---

@router.get("/me")
async def get_profile(
    identity: Identity | None = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    return unwrap(await user_service.get_current_user_profile(db, identity))


@router.put("/me")
async def update_profile(
    payload: dict = Body(...),
    identity: Identity | None = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    return unwrap(await user_service.update_profile(db, identity, payload))


@router.get("/me/posts")
async def list_my_posts(
    status: PostStatus | None = Query(None),
    pagination: PaginationParams = Depends(),
    identity: Identity | None = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    payload = pagination.as_payload(status=status)
    return unwrap(await post_service.get_author_posts(db, identity, payload))


# --- Public author pages ---

@router.get("/authors/{author_id}")
async def get_author(author_id: int, db: AsyncSession = Depends(get_db)):
    return unwrap(await user_service.get_author_by_id(db, author_id))


@router.get("/authors/{author_id}/posts")
async def list_author_posts(
    author_id: int,
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return unwrap(
        await user_service.get_author_published_posts(db, author_id, pagination.as_payload())
    )


# --- Admin user management ---

@router.get("/users")
async def list_users(
    search: str | None = Query(None),
    pagination: PaginationParams = Depends(),
    identity: Identity | None = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    payload = pagination.as_payload(search=search)
    return unwrap(await user_service.get_users(db, identity, payload))


@router.get("/users/{user_id}")
async def get_user(
    user_id: int,
    identity: Identity | None = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    return unwrap(await user_service.get_user_by_id(db, identity, user_id))
