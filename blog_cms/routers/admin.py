from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from blog_cms.auth import Identity
from blog_cms.database import get_db
from blog_cms.dependencies import PaginationParams, get_identity, unwrap
from blog_cms.models import CommentStatus, PostStatus
from blog_cms.services import admin_service, comment_service, post_service

router = APIRouter(prefix="/api/v1/admin", tags=["admin"])


@router.get("/stats")
async def dashboard_stats(
    identity: Identity | None = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    return unwrap(await admin_service.get_dashboard_stats(db, identity))


@router.get("/posts")
async def list_all_posts(
    status: PostStatus | None = Query(None),
    pagination: PaginationParams = Depends(),
    identity: Identity | None = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    payload = pagination.as_payload(status=status)
    return unwrap(await post_service.get_all_posts(db, identity, payload))


@router.get("/comments")
async def list_comments(
    status: CommentStatus | None = Query(None),
    post_id: int | None = Query(None),
    pagination: PaginationParams = Depends(),
    identity: Identity | None = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    payload = pagination.as_payload(status=status, post_id=post_id)
    return unwrap(await comment_service.get_admin_comments(db, identity, payload))


@router.get("/comments/pending")
async def list_pending_comments(
    pagination: PaginationParams = Depends(),
    identity: Identity | None = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    return unwrap(
        await comment_service.get_pending_comments(db, identity, pagination.as_payload())
    )


@router.get("/comments/{comment_id}")
async def get_comment(
    comment_id: int,
    identity: Identity | None = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    return unwrap(await comment_service.get_comment(db, identity, comment_id))


@router.post("/comments/{comment_id}/approve")
async def approve_comment(
    comment_id: int,
    identity: Identity | None = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    return unwrap(await comment_service.approve_comment(db, identity, comment_id))


@router.delete("/comments/{comment_id}")
async def reject_comment(
    comment_id: int,
    identity: Identity | None = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    return unwrap(await comment_service.reject_comment(db, identity, comment_id))
