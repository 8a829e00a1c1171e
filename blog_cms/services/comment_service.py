"""
Comment service — moderated comments on published posts.

Lifecycle: a new comment is PENDING; an admin either approves it or
rejects it, and rejection deletes the row (there is no rejected state).
Comments can only be created against a post that is published at that
moment; unpublishing a post later leaves its comments alone.

Visibility is split into explicit entry points: ``get_public_comments``
always narrows to APPROVED, ``get_admin_comments`` requires the Admin
role.  ``get_comments`` is the unfiltered query facade underneath them and
does not hide PENDING comments by itself.
"""
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from blog_cms.auth import Identity, check_admin, check_author
from blog_cms.cache import cache
from blog_cms.errors import NotFound, PreconditionFailed, service_operation, validate
from blog_cms.models import Comment, CommentStatus, Post, PostStatus
from blog_cms.schemas import CommentCreate, CommentListQuery, Page, Pagination
from blog_cms.services.serializers import comment_to_dict
from blog_cms.services.user_service import get_or_create_user


async def _load_comment(db: AsyncSession, comment_id: int) -> Comment | None:
    q = (
        select(Comment)
        .where(Comment.id == comment_id)
        .options(joinedload(Comment.author), joinedload(Comment.post))
        .execution_options(populate_existing=True)
    )
    return (await db.execute(q)).unique().scalar_one_or_none()


async def _query_comments(db: AsyncSession, query: CommentListQuery) -> dict:
    where = []
    if query.post_id is not None:
        where.append(Comment.post_id == query.post_id)
    if query.status is not None:
        where.append(Comment.status == query.status)

    total: int = (
        await db.execute(select(func.count()).select_from(Comment).where(*where))
    ).scalar_one()

    q = (
        select(Comment)
        .where(*where)
        .options(joinedload(Comment.author), joinedload(Comment.post))
        .order_by(Comment.created_at.desc(), Comment.id.desc())
        .offset((query.page - 1) * query.limit)
        .limit(query.limit)
    )
    comments = (await db.execute(q)).unique().scalars().all()
    return Page(
        items=[comment_to_dict(c) for c in comments],
        pagination=Pagination.build(query.page, query.limit, total),
    ).model_dump()


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

@service_operation
async def create_comment(db: AsyncSession, identity: Identity | None, payload) -> dict:
    """Any signed-in user may comment on a published post; it starts PENDING."""
    check_author(identity)
    data = validate(CommentCreate, payload)
    user = await get_or_create_user(db, identity)

    post = await db.get(Post, data.post_id)
    if post is None:
        raise NotFound("Post not found", field="post_id")
    if post.status is not PostStatus.PUBLISHED:
        raise PreconditionFailed("Comments can only be added to published posts")

    comment = Comment(
        content=data.content,
        status=CommentStatus.PENDING,
        author_id=user.id,
        post_id=post.id,
    )
    db.add(comment)
    await db.flush()

    cache.revalidate_on_commit(db, f"/posts/{post.slug}", "/admin/comments")
    comment = await _load_comment(db, comment.id)
    return comment_to_dict(comment)


@service_operation
async def approve_comment(db: AsyncSession, identity: Identity | None, comment_id: int) -> dict:
    """PENDING -> APPROVED; approving an approved comment is a no-op."""
    check_admin(identity)

    comment = await _load_comment(db, comment_id)
    if comment is None:
        raise NotFound("Comment not found")

    if comment.status is not CommentStatus.APPROVED:
        comment.status = CommentStatus.APPROVED
        await db.flush()

    cache.revalidate_on_commit(db, "/posts", f"/posts/{comment.post.slug}", "/admin/comments")
    return comment_to_dict(comment)


@service_operation
async def reject_comment(db: AsyncSession, identity: Identity | None, comment_id: int) -> dict:
    """Rejection is deletion, whatever the current status."""
    check_admin(identity)

    comment = await _load_comment(db, comment_id)
    if comment is None:
        raise NotFound("Comment not found")

    slug = comment.post.slug
    await db.delete(comment)
    await db.flush()

    cache.revalidate_on_commit(db, "/posts", f"/posts/{slug}", "/admin/comments")
    return {"success": True, "id": comment_id}


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

@service_operation
async def get_comment(db: AsyncSession, identity: Identity | None, comment_id: int) -> dict:
    check_admin(identity)
    comment = await _load_comment(db, comment_id)
    if comment is None:
        raise NotFound("Comment not found")
    return comment_to_dict(comment)


@service_operation
async def get_comments(db: AsyncSession, payload=None) -> dict:
    """
    Generic comment query.  Does NOT restrict by status: callers serving
    the public must go through ``get_public_comments`` instead.
    """
    return await _query_comments(db, validate(CommentListQuery, payload or {}))


@service_operation
async def get_public_comments(db: AsyncSession, post_id: int, payload=None) -> dict:
    """Approved comments on one post; safe for anonymous readers."""
    query = validate(CommentListQuery, payload or {})
    query.post_id = post_id
    query.status = CommentStatus.APPROVED
    return await _query_comments(db, query)


@service_operation
async def get_admin_comments(db: AsyncSession, identity: Identity | None, payload=None) -> dict:
    check_admin(identity)
    return await _query_comments(db, validate(CommentListQuery, payload or {}))


@service_operation
async def get_pending_comments(db: AsyncSession, identity: Identity | None, payload=None) -> dict:
    """Moderation queue."""
    check_admin(identity)
    query = validate(CommentListQuery, payload or {})
    query.status = CommentStatus.PENDING
    return await _query_comments(db, query)
