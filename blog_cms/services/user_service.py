"""
User service — local user rows synced from the external identity provider.

A local row is created on first authenticated access (get-or-create keyed
by the identity subject id) and only ever changes through the owner's
profile update.  Roles are never stored: admin listings ask the identity
provider for each user's role claim and fall back to ``Author`` when the
lookup fails, so one bad record cannot break the page.
"""
import asyncio
import logging

import httpx
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from blog_cms.auth import (
    Identity,
    IdentityProvider,
    Role,
    check_admin,
    get_identity_provider,
    require_role,
    resolve_role,
)
from blog_cms.cache import cache
from blog_cms.database import insert_ignoring_duplicates
from blog_cms.errors import NotFound, Unauthenticated, service_operation, validate
from blog_cms.models import Comment, Post, PostStatus, User
from blog_cms.schemas import Page, PageQuery, Pagination, ProfileUpdate, UserListQuery
from blog_cms.services.queries import approved_comment_count, like_pattern, post_detail_paths
from blog_cms.services.serializers import iso, post_to_dict, user_to_dict

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Identity sync
# ---------------------------------------------------------------------------

async def get_or_create_user(db: AsyncSession, identity: Identity | None) -> User:
    """
    Return the local row for *identity*, creating it on first access.

    Two concurrent first requests may both try to insert; the unique
    constraint on ``external_id`` decides and both end up reading the
    winning row.
    """
    if identity is None:
        raise Unauthenticated("You must be logged in")

    q = select(User).where(User.external_id == identity.subject_id)
    user = (await db.execute(q)).scalar_one_or_none()
    if user is not None:
        return user

    await insert_ignoring_duplicates(
        db,
        User.__table__,
        [
            {
                "external_id": identity.subject_id,
                "email": identity.email or "",
                "name": (identity.name or "").strip() or None,
            }
        ],
    )
    logger.info("Created local user for identity %s", identity.subject_id)
    return (await db.execute(q)).scalar_one()


async def _role_for(provider: IdentityProvider, user: User) -> str:
    try:
        identity = await provider.fetch_identity(user.external_id)
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("Role lookup failed for user %s: %s", user.id, exc)
        return Role.AUTHOR.value
    if identity is None:
        return Role.AUTHOR.value
    return resolve_role(identity).value


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

@service_operation
async def get_current_user_profile(db: AsyncSession, identity: Identity | None) -> dict:
    user = await get_or_create_user(db, identity)
    return user_to_dict(user)


@service_operation
async def update_profile(db: AsyncSession, identity: Identity | None, payload) -> dict:
    """Update name and bio on the caller's own row; never anyone else's."""
    require_role(identity, (Role.AUTHOR, Role.ADMIN))
    data = validate(ProfileUpdate, payload)
    user = await get_or_create_user(db, identity)

    user.name = data.name
    user.bio = data.bio
    await db.flush()

    detail_paths = await post_detail_paths(
        db,
        or_(
            Post.author_id == user.id,
            Post.id.in_(select(Comment.post_id).where(Comment.author_id == user.id)),
        ),
    )
    cache.revalidate_on_commit(
        db, "/dashboard/profile", f"/authors/{user.id}", "/posts", *detail_paths
    )
    return user_to_dict(user)


@service_operation
async def get_users(
    db: AsyncSession,
    identity: Identity | None,
    payload=None,
    provider: IdentityProvider | None = None,
) -> dict:
    """
    Admin listing of users with post/comment counts and a role resolved
    from the identity provider, newest first.
    """
    check_admin(identity)
    query = validate(UserListQuery, payload or {})
    provider = provider or get_identity_provider()

    where = []
    search = (query.search or "").strip()
    if search:
        pattern = like_pattern(search.lower())
        where.append(
            or_(
                func.lower(User.name).like(pattern, escape="\\"),
                func.lower(User.email).like(pattern, escape="\\"),
            )
        )

    total = (await db.execute(select(func.count()).select_from(User).where(*where))).scalar_one()

    post_count = (
        select(func.count(Post.id)).where(Post.author_id == User.id).correlate(User).scalar_subquery()
    )
    comment_count = (
        select(func.count(Comment.id))
        .where(Comment.author_id == User.id)
        .correlate(User)
        .scalar_subquery()
    )
    q = (
        select(User, post_count, comment_count)
        .where(*where)
        .order_by(User.created_at.desc(), User.id.desc())
        .offset((query.page - 1) * query.limit)
        .limit(query.limit)
    )
    rows = (await db.execute(q)).all()

    roles = await asyncio.gather(*(_role_for(provider, user) for user, _, _ in rows))

    items = []
    for (user, posts, comments), role in zip(rows, roles):
        data = user_to_dict(user)
        data["role"] = role
        data["post_count"] = posts
        data["comment_count"] = comments
        items.append(data)

    return Page(items=items, pagination=Pagination.build(query.page, query.limit, total)).model_dump()


@service_operation
async def get_user_by_id(
    db: AsyncSession,
    identity: Identity | None,
    user_id: int,
    provider: IdentityProvider | None = None,
) -> dict:
    check_admin(identity)
    provider = provider or get_identity_provider()

    user = await db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")

    post_count = (
        await db.execute(select(func.count()).select_from(Post).where(Post.author_id == user_id))
    ).scalar_one()
    comment_count = (
        await db.execute(
            select(func.count()).select_from(Comment).where(Comment.author_id == user_id)
        )
    ).scalar_one()
    recent = (
        await db.execute(
            select(Post)
            .where(Post.author_id == user_id)
            .order_by(Post.created_at.desc(), Post.id.desc())
            .limit(5)
        )
    ).scalars().all()

    data = user_to_dict(user)
    data["role"] = await _role_for(provider, user)
    data["post_count"] = post_count
    data["comment_count"] = comment_count
    data["recent_posts"] = [
        {
            "id": p.id,
            "title": p.title,
            "status": p.status.value,
            "created_at": iso(p.created_at),
        }
        for p in recent
    ]
    return data


@service_operation
async def get_author_by_id(db: AsyncSession, author_id: int) -> dict:
    """Public author profile: no email, published-post count only."""
    user = await db.get(User, author_id)
    if user is None:
        raise NotFound("Author not found")

    published = (
        await db.execute(
            select(func.count())
            .select_from(Post)
            .where(Post.author_id == author_id, Post.status == PostStatus.PUBLISHED)
        )
    ).scalar_one()
    return {
        "id": user.id,
        "name": user.name,
        "bio": user.bio,
        "created_at": iso(user.created_at),
        "published_post_count": published,
    }


@service_operation
async def get_author_published_posts(db: AsyncSession, author_id: int, payload=None) -> dict:
    """Public listing of one author's published posts, newest first."""
    query = validate(PageQuery, payload or {})
    where = (Post.author_id == author_id, Post.status == PostStatus.PUBLISHED)

    total = (await db.execute(select(func.count()).select_from(Post).where(*where))).scalar_one()
    q = (
        select(Post, approved_comment_count())
        .where(*where)
        .options(joinedload(Post.author), joinedload(Post.category), selectinload(Post.tags))
        .order_by(Post.published_at.desc(), Post.id.desc())
        .offset((query.page - 1) * query.limit)
        .limit(query.limit)
    )
    rows = (await db.execute(q)).unique().all()

    items = [post_to_dict(post, comment_count=count) for post, count in rows]
    return Page(items=items, pagination=Pagination.build(query.page, query.limit, total)).model_dump()
