"""
Post service — business logic for the Post aggregate.

Design notes
------------
- Lifecycle is ``DRAFT <-> PUBLISHED`` through the generic update; there
  are no publish/unpublish verbs.  ``published_at`` is stamped the first
  time a post goes DRAFT -> PUBLISHED and is never cleared or moved
  afterwards, so unpublishing keeps the publication history.
- Slugs come from the title and are only regenerated when the title
  changes; the post itself is excluded from the collision probe.
- Tag links are replaced wholesale (delete all, then insert) whenever
  ``tag_ids`` is supplied, including an empty list.
- Deleting a post removes its comments and tag links explicitly before
  the post row, inside the caller's transaction.
- Public reads of published posts go through the cache-aside pattern
  keyed by logical page path; every write schedules invalidation of the
  paths it affects.
- Eager loading via ``joinedload`` (many-to-one: author, category) and
  ``selectinload`` (many-to-many: tags) is used throughout.
- Service functions flush but do not commit; the transaction boundary
  is owned by the ``get_db`` dependency in the router layer.
"""
import re

from sqlalchemy import delete, func, insert, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from blog_cms.auth import Identity, check_admin, check_author, ensure_owner
from blog_cms.cache import cache, path_key
from blog_cms.config import settings
from blog_cms.database import flush_or_conflict
from blog_cms.errors import NotFound, service_operation, validate
from blog_cms.models import (
    Category,
    Comment,
    CommentStatus,
    Post,
    PostStatus,
    Tag,
    post_tags,
    utcnow,
)
from blog_cms.schemas import (
    Page,
    Pagination,
    PostCreate,
    PostListQuery,
    PostSearchQuery,
    PostUpdate,
)
from blog_cms.services.queries import approved_comment_count, comment_count, like_pattern
from blog_cms.services.serializers import post_detail_to_dict, post_to_dict
from blog_cms.services.user_service import get_or_create_user
from blog_cms.slugs import unique_slug

_SEARCH_STRIP_RE = re.compile(r"[^\w\s]", re.ASCII)

DUPLICATE_SLUG = "A post with this title already exists, please try again"

_POST_OPTIONS = (joinedload(Post.author), joinedload(Post.category), selectinload(Post.tags))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def sanitize_search_query(query: str) -> str:
    """Keep only word characters and whitespace, then trim."""
    return _SEARCH_STRIP_RE.sub("", query).strip()


def _slug_taken(db: AsyncSession, exclude_id: int | None = None):
    async def exists(candidate: str) -> bool:
        q = select(Post.id).where(Post.slug == candidate)
        if exclude_id is not None:
            q = q.where(Post.id != exclude_id)
        return (await db.execute(q)).first() is not None

    return exists


async def _load_post(db: AsyncSession, post_id: int) -> Post | None:
    q = (
        select(Post)
        .where(Post.id == post_id)
        .options(*_POST_OPTIONS)
        .execution_options(populate_existing=True)
    )
    return (await db.execute(q)).unique().scalar_one_or_none()


async def _require_category(db: AsyncSession, category_id: int) -> Category:
    category = await db.get(Category, category_id)
    if category is None:
        raise NotFound("Category not found", field="category_id")
    return category


async def _require_tags(db: AsyncSession, tag_ids: list[int]) -> list[int]:
    tag_ids = list(dict.fromkeys(tag_ids))
    if not tag_ids:
        return []
    found = set((await db.execute(select(Tag.id).where(Tag.id.in_(tag_ids)))).scalars().all())
    missing = [tag_id for tag_id in tag_ids if tag_id not in found]
    if missing:
        raise NotFound(f"Tag(s) not found: {', '.join(map(str, missing))}", field="tag_ids")
    return tag_ids


async def _replace_tags(db: AsyncSession, post_id: int, tag_ids: list[int]) -> None:
    await db.execute(delete(post_tags).where(post_tags.c.post_id == post_id))
    if tag_ids:
        await db.execute(
            insert(post_tags), [{"post_id": post_id, "tag_id": tag_id} for tag_id in tag_ids]
        )


def _list_filters(query: PostListQuery) -> list:
    where = []
    if query.status is not None:
        where.append(Post.status == query.status)
    if query.category_slug:
        where.append(Post.category.has(Category.slug == query.category_slug))
    if query.tag_slug:
        where.append(Post.tags.any(Tag.slug == query.tag_slug))
    return where


async def _paginate(
    db: AsyncSession, where: list, order_by: tuple, count_expr, page: int, limit: int
) -> Page:
    """
    Two statements: a COUNT over *where*, then the requested page with
    author/category/tags eagerly loaded and *count_expr* as a comment count.
    """
    total: int = (
        await db.execute(select(func.count()).select_from(Post).where(*where))
    ).scalar_one()

    q = (
        select(Post, count_expr)
        .where(*where)
        .options(*_POST_OPTIONS)
        .order_by(*order_by)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    rows = (await db.execute(q)).unique().all()
    return Page(
        items=[post_to_dict(post, comment_count=count) for post, count in rows],
        pagination=Pagination.build(page, limit, total),
    )


def _revalidate_post(db: AsyncSession, *slugs: str) -> None:
    cache.revalidate_on_commit(
        db,
        "/",
        "/posts",
        "/dashboard/posts",
        "/admin/posts",
        "/categories",
        "/tags",
        *(f"/posts/{s}" for s in slugs if s),
    )


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

@service_operation
async def create_post(db: AsyncSession, identity: Identity | None, payload) -> dict:
    """Create a post owned by the caller and return its detail dict."""
    check_author(identity)
    data = validate(PostCreate, payload)
    user = await get_or_create_user(db, identity)

    await _require_category(db, data.category_id)
    tag_ids = await _require_tags(db, data.tag_ids)

    post = Post(
        title=data.title,
        slug=await unique_slug(data.title, _slug_taken(db)),
        content=data.content,
        excerpt=data.excerpt,
        cover_image=data.cover_image,
        status=data.status,
        published_at=utcnow() if data.status is PostStatus.PUBLISHED else None,
        author_id=user.id,
        category_id=data.category_id,
    )
    db.add(post)
    await flush_or_conflict(db, DUPLICATE_SLUG, field="title")
    await _replace_tags(db, post.id, tag_ids)

    post = await _load_post(db, post.id)
    _revalidate_post(db)
    return post_detail_to_dict(post)


@service_operation
async def update_post(db: AsyncSession, identity: Identity | None, post_id: int, payload) -> dict:
    """
    Partially update a post.  Only fields present in *payload* change;
    ``tag_ids`` (even empty) replaces every tag link.
    """
    caller = check_author(identity)
    data = validate(PostUpdate, payload)
    changes = data.model_dump(exclude_unset=True)
    user = await get_or_create_user(db, identity)

    post = await _load_post(db, post_id)
    if post is None:
        raise NotFound("Post not found")
    ensure_owner(caller, user.id, post.author_id, "edit")

    if changes.get("category_id") is not None:
        await _require_category(db, changes["category_id"])
        post.category_id = changes["category_id"]

    tag_ids = None
    if changes.get("tag_ids") is not None:
        tag_ids = await _require_tags(db, changes["tag_ids"])

    old_slug = post.slug
    title = changes.get("title")
    if title and title != post.title:
        post.title = title
        post.slug = await unique_slug(title, _slug_taken(db, exclude_id=post.id))

    for field in ("content", "excerpt", "cover_image"):
        if field in changes:
            setattr(post, field, changes[field])

    status = changes.get("status")
    if status is not None:
        # Stamp only the first DRAFT -> PUBLISHED edge; unpublishing keeps it.
        if (
            status is PostStatus.PUBLISHED
            and post.status is PostStatus.DRAFT
            and post.published_at is None
        ):
            post.published_at = utcnow()
        post.status = status

    post.updated_at = utcnow()
    await flush_or_conflict(db, DUPLICATE_SLUG, field="title")

    if tag_ids is not None:
        await _replace_tags(db, post.id, tag_ids)

    post = await _load_post(db, post.id)
    _revalidate_post(db, old_slug, post.slug)
    return post_detail_to_dict(post)


@service_operation
async def delete_post(db: AsyncSession, identity: Identity | None, post_id: int) -> dict:
    caller = check_author(identity)
    user = await get_or_create_user(db, identity)

    post = await db.get(Post, post_id)
    if post is None:
        raise NotFound("Post not found")
    ensure_owner(caller, user.id, post.author_id, "delete")

    slug = post.slug
    await db.execute(delete(Comment).where(Comment.post_id == post_id))
    await db.execute(delete(post_tags).where(post_tags.c.post_id == post_id))
    await db.execute(delete(Post).where(Post.id == post_id))

    _revalidate_post(db, slug)
    cache.revalidate_on_commit(db, "/admin/comments")
    return {"success": True, "id": post_id}


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------

@service_operation
async def get_published_posts(db: AsyncSession, payload=None) -> dict:
    """
    Public feed of published posts, newest publication first, optionally
    narrowed to one category and/or tag.
    """
    query = validate(PostListQuery, payload or {})
    cache_key = path_key("/posts", query.category_slug, query.tag_slug, query.page, query.limit)
    cached = await cache.get(cache_key)
    if cached is not None:
        return cached

    query.status = PostStatus.PUBLISHED
    page = await _paginate(
        db,
        _list_filters(query),
        (Post.published_at.desc(), Post.id.desc()),
        approved_comment_count(),
        query.page,
        query.limit,
    )
    data = page.model_dump()
    await cache.set(cache_key, data, ttl=settings.CACHE_TTL_LIST)
    return data


@service_operation
async def get_author_posts(db: AsyncSession, identity: Identity | None, payload=None) -> dict:
    """The caller's own posts (any status), most recently edited first."""
    check_author(identity)
    query = validate(PostListQuery, payload or {})
    user = await get_or_create_user(db, identity)

    where = [Post.author_id == user.id, *_list_filters(query)]
    page = await _paginate(
        db, where, (Post.updated_at.desc(), Post.id.desc()), comment_count(), query.page, query.limit
    )
    return page.model_dump()


@service_operation
async def get_all_posts(db: AsyncSession, identity: Identity | None, payload=None) -> dict:
    """Every post regardless of author, most recently edited first."""
    check_admin(identity)
    query = validate(PostListQuery, payload or {})

    page = await _paginate(
        db,
        _list_filters(query),
        (Post.updated_at.desc(), Post.id.desc()),
        comment_count(),
        query.page,
        query.limit,
    )
    return page.model_dump()


# ---------------------------------------------------------------------------
# Single-post reads
# ---------------------------------------------------------------------------

@service_operation
async def get_post_by_slug(db: AsyncSession, slug: str) -> dict:
    """
    Public detail view.  Drafts are invisible here whoever asks; only
    approved comments are included, newest first.
    """
    cache_key = path_key(f"/posts/{slug}", "detail")
    cached = await cache.get(cache_key)
    if cached is not None:
        return cached

    q = (
        select(Post)
        .where(Post.slug == slug, Post.status == PostStatus.PUBLISHED)
        .options(*_POST_OPTIONS)
    )
    post = (await db.execute(q)).unique().scalar_one_or_none()
    if post is None:
        raise NotFound("Post not found")

    comments_q = (
        select(Comment)
        .where(Comment.post_id == post.id, Comment.status == CommentStatus.APPROVED)
        .options(joinedload(Comment.author))
        .order_by(Comment.created_at.desc(), Comment.id.desc())
    )
    comments = (await db.execute(comments_q)).unique().scalars().all()

    data = post_detail_to_dict(post, comments)
    await cache.set(cache_key, data, ttl=settings.CACHE_TTL_DETAIL)
    return data


@service_operation
async def get_post_by_id(db: AsyncSession, identity: Identity | None, post_id: int) -> dict:
    """Edit-flow read: owner or admin only, any status."""
    caller = check_author(identity)
    user = await get_or_create_user(db, identity)

    post = await _load_post(db, post_id)
    if post is None:
        raise NotFound("Post not found")
    ensure_owner(caller, user.id, post.author_id, "access")
    return post_detail_to_dict(post)


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------

@service_operation
async def search_posts(db: AsyncSession, payload) -> dict:
    """
    Case-insensitive substring search over title and excerpt of published
    posts.

    Ranking is page-local: the page is fetched in ``published_at``
    descending order and then stably re-sorted so title matches precede
    excerpt-only matches.  A strong title match on a later page is not
    pulled forward.
    """
    query = validate(PostSearchQuery, payload)
    needle = sanitize_search_query(query.query)
    if not needle:
        return Page.empty(query.page, query.limit).model_dump()

    pattern = like_pattern(needle)
    where = [
        Post.status == PostStatus.PUBLISHED,
        or_(Post.title.ilike(pattern, escape="\\"), Post.excerpt.ilike(pattern, escape="\\")),
    ]
    page = await _paginate(
        db,
        where,
        (Post.published_at.desc(), Post.id.desc()),
        approved_comment_count(),
        query.page,
        query.limit,
    )

    lowered = needle.lower()
    page.items.sort(key=lambda item: 0 if lowered in item["title"].lower() else 1)
    return page.model_dump()
