"""
Category service — admin-managed taxonomy with a referential guard.

A category can only be deleted once no post references it; the exact
number of referencing posts is reported so the UI can show it.  Slugs are
derived from the name and regenerated only when the name changes.
"""
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from blog_cms.auth import Identity, check_admin
from blog_cms.cache import cache, path_key
from blog_cms.config import settings
from blog_cms.database import flush_or_conflict
from blog_cms.errors import Conflict, NotFound, PreconditionFailed, service_operation, validate
from blog_cms.models import Category, Post
from blog_cms.schemas import CategoryCreate, CategoryUpdate
from blog_cms.services.queries import category_published_count, post_detail_paths
from blog_cms.services.serializers import category_to_dict
from blog_cms.slugs import unique_slug

DUPLICATE_NAME = "A category with this name already exists"


def _slug_taken(db: AsyncSession, exclude_id: int | None = None):
    async def exists(candidate: str) -> bool:
        q = select(Category.id).where(Category.slug == candidate)
        if exclude_id is not None:
            q = q.where(Category.id != exclude_id)
        return (await db.execute(q)).first() is not None

    return exists


async def _name_taken(db: AsyncSession, name: str, exclude_id: int | None = None) -> bool:
    q = select(Category.id).where(Category.name == name)
    if exclude_id is not None:
        q = q.where(Category.id != exclude_id)
    return (await db.execute(q)).first() is not None


# ---------------------------------------------------------------------------
# Public reads
# ---------------------------------------------------------------------------

@service_operation
async def get_categories(db: AsyncSession) -> list[dict]:
    """All categories by name, each with its published-post count."""
    cache_key = path_key("/categories", "all")
    cached = await cache.get(cache_key)
    if cached is not None:
        return cached

    q = select(Category, category_published_count()).order_by(Category.name)
    rows = (await db.execute(q)).all()
    data = [category_to_dict(category, post_count=count) for category, count in rows]

    await cache.set(cache_key, data, ttl=settings.CACHE_TTL_LIST)
    return data


@service_operation
async def get_category_by_slug(db: AsyncSession, slug: str) -> dict:
    q = select(Category, category_published_count()).where(Category.slug == slug)
    row = (await db.execute(q)).first()
    if row is None:
        raise NotFound("Category not found")
    category, count = row
    return category_to_dict(category, post_count=count)


# ---------------------------------------------------------------------------
# Admin writes
# ---------------------------------------------------------------------------

@service_operation
async def create_category(db: AsyncSession, identity: Identity | None, payload) -> dict:
    check_admin(identity)
    data = validate(CategoryCreate, payload)

    if await _name_taken(db, data.name):
        raise Conflict(DUPLICATE_NAME, field="name")

    category = Category(
        name=data.name,
        slug=await unique_slug(data.name, _slug_taken(db)),
        description=data.description,
    )
    db.add(category)
    await flush_or_conflict(db, DUPLICATE_NAME, field="name")

    cache.revalidate_on_commit(db, "/admin/categories", "/categories", "/")
    return category_to_dict(category)


@service_operation
async def update_category(
    db: AsyncSession, identity: Identity | None, category_id: int, payload
) -> dict:
    check_admin(identity)
    data = validate(CategoryUpdate, payload)
    changes = data.model_dump(exclude_unset=True)

    category = await db.get(Category, category_id)
    if category is None:
        raise NotFound("Category not found")

    old_slug = category.slug
    name = changes.get("name")
    if name and name != category.name:
        if await _name_taken(db, name, exclude_id=category.id):
            raise Conflict(DUPLICATE_NAME, field="name")
        category.name = name
        category.slug = await unique_slug(name, _slug_taken(db, exclude_id=category.id))

    if "description" in changes:
        category.description = changes["description"]

    await flush_or_conflict(db, DUPLICATE_NAME, field="name")

    detail_paths = await post_detail_paths(db, Post.category_id == category.id)
    cache.revalidate_on_commit(
        db,
        "/admin/categories",
        "/categories",
        "/",
        "/posts",
        f"/categories/{old_slug}",
        f"/categories/{category.slug}",
        *detail_paths,
    )
    return category_to_dict(category)


@service_operation
async def delete_category(db: AsyncSession, identity: Identity | None, category_id: int) -> dict:
    check_admin(identity)

    category = await db.get(Category, category_id)
    if category is None:
        raise NotFound("Category not found")

    post_count = (
        await db.execute(
            select(func.count()).select_from(Post).where(Post.category_id == category_id)
        )
    ).scalar_one()
    if post_count > 0:
        raise PreconditionFailed(
            f"Cannot delete category with {post_count} post(s). "
            "Please reassign posts to another category first."
        )

    await db.delete(category)
    await db.flush()

    cache.revalidate_on_commit(
        db, "/admin/categories", "/categories", "/", "/posts", f"/categories/{category.slug}"
    )
    return {"success": True, "id": category_id}
