"""
Tag service — lazily created, normalised tags.

Tag names are stored lowercase and trimmed.  Creation is
optimistic-insert-then-read: the lookup before the insert is only a fast
path, and the unique constraint on ``tags.name`` is what actually stops two
concurrent requests from creating the same tag.  A duplicate insert is
ignored by the storage layer and the existing row is returned instead.
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from blog_cms.auth import Identity, check_author
from blog_cms.cache import cache
from blog_cms.database import insert_ignoring_duplicates
from blog_cms.errors import Conflict, NotFound, service_operation, validate
from blog_cms.models import Tag
from blog_cms.schemas import TagCreate, TagsCreate
from blog_cms.services.queries import like_pattern, tag_published_count
from blog_cms.services.serializers import tag_to_dict
from blog_cms.slugs import unique_slug

SEARCH_LIMIT = 10


def normalize_tag_name(name: str) -> str:
    return name.strip().lower()


async def _insert_and_fetch(db: AsyncSession, names: list[str]) -> list[Tag]:
    """
    Insert tags for *names* (unless a concurrent writer already did) and
    return them.

    Distinct names can share a slug ("c++" and "c"), so each new row gets a
    suffixed slug when its base is taken.
    """
    reserved: set[str] = set()

    async def slug_taken(candidate: str) -> bool:
        if candidate in reserved:
            return True
        q = select(Tag.id).where(Tag.slug == candidate)
        return (await db.execute(q)).first() is not None

    rows = []
    for name in names:
        slug = await unique_slug(name, slug_taken)
        reserved.add(slug)
        rows.append({"name": name, "slug": slug})
    await insert_ignoring_duplicates(db, Tag.__table__, rows)

    q = select(Tag).where(Tag.name.in_(names)).order_by(Tag.name)
    tags = list((await db.execute(q)).scalars().all())
    if len(tags) != len(names):
        # A concurrent writer took one of our slugs for a different name.
        raise Conflict("Could not create all tags, please retry", field="names")
    return tags


# ---------------------------------------------------------------------------
# Public reads
# ---------------------------------------------------------------------------

@service_operation
async def get_tags(db: AsyncSession) -> list[dict]:
    q = select(Tag, tag_published_count()).order_by(Tag.name)
    rows = (await db.execute(q)).all()
    return [tag_to_dict(tag, post_count=count) for tag, count in rows]


@service_operation
async def get_tag_by_slug(db: AsyncSession, slug: str) -> dict:
    q = select(Tag, tag_published_count()).where(Tag.slug == slug)
    row = (await db.execute(q)).first()
    if row is None:
        raise NotFound("Tag not found")
    tag, count = row
    return tag_to_dict(tag, post_count=count)


@service_operation
async def search_tags_by_prefix(db: AsyncSession, query: str | None) -> list[dict]:
    """Autocomplete: up to 10 tags whose name contains *query*, by name."""
    needle = normalize_tag_name(query or "")
    if not needle:
        return []
    q = (
        select(Tag)
        .where(Tag.name.like(like_pattern(needle), escape="\\"))
        .order_by(Tag.name)
        .limit(SEARCH_LIMIT)
    )
    return [tag_to_dict(t) for t in (await db.execute(q)).scalars().all()]


# ---------------------------------------------------------------------------
# Author writes
# ---------------------------------------------------------------------------

@service_operation
async def create_or_get_tag(db: AsyncSession, identity: Identity | None, payload) -> dict:
    check_author(identity)
    name = validate(TagCreate, payload).name

    tag = (await db.execute(select(Tag).where(Tag.name == name))).scalar_one_or_none()
    if tag is None:
        (tag,) = await _insert_and_fetch(db, [name])
        cache.revalidate_on_commit(db, "/tags", "/")
    return tag_to_dict(tag)


@service_operation
async def create_or_get_tags(db: AsyncSession, identity: Identity | None, payload) -> list[dict]:
    """
    Resolve up to ten tag names at once.  Input is de-duplicated after
    normalisation; missing tags are bulk-inserted in one statement.
    """
    check_author(identity)
    names = list(dict.fromkeys(validate(TagsCreate, payload).names))
    if not names:
        return []

    existing = set(
        (await db.execute(select(Tag.name).where(Tag.name.in_(names)))).scalars().all()
    )
    missing = [name for name in names if name not in existing]
    if missing:
        await _insert_and_fetch(db, missing)
        cache.revalidate_on_commit(db, "/tags", "/")

    q = select(Tag).where(Tag.name.in_(names)).order_by(Tag.name)
    tags = (await db.execute(q)).scalars().all()
    return [tag_to_dict(t) for t in tags]
