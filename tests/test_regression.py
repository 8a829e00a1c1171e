"""
Regression tests for issues found during code review.

1. Unique constraint violations must return 409 (not 500)
2. Deleting a post whose tags are loaded in the session must not fail
3. Late slug collisions at flush become Conflict, not an IntegrityError
4. CORS must only echo configured origins when credentials are allowed
5. First access by a new identity must not create duplicate user rows
"""
import asyncio

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from blog_cms.config import settings
from blog_cms.errors import ErrorKind
from blog_cms.models import Category, Post, User
from blog_cms.services import post_service, tag_service, user_service


# ---------------------------------------------------------------------------
# 1. Unique constraint violations -> 409
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_duplicate_category_returns_409(async_client: AsyncClient, admin_headers):
    resp1 = await async_client.post(
        "/api/v1/categories", json={"name": "Travel"}, headers=admin_headers
    )
    assert resp1.status_code == 201

    resp2 = await async_client.post(
        "/api/v1/categories", json={"name": "Travel"}, headers=admin_headers
    )
    assert resp2.status_code == 409
    assert resp2.json()["errors"] == {"name": ["A category with this name already exists"]}


@pytest.mark.asyncio
async def test_update_post_slug_collision_handled(
    async_client: AsyncClient, admin_headers, author_headers
):
    """Retitling a post onto another post's slug yields a suffixed slug, not a 500."""
    category = (
        await async_client.post("/api/v1/categories", json={"name": "Tech"}, headers=admin_headers)
    ).json()
    await async_client.post(
        "/api/v1/posts",
        json={"title": "First Article", "category_id": category["id"]},
        headers=author_headers,
    )
    second = (
        await async_client.post(
            "/api/v1/posts",
            json={"title": "Second Article", "category_id": category["id"]},
            headers=author_headers,
        )
    ).json()

    resp = await async_client.patch(
        f"/api/v1/posts/{second['id']}", json={"title": "First Article"}, headers=author_headers
    )
    assert resp.status_code == 200
    assert resp.json()["slug"] == "first-article-1"


# ---------------------------------------------------------------------------
# 2. Deleting a post with identity-mapped tags
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_delete_post_after_loading_tags(
    db_session: AsyncSession, author, category: Category
):
    tags = await tag_service.create_or_get_tags(db_session, author, {"names": ["a", "b"]})
    created = await post_service.create_post(
        db_session,
        author,
        {"title": "Tagged", "category_id": category.id, "tag_ids": [t["id"] for t in tags.data]},
    )
    # Load the post (and its tags) into the session before deleting.
    assert (await post_service.get_post_by_id(db_session, author, created.data["id"])).ok

    result = await post_service.delete_post(db_session, author, created.data["id"])
    assert result.ok
    await db_session.commit()

    count = (await db_session.execute(select(func.count()).select_from(Post))).scalar_one()
    assert count == 0


# ---------------------------------------------------------------------------
# 3. Late slug collision at flush
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_late_slug_collision_is_conflict(
    db_session: AsyncSession, author, category: Category, monkeypatch
):
    """A concurrent writer took the slug after our probe said it was free."""
    await post_service.create_post(db_session, author, {"title": "Race", "category_id": category.id})

    async def always_free(text, exists, max_attempts=None):
        return "race"

    monkeypatch.setattr(post_service, "unique_slug", always_free)
    result = await post_service.create_post(
        db_session, author, {"title": "Race", "category_id": category.id}
    )
    assert result.kind is ErrorKind.CONFLICT
    assert "title" in result.errors


# ---------------------------------------------------------------------------
# 4. CORS headers
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_cors_only_allows_configured_origins(async_client: AsyncClient):
    allowed = settings.CORS_ORIGINS[0]
    resp = await async_client.options(
        "/api/v1/posts",
        headers={"Origin": allowed, "Access-Control-Request-Method": "GET"},
    )
    assert resp.headers.get("access-control-allow-origin") == allowed
    assert resp.headers.get("access-control-allow-credentials") == "true"

    resp = await async_client.options(
        "/api/v1/posts",
        headers={"Origin": "https://evil.example.com", "Access-Control-Request-Method": "GET"},
    )
    assert resp.headers.get("access-control-allow-origin") != "*"
    assert resp.headers.get("access-control-allow-origin") != "https://evil.example.com"


# ---------------------------------------------------------------------------
# 5. Concurrent first access
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_concurrent_first_access_creates_one_user(author, session_factory):
    async def first_access():
        async with session_factory() as session:
            user = await user_service.get_or_create_user(session, author)
            await session.commit()
            return user.id

    ids = await asyncio.gather(*(first_access() for _ in range(3)))
    assert len(set(ids)) == 1

    async with session_factory() as session:
        count = (await session.execute(select(func.count()).select_from(User))).scalar_one()
    assert count == 1
