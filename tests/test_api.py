"""
HTTP endpoint tests — the thin FastAPI layer over the services.

Covers identity resolution from gateway headers, the error-kind to status
mapping and its JSON body, and the full authoring/moderation walkthrough.
"""
import pytest
from httpx import AsyncClient


async def _create_category(client: AsyncClient, admin_headers, name: str = "Technology") -> dict:
    resp = await client.post("/api/v1/categories", json={"name": name}, headers=admin_headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


# ---------------------------------------------------------------------------
# Infrastructure / health
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_health(async_client: AsyncClient):
    resp = await async_client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_missing_identity_is_401(async_client: AsyncClient):
    resp = await async_client.post("/api/v1/posts", json={"title": "x", "category_id": 1})
    assert resp.status_code == 401
    assert resp.json() == {"kind": "Unauthenticated", "errors": {"_form": ["You must be logged in"]}}


@pytest.mark.asyncio
async def test_author_creating_category_is_403(async_client: AsyncClient, author_headers):
    resp = await async_client.post(
        "/api/v1/categories", json={"name": "Tech"}, headers=author_headers
    )
    assert resp.status_code == 403
    assert resp.json()["kind"] == "Forbidden"


@pytest.mark.asyncio
async def test_validation_failure_is_422_with_field_errors(
    async_client: AsyncClient, admin_headers
):
    resp = await async_client.post("/api/v1/categories", json={"name": ""}, headers=admin_headers)
    assert resp.status_code == 422
    body = resp.json()
    assert body["kind"] == "ValidationFailed"
    assert "name" in body["errors"]


@pytest.mark.asyncio
async def test_unknown_post_is_404(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/posts/slug/does-not-exist")
    assert resp.status_code == 404
    assert resp.json()["kind"] == "NotFound"


@pytest.mark.asyncio
async def test_unknown_route_keeps_default_body(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/nowhere")
    assert resp.status_code == 404
    assert resp.json() == {"detail": "Not Found"}


@pytest.mark.asyncio
async def test_category_delete_guard_is_409(
    async_client: AsyncClient, admin_headers, author_headers
):
    category = await _create_category(async_client, admin_headers)
    for title in ("One", "Two", "Three"):
        resp = await async_client.post(
            "/api/v1/posts",
            json={"title": title, "category_id": category["id"]},
            headers=author_headers,
        )
        assert resp.status_code == 201

    resp = await async_client.delete(f"/api/v1/categories/{category['id']}", headers=admin_headers)
    assert resp.status_code == 409
    body = resp.json()
    assert body["kind"] == "PreconditionFailed"
    assert "3 post(s)" in body["errors"]["_form"][0]


# ---------------------------------------------------------------------------
# End-to-end walkthrough
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_authoring_and_moderation_walkthrough(
    async_client: AsyncClient, author_headers, other_headers, admin_headers
):
    category = await _create_category(async_client, admin_headers)
    assert category["slug"] == "technology"

    # Draft
    resp = await async_client.post(
        "/api/v1/posts",
        json={"title": "Hello World", "content": {"type": "doc"}, "category_id": category["id"]},
        headers=author_headers,
    )
    assert resp.status_code == 201
    post = resp.json()
    assert post["slug"] == "hello-world"
    assert post["published_at"] is None

    # Invisible to the public while a draft
    resp = await async_client.get("/api/v1/posts/slug/hello-world")
    assert resp.status_code == 404

    # Publish
    resp = await async_client.patch(
        f"/api/v1/posts/{post['id']}", json={"status": "PUBLISHED"}, headers=author_headers
    )
    assert resp.status_code == 200
    published = resp.json()
    assert published["published_at"] is not None
    assert published["slug"] == "hello-world"

    resp = await async_client.get("/api/v1/posts")
    assert [p["slug"] for p in resp.json()["items"]] == ["hello-world"]

    resp = await async_client.get("/api/v1/posts/slug/hello-world")
    assert resp.status_code == 200
    assert resp.json()["comments"] == []

    # A reader comments
    resp = await async_client.post(
        "/api/v1/comments",
        json={"content": "nice post", "post_id": post["id"]},
        headers=other_headers,
    )
    assert resp.status_code == 201
    comment = resp.json()
    assert comment["status"] == "PENDING"

    resp = await async_client.get(f"/api/v1/posts/{post['id']}/comments")
    assert resp.json()["items"] == []

    # Only an admin may approve
    resp = await async_client.post(
        f"/api/v1/admin/comments/{comment['id']}/approve", headers=author_headers
    )
    assert resp.status_code == 403

    resp = await async_client.get("/api/v1/admin/comments/pending", headers=admin_headers)
    assert [c["id"] for c in resp.json()["items"]] == [comment["id"]]

    resp = await async_client.post(
        f"/api/v1/admin/comments/{comment['id']}/approve", headers=admin_headers
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "APPROVED"

    resp = await async_client.get(f"/api/v1/posts/{post['id']}/comments")
    assert [c["content"] for c in resp.json()["items"]] == ["nice post"]

    resp = await async_client.get("/api/v1/posts/slug/hello-world")
    assert len(resp.json()["comments"]) == 1


@pytest.mark.asyncio
async def test_non_owner_edit_and_admin_override(
    async_client: AsyncClient, author_headers, other_headers, admin_headers
):
    category = await _create_category(async_client, admin_headers)
    resp = await async_client.post(
        "/api/v1/posts", json={"title": "Owned", "category_id": category["id"]}, headers=author_headers
    )
    post_id = resp.json()["id"]

    resp = await async_client.patch(
        f"/api/v1/posts/{post_id}", json={"title": "Hijacked"}, headers=other_headers
    )
    assert resp.status_code == 403

    resp = await async_client.delete(f"/api/v1/posts/{post_id}", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "id": post_id}

    resp = await async_client.get(f"/api/v1/posts/{post_id}", headers=author_headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_tags_and_search_endpoints(
    async_client: AsyncClient, author_headers, admin_headers
):
    category = await _create_category(async_client, admin_headers)
    resp = await async_client.post(
        "/api/v1/tags/bulk", json={"names": ["Python", "FastAPI", "python"]}, headers=author_headers
    )
    assert resp.status_code == 200
    tags = resp.json()
    assert [t["name"] for t in tags] == ["fastapi", "python"]

    await async_client.post(
        "/api/v1/posts",
        json={
            "title": "Async Python in Practice",
            "category_id": category["id"],
            "tag_ids": [t["id"] for t in tags],
            "status": "PUBLISHED",
        },
        headers=author_headers,
    )

    resp = await async_client.get("/api/v1/tags/search", params={"q": "py"})
    assert [t["name"] for t in resp.json()] == ["python"]

    resp = await async_client.get("/api/v1/posts", params={"tag": "fastapi"})
    assert resp.json()["pagination"]["total"] == 1

    resp = await async_client.get("/api/v1/posts/search", params={"q": "python!"})
    assert [p["title"] for p in resp.json()["items"]] == ["Async Python in Practice"]

    resp = await async_client.get("/api/v1/tags/python")
    assert resp.json()["post_count"] == 1


@pytest.mark.asyncio
async def test_profile_and_author_pages(async_client: AsyncClient, author_headers):
    resp = await async_client.get("/api/v1/me", headers=author_headers)
    assert resp.status_code == 200
    me = resp.json()
    assert me["email"] == "alice@example.com"

    resp = await async_client.put(
        "/api/v1/me", json={"name": "Alice", "bio": "Hi"}, headers=author_headers
    )
    assert resp.json()["name"] == "Alice"

    resp = await async_client.get(f"/api/v1/authors/{me['id']}")
    assert resp.status_code == 200
    assert resp.json()["bio"] == "Hi"
    assert "email" not in resp.json()


@pytest.mark.asyncio
async def test_admin_endpoints_require_admin_role(
    async_client: AsyncClient, author_headers, admin_headers
):
    for path in ("/api/v1/admin/stats", "/api/v1/admin/posts", "/api/v1/admin/comments"):
        assert (await async_client.get(path, headers=author_headers)).status_code == 403
        assert (await async_client.get(path, headers=admin_headers)).status_code == 200

    resp = await async_client.get("/api/v1/users", headers=author_headers)
    assert resp.status_code == 403
