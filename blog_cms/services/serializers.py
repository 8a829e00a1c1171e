"""
Serialisation helpers shared by the service modules.

Services return plain dicts (JSON-ready, cacheable) rather than ORM
instances.  Relationships are only read when the calling query loaded
them; every relationship is ``lazy="noload"`` so an unloaded one reads as
empty/None instead of triggering I/O.
"""
from blog_cms.content import generate_excerpt
from blog_cms.models import Category, Comment, Post, Tag, User

LIST_EXCERPT_LENGTH = 150


def iso(value) -> str | None:
    return value.isoformat() if value else None


def user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "external_id": user.external_id,
        "email": user.email,
        "name": user.name,
        "bio": user.bio,
        "created_at": iso(user.created_at),
    }


def author_summary(user: User | None) -> dict | None:
    """Public view of a user embedded in posts and comments (no email)."""
    if user is None:
        return None
    return {"id": user.id, "name": user.name}


def category_to_dict(category: Category | None, post_count: int | None = None) -> dict | None:
    if category is None:
        return None
    data = {
        "id": category.id,
        "name": category.name,
        "slug": category.slug,
        "description": category.description,
    }
    if post_count is not None:
        data["post_count"] = post_count
    return data


def tag_to_dict(tag: Tag, post_count: int | None = None) -> dict:
    data = {"id": tag.id, "name": tag.name, "slug": tag.slug}
    if post_count is not None:
        data["post_count"] = post_count
    return data


def post_to_dict(post: Post, comment_count: int | None = None) -> dict:
    """List view: everything but the document body."""
    data = {
        "id": post.id,
        "title": post.title,
        "slug": post.slug,
        "excerpt": post.excerpt,
        "display_excerpt": post.excerpt or generate_excerpt(post.content, LIST_EXCERPT_LENGTH),
        "cover_image": post.cover_image,
        "status": post.status.value,
        "published_at": iso(post.published_at),
        "created_at": iso(post.created_at),
        "updated_at": iso(post.updated_at),
        "author_id": post.author_id,
        "category_id": post.category_id,
        "author": author_summary(post.author),
        "category": category_to_dict(post.category),
        "tags": [tag_to_dict(t) for t in sorted(post.tags, key=lambda t: t.name)],
    }
    if comment_count is not None:
        data["comment_count"] = comment_count
    return data


def post_detail_to_dict(post: Post, comments: list[Comment] | None = None) -> dict:
    data = post_to_dict(post)
    data["content"] = post.content
    data["comments"] = [comment_to_dict(c) for c in (comments or [])]
    return data


def comment_to_dict(comment: Comment) -> dict:
    data = {
        "id": comment.id,
        "content": comment.content,
        "status": comment.status.value,
        "author_id": comment.author_id,
        "post_id": comment.post_id,
        "created_at": iso(comment.created_at),
        "author": author_summary(comment.author),
    }
    if comment.post is not None:
        data["post"] = {
            "id": comment.post.id,
            "slug": comment.post.slug,
            "title": comment.post.title,
        }
    return data
