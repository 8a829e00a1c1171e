"""Query fragments shared by the services: count subqueries, LIKE patterns, post paths."""
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from blog_cms.models import Category, Comment, CommentStatus, Post, PostStatus, Tag, post_tags


def approved_comment_count():
    return (
        select(func.count(Comment.id))
        .where(Comment.post_id == Post.id, Comment.status == CommentStatus.APPROVED)
        .correlate(Post)
        .scalar_subquery()
    )


def comment_count():
    return (
        select(func.count(Comment.id))
        .where(Comment.post_id == Post.id)
        .correlate(Post)
        .scalar_subquery()
    )


def category_published_count():
    return (
        select(func.count(Post.id))
        .where(Post.category_id == Category.id, Post.status == PostStatus.PUBLISHED)
        .correlate(Category)
        .scalar_subquery()
    )


def tag_published_count():
    return (
        select(func.count(Post.id))
        .join(post_tags, post_tags.c.post_id == Post.id)
        .where(post_tags.c.tag_id == Tag.id, Post.status == PostStatus.PUBLISHED)
        .correlate(Tag)
        .scalar_subquery()
    )


def like_pattern(text: str) -> str:
    """Substring LIKE pattern for *text* with ``\\`` as the escape character."""
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


async def post_detail_paths(db: AsyncSession, *criteria) -> list[str]:
    """Cache paths of the detail pages of every post matching *criteria*."""
    slugs = (await db.execute(select(Post.slug).where(*criteria))).scalars().all()
    return [f"/posts/{slug}" for slug in slugs]
