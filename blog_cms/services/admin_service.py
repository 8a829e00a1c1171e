from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from blog_cms.auth import Identity, check_admin
from blog_cms.cache import cache
from blog_cms.errors import service_operation
from blog_cms.models import Comment, CommentStatus, Post, PostStatus, User


async def _count_by_status(db: AsyncSession, model, statuses) -> dict[str, int]:
    rows = (
        await db.execute(select(model.status, func.count()).group_by(model.status))
    ).all()
    counts = {status.value: 0 for status in statuses}
    for status, count in rows:
        counts[status.value] = count
    return counts


@service_operation
async def get_dashboard_stats(db: AsyncSession, identity: Identity | None) -> dict:
    """Headline counts for the admin dashboard, plus cache counters."""
    check_admin(identity)

    posts = await _count_by_status(db, Post, PostStatus)
    comments = await _count_by_status(db, Comment, CommentStatus)
    total_users = (await db.execute(select(func.count()).select_from(User))).scalar_one()

    return {
        "posts": {
            "total": sum(posts.values()),
            "published": posts[PostStatus.PUBLISHED.value],
            "draft": posts[PostStatus.DRAFT.value],
        },
        "comments": {
            "total": sum(comments.values()),
            "pending": comments[CommentStatus.PENDING.value],
            "approved": comments[CommentStatus.APPROVED.value],
        },
        "users": {"total": total_users},
        "cache": cache.stats,
    }
