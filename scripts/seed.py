"""Database seeder: default categories, plus optional demo content."""
import argparse
import asyncio
import time

from sqlalchemy import select

from blog_cms.database import Base, async_session, engine
from blog_cms.models import Category, Post, PostStatus, User, utcnow
from blog_cms.slugs import slugify

CATEGORIES = [
    ("Technology", "Software, hardware and everything in between"),
    ("Lifestyle", "Everyday life, habits and travel"),
    ("Education", "Learning, teaching and study notes"),
]

DEMO_POSTS = [
    ("Getting Started with Async Python", "Technology"),
    ("A Slower Morning Routine", "Lifestyle"),
    ("How I Take Lecture Notes", "Education"),
]


def _document(text: str) -> dict:
    """Minimal editor document with a single paragraph."""
    return {
        "type": "doc",
        "content": [{"type": "paragraph", "content": [{"type": "text", "text": text}]}],
    }


async def seed(reset: bool = False, demo: bool = False):
    start = time.perf_counter()

    async with engine.begin() as conn:
        if reset:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        existing = set((await session.execute(select(Category.name))).scalars().all())
        created = 0
        for name, description in CATEGORIES:
            if name in existing:
                continue
            session.add(Category(name=name, slug=slugify(name), description=description))
            created += 1
        await session.flush()
        print(f"  Categories: {created} created, {len(existing)} already present")

        if demo:
            author = User(external_id="demo-author", email="demo@example.com", name="Demo Author")
            session.add(author)
            await session.flush()

            by_name = {
                c.name: c.id for c in (await session.execute(select(Category))).scalars().all()
            }
            for title, category in DEMO_POSTS:
                session.add(
                    Post(
                        title=title,
                        slug=slugify(title),
                        content=_document(f"{title}. A short demo post."),
                        status=PostStatus.PUBLISHED,
                        published_at=utcnow(),
                        author_id=author.id,
                        category_id=by_name[category],
                    )
                )
            await session.flush()
            print(f"  Demo: 1 author, {len(DEMO_POSTS)} published posts")

        await session.commit()

    await engine.dispose()
    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")


def main():
    parser = argparse.ArgumentParser(description="Seed the blog CMS database")
    parser.add_argument("--reset", action="store_true", help="Drop and recreate all tables first")
    parser.add_argument("--demo", action="store_true", help="Also create a demo author and posts")
    args = parser.parse_args()
    asyncio.run(seed(reset=args.reset, demo=args.demo))


if __name__ == "__main__":
    main()
