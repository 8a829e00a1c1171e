import logging

from sqlalchemy import event
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase

from blog_cms.config import settings
from blog_cms.errors import Conflict

logger = logging.getLogger(__name__)


def enable_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    """
    Turn on ``PRAGMA foreign_keys`` for every new SQLite connection.

    SQLite ignores FOREIGN KEY clauses unless this pragma is set per
    connection, which would silently disable the RESTRICT guard on
    ``posts.category_id``.  No-op for any other dialect.

    Must be called once per engine (production engine below, test engine
    in ``conftest.py``).
    """
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine.sync_engine, "connect")
    def _set_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Module-level engine variable allows tests to override with a test engine.
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True,
)
enable_sqlite_foreign_keys(engine)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def get_db():
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def insert_ignoring_duplicates(db: AsyncSession, table, rows: list[dict]) -> None:
    """
    Insert *rows* into *table*, silently skipping any row that violates a
    unique constraint.

    This lets the storage layer arbitrate create-or-get races: whichever
    request inserts first wins and every other request simply re-reads.
    """
    if not rows:
        return
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert

        stmt = insert(table).values(rows).on_conflict_do_nothing()
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert

        stmt = insert(table).values(rows).on_conflict_do_nothing()
    elif dialect in ("mysql", "mariadb"):
        from sqlalchemy.dialects.mysql import insert

        stmt = insert(table).values(rows).prefix_with("IGNORE")
    else:
        raise NotImplementedError(f"insert_ignoring_duplicates does not support {dialect!r}")
    await db.execute(stmt)


async def flush_or_conflict(db: AsyncSession, message: str, field: str = "_form") -> None:
    """
    Flush pending changes, turning a unique-constraint violation that
    slipped past the service-level checks (a concurrent writer) into a
    ``Conflict``.  The session's transaction is rolled back in that case.
    """
    try:
        await db.flush()
    except IntegrityError as exc:
        await db.rollback()
        logger.info("Unique constraint violated on flush: %s", exc.orig)
        raise Conflict(message, field=field) from exc
