import logging
from typing import TypeVar

from sqlalchemy import Select, event
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from cargoledger.config import settings
from cargoledger.errors import TransientStoreError

logger = logging.getLogger("cargoledger.database")

T = TypeVar("T")


def enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """Let pysqlite/aiosqlite emit BEGIN and SAVEPOINT itself.

    The sqlite3 driver manages transactions on its own and breaks
    SAVEPOINT semantics unless its implicit handling is switched off.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(url: str) -> AsyncEngine:
    if url.startswith("sqlite"):
        engine = create_async_engine(url, echo=False)
        enable_sqlite_savepoints(engine)
        return engine
    return create_async_engine(url, echo=False, pool_pre_ping=True)


engine = build_engine(settings.database_url)
async_session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db():
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def insert_or_fetch(db: AsyncSession, instance: T, lookup: Select) -> tuple[T, bool]:
    """Insert ``instance`` under a savepoint, or return the row that beat us to it.

    Returns (row, created). A unique-constraint conflict rolls back only the
    savepoint, so the surrounding unit of work stays usable.
    """
    try:
        async with db.begin_nested():
            db.add(instance)
        return instance, True
    except IntegrityError:
        existing = (await db.execute(lookup)).scalar_one_or_none()
        if existing is None:
            raise
        logger.debug("Insert conflict resolved by re-read: %s", type(instance).__name__)
        return existing, False


def is_transient(exc: BaseException) -> bool:
    if isinstance(exc, TransientStoreError):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return isinstance(exc, OperationalError)
