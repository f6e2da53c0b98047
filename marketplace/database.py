import logging
from contextlib import asynccontextmanager, contextmanager
from typing import AsyncIterator, Iterator

from sqlalchemy import Table
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase

from marketplace.config import settings
from marketplace.exceptions import DomainError, PersistenceError
from marketplace.middleware import install_query_counter

logger = logging.getLogger(__name__)

# Module-level engine variable allows tests to override with a test engine.
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True,
)

# Register the per-request SQL query counter on the production engine.
install_query_counter(engine)

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


# ---------------------------------------------------------------------------
# Transaction boundaries
# ---------------------------------------------------------------------------

@asynccontextmanager
async def transaction(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Run a multi-statement write as one atomic unit on *db*.

    Precondition reads, the mutating statement and the re-read of the
    written row all belong inside the block.  On normal exit the session
    is committed; on any exception (task cancellation included) it is
    rolled back before the exception propagates, so the connection is
    never handed back mid-transaction.

    Domain errors raised inside the block pass through unchanged.  Raw
    SQLAlchemy errors, including those raised by the commit itself, are
    translated into ``PersistenceError``.
    """
    try:
        yield db
        await db.commit()
    except DomainError:
        await db.rollback()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.warning("Transaction rolled back after store error: %s", exc)
        raise PersistenceError("The operation could not be completed; please retry later.") from exc
    except BaseException:
        await db.rollback()
        raise


@contextmanager
def store_errors() -> Iterator[None]:
    """Translate raw store exceptions on read-only paths into ``PersistenceError``."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.warning("Read failed with store error: %s", exc)
        raise PersistenceError("The data store is currently unavailable.") from exc


def is_unique_violation(exc: IntegrityError, table: Table, constraint_name: str) -> bool:
    """
    True when *exc* was raised by the unique constraint *constraint_name*
    on *table*.

    PostgreSQL names the constraint in its message; SQLite lists the
    constrained columns instead.
    """
    message = str(exc.orig)
    if constraint_name in message:
        return True
    constraint = next(c for c in table.constraints if c.name == constraint_name)
    columns = [f"{table.name}.{column.name}" for column in constraint.columns]
    return "UNIQUE constraint failed" in message and all(col in message for col in columns)
