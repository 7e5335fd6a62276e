"""
SQLAlchemy engine and session setup.

Usage in FastAPI route handlers:
    from procurement.database import get_db
    def my_route(db: Session = Depends(get_db)): ...

Usage in scripts:
    from procurement.database import SessionLocal
    with SessionLocal() as db:
        ...

Every write path goes through `transaction()` so that a mutation and its
audit record commit (or roll back) together.
"""

import logging
from collections.abc import Generator, Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from procurement.errors import ConflictError, ProcurementError, StorageError
from procurement.settings import settings

logger = logging.getLogger(__name__)


def build_engine(url: str, **kwargs) -> Engine:
    """Create an engine; pool sizing only applies to server databases."""
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    else:
        # pool_pre_ping=True: validates connections before use
        kwargs.setdefault("pool_pre_ping", True)
        kwargs.setdefault("pool_size", 5)
        kwargs.setdefault("max_overflow", 10)
    return create_engine(url, echo=settings.sql_echo, **kwargs)


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite ignores FOREIGN KEY clauses unless asked per connection.
    if type(dbapi_connection).__module__.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# ── Engine ─────────────────────────────────────────────────────────────────
engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    class_=Session,
)


# ── FastAPI dependency ──────────────────────────────────────────────────────
def get_db() -> Generator[Session, None, None]:
    """Yield a database session, ensuring it is closed after the request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# ── Unit of work ────────────────────────────────────────────────────────────
@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """
    Commit everything written inside the block as one unit.

    Domain errors roll back and propagate unchanged. Unique and foreign key
    violations surface as ConflictError; any other driver/ORM failure
    surfaces as StorageError.
    """
    try:
        yield db
        db.commit()
    except ProcurementError:
        db.rollback()
        raise
    except IntegrityError as exc:
        db.rollback()
        logger.warning("Integrity violation: %s", exc.orig)
        raise ConflictError("The change conflicts with an existing record") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Transaction rolled back")
        raise StorageError(f"Transaction failed: {exc.__class__.__name__}") from exc
    except Exception:
        db.rollback()
        raise


# ── Health check helper ─────────────────────────────────────────────────────
def check_db_connection() -> bool:
    """Return True if the database is reachable. Used by /health endpoint."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        return False
