from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

from loguru import logger
from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from progress_engine.config import get_settings
from progress_engine.db.models import Base

_engine: Engine | None = None
_SessionLocal: sessionmaker[Session] | None = None


SQLITE_ISOLATION_LEVELS = frozenset({"SERIALIZABLE", "READ UNCOMMITTED", "AUTOCOMMIT"})


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str, echo: bool = False, isolation_level: str | None = None) -> Engine:
    """
    Create an engine for `url`.

    In-memory SQLite gets a StaticPool so every session sees the same database.
    SQLite connections enforce foreign keys and only accept the isolation
    levels pysqlite supports; anything else falls back to the driver default.
    """
    kwargs: dict = {"echo": echo}
    is_sqlite = url.startswith("sqlite")

    if isolation_level:
        if is_sqlite and isolation_level not in SQLITE_ISOLATION_LEVELS:
            logger.warning(
                f"Isolation level {isolation_level} is not supported by SQLite, using the default"
            )
        else:
            kwargs["isolation_level"] = isolation_level

    if is_sqlite:
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True

    engine = create_engine(url, **kwargs)
    if is_sqlite:
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def get_engine() -> Engine:
    """Get or create the configured engine (lazy initialization)."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = build_engine(
            settings.database_url,
            echo=settings.database_echo,
            isolation_level=settings.isolation_level,
        )
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = build_session_factory(get_engine())
    return _SessionLocal


def reset_engine() -> None:
    """Dispose the cached engine so the next call re-reads settings."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


def init_db(engine: Engine | None = None) -> None:
    """Initialize database tables."""
    Base.metadata.create_all(bind=engine or get_engine())
    logger.info("Database tables initialized")


@contextmanager
def session_scope(
    session_factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """Provide a transactional scope around a series of operations."""
    session = (session_factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:  # Intentionally broad - rollback on any error before re-raising
        session.rollback()
        raise
    finally:
        session.close()
