from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

if TYPE_CHECKING:
    from flash_core import FlashSettings


def _enable_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    """
    Enable SQLite foreign key enforcement for every DBAPI connection.
    """

    @event.listens_for(engine.sync_engine.pool, "connect")  # pragma: no cover
    def _set_sqlite_pragma(dbapi_connection, _):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def normalize_url(database_url: str) -> str:
    """
    Map plain driver-less URLs onto their asyncio drivers.

    >>> normalize_url("postgresql://localhost/app")
    'postgresql+asyncpg://localhost/app'
    >>> normalize_url("sqlite:///app.db")
    'sqlite+aiosqlite:///app.db'
    """
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if database_url.startswith("sqlite://"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return database_url


def create_engine(
    database_url: str,
    *,
    echo: bool = False,
    **engine_kwargs: Any,
) -> AsyncEngine:
    """
    Create the asynchronous SQLAlchemy engine a FlareClient runs on.

    Args:
        database_url: The connection URL (e.g., 'sqlite+aiosqlite:///db.sqlite3').
        echo: If True, SQLAlchemy will log all emitted SQL.
        **engine_kwargs: Additional keyword arguments passed to `create_async_engine`.

    Example:
        >>> engine = create_engine("sqlite+aiosqlite:///db.sqlite3")
    """
    database_url = normalize_url(database_url)
    is_sqlite = database_url.startswith("sqlite")

    options: dict[str, Any] = {
        "echo": echo,
        **engine_kwargs,
    }

    if is_sqlite:
        # SQLite does not support pooling options
        options.pop("pool_size", None)
        options.pop("max_overflow", None)
        options.pop("pool_pre_ping", None)
        options.setdefault("connect_args", {"check_same_thread": False})
    else:
        options.setdefault("pool_pre_ping", True)

    engine = create_async_engine(database_url, **options)

    if is_sqlite:
        _enable_sqlite_foreign_keys(engine)

    return engine


def create_engine_from_settings(settings: FlashSettings) -> AsyncEngine:
    """
    Build an engine from ``DATABASE_URL`` and the pool settings.

    Raises:
        RuntimeError: If ``DATABASE_URL`` is not configured.
    """
    if not settings.DATABASE_URL:
        msg = "DATABASE_URL is not configured."
        raise RuntimeError(msg)
    return create_engine(
        settings.DATABASE_URL,
        echo=settings.DB_ECHO,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Session factory used by model delegates.

    Sessions keep loaded state after commit so returned rows can be read
    without another round-trip.
    """
    return async_sessionmaker(
        bind=engine,
        expire_on_commit=False,
        autoflush=False,
    )
