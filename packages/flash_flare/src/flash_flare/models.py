from __future__ import annotations

from datetime import datetime  # noqa: TC003

from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Model(DeclarativeBase):
    """
    Optional declarative base for models served by a FlareClient.
    Provides an integer ``id`` primary key.

    Any SQLAlchemy mapped class works with the client; this base only saves
    the boilerplate.

    Example:
        >>> class User(Model):
        ...     __tablename__ = "users"
        ...     name: Mapped[str] = mapped_column()
    """

    __abstract__ = True
    id: Mapped[int] = mapped_column(primary_key=True, index=True)


class TimestampMixin:
    """
    Mixin that adds ``created_at`` and ``updated_at`` fields to a model.

    ``created_at`` is the default sort key of ``QueryBuilder.first()`` and
    ``QueryBuilder.last()``.

    Example:
        >>> class Post(Model, TimestampMixin):
        ...     __tablename__ = "posts"
        ...     title: Mapped[str] = mapped_column()
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=func.now(),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )
