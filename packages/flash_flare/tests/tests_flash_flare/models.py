from decimal import Decimal
from typing import Any, Optional

from flash_flare.models import Model, TimestampMixin
from sqlalchemy import JSON, Boolean, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class User(Model, TimestampMixin):
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="pending")
    balance: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    settings: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)

    posts: Mapped[list["Post"]] = relationship("Post", back_populates="author")


class Post(Model, TimestampMixin):
    __tablename__ = "posts"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="draft")
    views: Mapped[int] = mapped_column(Integer, default=0)
    published: Mapped[bool] = mapped_column(Boolean, default=False)
    author_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )

    author: Mapped[Optional["User"]] = relationship("User", back_populates="posts")
    comments: Mapped[list["Comment"]] = relationship("Comment", back_populates="post")


class Comment(Model):
    __tablename__ = "comments"

    body: Mapped[str] = mapped_column(Text, nullable=False)
    approved: Mapped[bool] = mapped_column(Boolean, default=False)
    post_id: Mapped[int] = mapped_column(ForeignKey("posts.id", ondelete="CASCADE"))

    post: Mapped["Post"] = relationship("Post", back_populates="comments")


class LedgerBase(DeclarativeBase):
    """Separate base for models keyed by something other than ``id``."""


class Account(LedgerBase):
    __tablename__ = "accounts"

    code: Mapped[str] = mapped_column(String(20), primary_key=True)
    status: Mapped[str] = mapped_column(String(20), default="pending")
    balance: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
