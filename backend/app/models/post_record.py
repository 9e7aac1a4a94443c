"""SQLAlchemy ORM models for the posts and post_media tables."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.db.base import Base


class PostRecord(Base):
    """One published post. ``id`` is the creation order key."""

    __tablename__ = "posts"
    __table_args__ = (
        Index("ix_posts_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    sender: Mapped[str] = mapped_column(String(64), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    media: Mapped[list["PostMediaRecord"]] = relationship(
        back_populates="post",
        order_by="PostMediaRecord.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class PostMediaRecord(Base):
    """A hosted media URL attached to a post, at a fixed display position."""

    __tablename__ = "post_media"
    __table_args__ = (
        UniqueConstraint("post_id", "position", name="uq_post_media_position"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    post_id: Mapped[int] = mapped_column(
        ForeignKey("posts.id", ondelete="CASCADE"), nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    url: Mapped[str] = mapped_column(String(2048), nullable=False)

    post: Mapped[PostRecord] = relationship(back_populates="media")
