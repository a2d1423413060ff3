"""SQLAlchemy models for the Posts service.

Defines one table:
- PostRecord: a user post with its vote score and optional image reference.
"""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from packages.common.db import Base
from packages.schemas.posts import AUTHOR_MAX_LENGTH, TITLE_MAX_LENGTH


class PostRecord(Base):
    """Storage shape of a post.

    Attributes:
        id: Primary key, assigned by the database.
        title: Post title (1..100 characters).
        body: Post text.
        author: Display name; "anonymous" when not given.
        score: Net vote count, changed only by +1/-1 increments.
        image_reference: SHA-256 content key of the attached image, if any.
        created_at: Insertion timestamp set by the database.
    """

    __tablename__ = "posts"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(TITLE_MAX_LENGTH))
    body: Mapped[str] = mapped_column(Text)
    author: Mapped[str] = mapped_column(String(AUTHOR_MAX_LENGTH))
    score: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    image_reference: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
