"""Repository layer for the Posts service.

Works on one scoped `AsyncSession`; the caller owns the transaction.
"""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from packages.common.errors import NotFound, ValidationError
from packages.schemas.posts import AUTHOR_MAX_LENGTH, TITLE_MAX_LENGTH
from .models import PostRecord

ALLOWED_DELTAS = (1, -1)

# posts.id is a 32-bit INTEGER column; larger ids cannot exist.
MAX_POST_ID = 2**31 - 1


def check_post_fields(title: str, body: str, author: str) -> None:
    """Raise `ValidationError` unless title, body and author fit the table.

    Whitespace-only titles and bodies count as empty. NUL characters are
    rejected because PostgreSQL text columns cannot store them.
    """
    for name, value in (("title", title), ("body", body), ("author", author)):
        if "\x00" in value:
            raise ValidationError(f"NUL character in {name}", f"{name.capitalize()} must not contain NUL characters.")
    if not title or not title.strip():
        raise ValidationError("empty title", "Title must not be empty.")
    if len(title) > TITLE_MAX_LENGTH:
        raise ValidationError(
            f"title length {len(title)} > {TITLE_MAX_LENGTH}",
            f"Title must be at most {TITLE_MAX_LENGTH} characters.",
        )
    if not body or not body.strip():
        raise ValidationError("empty body", "Body must not be empty.")
    if len(author) > AUTHOR_MAX_LENGTH:
        raise ValidationError(
            f"author length {len(author)} > {AUTHOR_MAX_LENGTH}",
            f"Author must be at most {AUTHOR_MAX_LENGTH} characters.",
        )


class PostRepository:
    """CRUD helpers plus the atomic score update for `PostRecord` rows."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(
        self,
        title: str,
        body: str,
        author: str,
        image_reference: str | None = None,
    ) -> PostRecord:
        """Insert a new post with score 0 and return the persisted row.

        Args:
            title: Post title.
            body: Post text.
            author: Display name (already defaulted by the caller).
            image_reference: Content key of a stored image, if any.

        Returns:
            The freshly persisted PostRecord with its assigned id.

        Raises:
            ValidationError: If a field is empty or too long.
        """
        check_post_fields(title, body, author)
        post = PostRecord(
            title=title,
            body=body,
            author=author,
            score=0,
            image_reference=image_reference,
        )
        self.session.add(post)
        await self.session.flush()
        await self.session.refresh(post)
        return post

    async def list(self) -> list[PostRecord]:
        """Return all posts in insertion order."""
        res = await self.session.execute(select(PostRecord).order_by(PostRecord.id))
        return list(res.scalars())

    async def adjust_score(self, post_id: int, delta: int) -> PostRecord:
        """Add `delta` (+1 or -1) to a post's score in a single UPDATE statement.

        The increment is evaluated by the database (`score = score + :delta`)
        so concurrent votes never overwrite each other.

        Raises:
            ValidationError: If `delta` is not +1 or -1.
            NotFound: If no post has `post_id`.
        """
        if delta not in ALLOWED_DELTAS:
            raise ValidationError(f"score delta {delta!r} not in {ALLOWED_DELTAS}", "Votes change the score by one.")
        if not 1 <= post_id <= MAX_POST_ID:
            raise NotFound(f"post {post_id} outside id range", "The post does not exist.")
        stmt = (
            update(PostRecord)
            .where(PostRecord.id == post_id)
            .values(score=PostRecord.score + delta)
            .returning(PostRecord)
            .execution_options(populate_existing=True)
        )
        res = await self.session.execute(stmt)
        post = res.scalar_one_or_none()
        if post is None:
            raise NotFound(f"post {post_id} not found", "The post does not exist.")
        return post
