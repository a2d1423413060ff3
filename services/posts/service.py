"""Post service: business rules between the API surface and storage.

Each operation runs in its own scoped session. Images are written to the blob
store before the post row, so a stored `image_reference` always resolves.
"""

import asyncio
import logging

from packages.common.db import Database
from packages.common.errors import NotFound, ValidationError
from packages.common.storage import BlobObject, BlobStore, is_content_key, sniff_image_type
from packages.schemas.posts import ANONYMOUS_AUTHOR, PostOut
from . import metrics
from .models import PostRecord
from .repo import PostRepository, check_post_fields

log = logging.getLogger(__name__)

VOTE_DELTAS = {"up": 1, "down": -1}


def to_post_out(post: PostRecord) -> PostOut:
    """Translate a storage row into the wire shape."""
    return PostOut(
        id=post.id,
        title=post.title,
        body=post.body,
        author=post.author,
        score=post.score,
        image_reference=post.image_reference,
        created_at=post.created_at,
    )


class PostService:
    """Create, list and vote on posts."""

    def __init__(self, database: Database, blobs: BlobStore, max_image_bytes: int) -> None:
        self.database = database
        self.blobs = blobs
        self.max_image_bytes = max_image_bytes

    async def add_post(
        self,
        title: str,
        body: str,
        author: str | None = None,
        image_bytes: bytes | None = None,
        image_content_type: str | None = None,
    ) -> PostOut:
        """Validate and store a post, uploading its image first when given.

        Args:
            title: Post title (1..100 characters).
            body: Non-empty post text.
            author: Display name; blank or missing becomes "anonymous".
            image_bytes: Optional image payload; empty bytes count as no image.
            image_content_type: Media type declared by the client.

        Returns:
            The created post with `score == 0`.

        Raises:
            ValidationError: Invalid fields or unsupported image.
            StorageUnavailable: Database or blob store unreachable.
        """
        author = author.strip() if author and author.strip() else ANONYMOUS_AUTHOR
        check_post_fields(title, body, author)

        image_reference = None
        if image_bytes:
            content_type = self._check_image(image_bytes, image_content_type)
            image_reference = await asyncio.to_thread(self.blobs.put, image_bytes, content_type)
            metrics.images_stored.inc()

        async with self.database.session_scope() as session:
            post = await PostRepository(session).create(title, body, author, image_reference)
            out = to_post_out(post)
        metrics.posts_created.inc()
        log.info("created post id=%s image=%s", out.id, image_reference or "-")
        return out

    async def list_posts(self) -> list[PostOut]:
        """Return every post in insertion order."""
        async with self.database.session_scope() as session:
            posts = await PostRepository(session).list()
            return [to_post_out(p) for p in posts]

    async def vote(self, post_id: int, direction: str) -> PostOut:
        """Apply an "up" (+1) or "down" (-1) vote and return the updated post.

        Raises:
            ValidationError: `direction` is not "up" or "down".
            NotFound: No post has `post_id`.
        """
        delta = VOTE_DELTAS.get(direction)
        if delta is None:
            raise ValidationError(
                f"invalid vote direction {direction!r}",
                'Vote direction must be "up" or "down".',
            )
        async with self.database.session_scope() as session:
            post = await PostRepository(session).adjust_score(post_id, delta)
            out = to_post_out(post)
        metrics.votes_cast.labels(direction=direction).inc()
        return out

    async def get_image(self, key: str) -> BlobObject:
        """Fetch a stored image by content key."""
        if not is_content_key(key):
            raise NotFound(f"malformed image key {key!r}", "The requested image does not exist.")
        return await asyncio.to_thread(self.blobs.open, key)

    def _check_image(self, data: bytes, declared: str | None) -> str:
        if len(data) > self.max_image_bytes:
            raise ValidationError(
                f"image size {len(data)} > {self.max_image_bytes}",
                f"Images must be at most {self.max_image_bytes // 1024} KiB.",
            )
        sniffed = sniff_image_type(data)
        if sniffed is None:
            raise ValidationError(
                f"unrecognised image payload (declared {declared!r})",
                "Images must be PNG, JPEG, GIF or WEBP.",
            )
        return sniffed
