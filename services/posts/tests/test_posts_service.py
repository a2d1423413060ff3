"""Tests for PostService business rules."""

import asyncio

import pytest

from packages.common.errors import NotFound, StorageUnavailable, ValidationError
from packages.common.db import Database
from packages.common.storage import content_key
from services.posts.service import PostService

from conftest import PNG_BYTES


@pytest.mark.asyncio
@pytest.mark.parametrize("length", [1, 2, 99, 100])
async def test_add_post_valid_titles_start_at_zero(service, length) -> None:
    post = await service.add_post("t" * length, "body")
    assert post.score == 0
    assert post.title == "t" * length


@pytest.mark.asyncio
@pytest.mark.parametrize("title", ["", "t" * 101])
async def test_add_post_invalid_title_fails(service, title) -> None:
    with pytest.raises(ValidationError):
        await service.add_post(title, "body")
    assert await service.list_posts() == []


@pytest.mark.asyncio
async def test_add_then_list_returns_exactly_that_post(service) -> None:
    await service.add_post("T", "B")
    posts = await service.list_posts()
    assert len(posts) == 1
    assert (posts[0].title, posts[0].body, posts[0].score) == ("T", "B", 0)


@pytest.mark.asyncio
@pytest.mark.parametrize("author", [None, "", "   "])
async def test_missing_author_becomes_anonymous(service, author) -> None:
    post = await service.add_post("T", "B", author=author)
    assert post.author == "anonymous"


@pytest.mark.asyncio
async def test_vote_up_then_down_round_trips(service) -> None:
    post = await service.add_post("T", "B")
    assert (await service.vote(post.id, "up")).score == 1
    assert (await service.vote(post.id, "down")).score == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("direction", ["sideways", "UP", "", "+1"])
async def test_vote_rejects_unknown_direction(service, direction) -> None:
    post = await service.add_post("T", "B")
    with pytest.raises(ValidationError):
        await service.vote(post.id, direction)
    (stored,) = await service.list_posts()
    assert stored.score == 0


@pytest.mark.asyncio
async def test_vote_unknown_post_creates_nothing(service) -> None:
    with pytest.raises(NotFound):
        await service.vote(999, "up")
    assert await service.list_posts() == []


@pytest.mark.asyncio
@pytest.mark.parametrize("ups, downs", [(20, 0), (0, 7), (25, 10), (13, 13)])
async def test_concurrent_votes_sum_exactly(service, ups, downs) -> None:
    post = await service.add_post("T", "B")
    calls = [service.vote(post.id, "up") for _ in range(ups)]
    calls += [service.vote(post.id, "down") for _ in range(downs)]
    await asyncio.gather(*calls)
    (stored,) = await service.list_posts()
    assert stored.score == ups - downs


@pytest.mark.asyncio
async def test_image_is_stored_by_content_key(service, blobs) -> None:
    post = await service.add_post("T", "B", image_bytes=PNG_BYTES, image_content_type="image/png")
    assert post.image_reference == content_key(PNG_BYTES)
    blob = await service.get_image(post.image_reference)
    assert blob.data == PNG_BYTES
    assert blob.content_type == "image/png"


@pytest.mark.asyncio
async def test_same_image_twice_shares_one_blob(service, blobs) -> None:
    first = await service.add_post("one", "B", image_bytes=PNG_BYTES)
    second = await service.add_post("two", "B", image_bytes=PNG_BYTES)
    assert first.image_reference == second.image_reference
    assert len(blobs) == 1


@pytest.mark.asyncio
async def test_empty_image_counts_as_absent(service, blobs) -> None:
    post = await service.add_post("T", "B", image_bytes=b"")
    assert post.image_reference is None
    assert len(blobs) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [b"not an image at all", PNG_BYTES + b"\x00" * 2048])
async def test_bad_images_are_rejected_before_upload(service, blobs, payload) -> None:
    with pytest.raises(ValidationError):
        await service.add_post("T", "B", image_bytes=payload)
    assert len(blobs) == 0
    assert await service.list_posts() == []


@pytest.mark.asyncio
async def test_invalid_post_does_not_upload_image(service, blobs) -> None:
    with pytest.raises(ValidationError):
        await service.add_post("", "B", image_bytes=PNG_BYTES)
    assert len(blobs) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("key", ["0" * 64, "../etc/passwd", "abc"])
async def test_get_image_unknown_key(service, key) -> None:
    with pytest.raises(NotFound):
        await service.get_image(key)


@pytest.mark.asyncio
async def test_unreachable_database_is_storage_unavailable(blobs, tmp_path) -> None:
    db = Database(f"sqlite+aiosqlite:///{tmp_path}/missing/dir/posts.db")
    service = PostService(db, blobs, 1024)
    try:
        with pytest.raises(StorageUnavailable):
            await service.list_posts()
    finally:
        await db.dispose()
