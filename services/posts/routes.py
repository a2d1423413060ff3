# services/posts/routes.py
"""HTTP routes for posts, votes and images."""

import json

import pydantic
from fastapi import APIRouter, Depends, Request, Response, status
from starlette.datastructures import UploadFile

from packages.common.errors import ValidationError, describe_validation_errors
from packages.schemas.posts import ErrorResponse, PostCreate, PostOut, VoteRequest
from .service import PostService

router = APIRouter(tags=["posts"])

_ERRORS = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}

IMAGE_CACHE_CONTROL = "public, max-age=31536000, immutable"


def get_service(request: Request) -> PostService:
    return request.app.state.post_service


def _validate_draft(data: dict) -> PostCreate:
    try:
        return PostCreate.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError(str(e), describe_validation_errors(e.errors())) from e


async def read_post_draft(request: Request) -> tuple[PostCreate, bytes | None, str | None]:
    """Parse a create-post request sent as multipart/form data or JSON.

    Returns:
        The validated fields, the image bytes (or None) and the declared
        image content type.
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
        form = await request.form()
        image = form.get("image")
        fields = {k: form.get(k) for k in ("title", "body", "author") if form.get(k) is not None}
        if isinstance(image, str):
            # base64 text field, decoded the same way as the JSON body
            fields["image"] = image
        draft = _validate_draft(fields)
        if isinstance(image, UploadFile):
            # one byte past the cap is enough for the service to reject it
            limit = request.app.state.settings.MAX_IMAGE_BYTES
            data = await image.read(limit + 1)
            return draft, data or None, image.content_type
        return draft, draft.image, None

    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError(f"undecodable JSON body: {e}", "Request body must be valid JSON.") from e
    if not isinstance(payload, dict):
        raise ValidationError("JSON body is not an object", "Request body must be a JSON object.")
    draft = _validate_draft(payload)
    return draft, draft.image, None


@router.post(
    "/posts",
    response_model=PostOut,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
    summary="Create a post",
)
async def create_post(request: Request, service: PostService = Depends(get_service)) -> PostOut:
    """Create a post from a JSON or multipart body, with an optional image."""
    draft, image_bytes, image_type = await read_post_draft(request)
    return await service.add_post(
        draft.title,
        draft.body,
        author=draft.author,
        image_bytes=image_bytes,
        image_content_type=image_type,
    )


@router.get("/posts", response_model=list[PostOut], responses=_ERRORS, summary="List posts")
async def list_posts(service: PostService = Depends(get_service)) -> list[PostOut]:
    return await service.list_posts()


@router.post("/posts/{post_id}/vote", response_model=PostOut, responses=_ERRORS, summary="Vote on a post")
async def vote(post_id: int, payload: VoteRequest, service: PostService = Depends(get_service)) -> PostOut:
    """Apply an up or down vote and return the updated post."""
    return await service.vote(post_id, payload.direction)


@router.get(
    "/images/{key}",
    response_class=Response,
    responses={200: {"content": {"image/*": {}}}, 404: {"model": ErrorResponse}},
    summary="Fetch an image by content key",
)
async def get_image(key: str, service: PostService = Depends(get_service)) -> Response:
    blob = await service.get_image(key)
    return Response(
        content=blob.data,
        media_type=blob.content_type,
        headers={"ETag": f'"{blob.key}"', "Cache-Control": IMAGE_CACHE_CONTROL},
    )
