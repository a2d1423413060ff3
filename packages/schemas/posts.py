"""Post schemas: wire shapes for creating, listing and voting on posts."""

from datetime import datetime
from typing import Optional

from pydantic import Base64Bytes, BaseModel, ConfigDict, Field

TITLE_MAX_LENGTH = 100
AUTHOR_MAX_LENGTH = 100
ANONYMOUS_AUTHOR = "anonymous"


class PostCreate(BaseModel):
    """Payload for creating a new post; `image` is base64 in JSON bodies."""
    title: str = Field(min_length=1, max_length=TITLE_MAX_LENGTH)
    body: str = Field(min_length=1)
    author: Optional[str] = Field(default=None, max_length=AUTHOR_MAX_LENGTH)
    image: Optional[Base64Bytes] = None


class PostOut(BaseModel):
    """A post as returned to clients."""
    model_config = ConfigDict(populate_by_name=True)

    id: int
    title: str
    body: str
    author: str
    score: int
    image_reference: Optional[str] = Field(default=None, alias="imageReference")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")


class VoteRequest(BaseModel):
    """Vote payload; `direction` is checked by the service."""
    direction: str


class ErrorDetail(BaseModel):
    userMessage: str
    internalMessage: str


class ErrorResponse(BaseModel):
    """Body of every non-2xx response."""
    error: ErrorDetail
