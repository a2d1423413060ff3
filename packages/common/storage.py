"""Content-addressed blob storage for Postboard.

Blobs are keyed by the SHA-256 hex digest of their bytes, so writing the same
payload twice yields the same key and the second write is a no-op.

Two backends share the `BlobStore` protocol:
- `S3BlobStore`: boto3 S3 client against an S3-compatible endpoint (MinIO).
- `InMemoryBlobStore`: dict-backed store for development and testing.

All methods are blocking; async callers run them through `asyncio.to_thread`.
"""

from __future__ import annotations

import hashlib
import logging
import re
import threading
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import boto3
from botocore.client import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .config import Settings
from .errors import NotFound, StorageUnavailable

log = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"

_KEY_RE = re.compile(r"^[0-9a-f]{64}$")
_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


def content_key(data: bytes) -> str:
    """Return the content address (SHA-256 hex digest) of `data`."""
    return hashlib.sha256(data).hexdigest()


def is_content_key(key: str) -> bool:
    """Check that `key` looks like a key produced by `content_key`."""
    return bool(_KEY_RE.match(key))


def sniff_image_type(data: bytes) -> str | None:
    """Return the image media type recognised from magic bytes, if any."""
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return None


@dataclass(frozen=True)
class BlobObject:
    """A stored blob together with its media type."""

    key: str
    data: bytes
    content_type: str = DEFAULT_CONTENT_TYPE


@runtime_checkable
class BlobStore(Protocol):
    """Blob storage protocol."""

    def put(self, data: bytes, content_type: str | None = None) -> str:
        """Store bytes under their content key and return the key."""
        ...

    def get(self, key: str) -> bytes:
        """Return the bytes stored under `key`; raise `NotFound` if absent."""
        ...

    def open(self, key: str) -> BlobObject:
        """Return bytes and media type stored under `key`; raise `NotFound` if absent."""
        ...

    def exists(self, key: str) -> bool:
        """Check whether a blob exists."""
        ...

    def ensure_ready(self) -> None:
        """Prepare the backend (e.g. create the bucket) before serving."""
        ...

    def ping(self) -> None:
        """Raise `StorageUnavailable` when the backend cannot be reached."""
        ...


class InMemoryBlobStore:
    """In-memory blob store for development and testing."""

    def __init__(self) -> None:
        self._blobs: dict[str, BlobObject] = {}
        self._lock = threading.Lock()

    def put(self, data: bytes, content_type: str | None = None) -> str:
        key = content_key(data)
        with self._lock:
            if key not in self._blobs:
                self._blobs[key] = BlobObject(key, bytes(data), content_type or DEFAULT_CONTENT_TYPE)
        return key

    def get(self, key: str) -> bytes:
        return self.open(key).data

    def open(self, key: str) -> BlobObject:
        with self._lock:
            blob = self._blobs.get(key)
        if blob is None:
            raise NotFound(f"blob {key!r} not found", "The requested image does not exist.")
        return blob

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._blobs

    def ensure_ready(self) -> None:
        pass

    def ping(self) -> None:
        pass

    def __len__(self) -> int:
        with self._lock:
            return len(self._blobs)


class S3BlobStore:
    """Blob store on an S3-compatible bucket.

    Objects live under `prefix` + key. A `put` first checks for an existing
    object and skips the upload when found; racing puts of the same payload
    write identical bytes to the identical key.
    """

    def __init__(self, client, bucket: str, prefix: str = "images/", *, create_bucket: bool = False) -> None:
        """Initialize with a boto3 S3 client and target bucket.

        Args:
            client: A boto3 S3 client.
            bucket: Bucket holding the blobs.
            prefix: Key prefix inside the bucket.
            create_bucket: Create the bucket in `ensure_ready` when missing.
        """
        self._client = client
        self.bucket = bucket
        self.prefix = prefix
        self.create_bucket = create_bucket

    @classmethod
    def from_settings(cls, s: Settings) -> "S3BlobStore":
        """Build the S3 client and store from application settings."""
        client = boto3.client(
            "s3",
            endpoint_url=s.S3_ENDPOINT,
            aws_access_key_id=s.S3_ACCESS_KEY,
            aws_secret_access_key=s.S3_SECRET_KEY,
            config=BotoConfig(signature_version="s3v4"),
            region_name=s.S3_REGION,
        )
        return cls(client, s.S3_BUCKET, create_bucket=s.S3_AUTO_CREATE_BUCKET)

    def _object_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def put(self, data: bytes, content_type: str | None = None) -> str:
        """Upload bytes unless an object with the same content key already exists.

        Returns:
            The content key.
        """
        key = content_key(data)
        if self.exists(key):
            log.debug("blob %s already stored, skipping upload", key)
            return key
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=self._object_key(key),
                Body=data,
                ContentType=content_type or DEFAULT_CONTENT_TYPE,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageUnavailable(f"put_object {key} failed: {e}") from e
        log.info("stored blob %s (%d bytes)", key, len(data))
        return key

    def get(self, key: str) -> bytes:
        return self.open(key).data

    def open(self, key: str) -> BlobObject:
        """Download an object; unknown or malformed keys raise `NotFound`."""
        if not is_content_key(key):
            raise NotFound(f"malformed blob key {key!r}", "The requested image does not exist.")
        try:
            obj = self._client.get_object(Bucket=self.bucket, Key=self._object_key(key))
            data = obj["Body"].read()
        except ClientError as e:
            if _error_code(e) in _MISSING_CODES:
                raise NotFound(f"blob {key!r} not found", "The requested image does not exist.") from e
            raise StorageUnavailable(f"get_object {key} failed: {e}") from e
        except BotoCoreError as e:
            raise StorageUnavailable(f"get_object {key} failed: {e}") from e
        return BlobObject(key, data, obj.get("ContentType") or DEFAULT_CONTENT_TYPE)

    def exists(self, key: str) -> bool:
        try:
            self._client.head_object(Bucket=self.bucket, Key=self._object_key(key))
        except ClientError as e:
            if _error_code(e) in _MISSING_CODES:
                return False
            raise StorageUnavailable(f"head_object {key} failed: {e}") from e
        except BotoCoreError as e:
            raise StorageUnavailable(f"head_object {key} failed: {e}") from e
        return True

    def ensure_ready(self) -> None:
        """Create the bucket if configured to and it does not exist yet."""
        if not self.create_bucket:
            return
        try:
            self._client.head_bucket(Bucket=self.bucket)
            return
        except ClientError as e:
            if _error_code(e) not in _MISSING_CODES | {"NoSuchBucket"}:
                raise StorageUnavailable(f"head_bucket {self.bucket} failed: {e}") from e
        except BotoCoreError as e:
            raise StorageUnavailable(f"head_bucket {self.bucket} failed: {e}") from e
        try:
            self._client.create_bucket(Bucket=self.bucket)
        except (ClientError, BotoCoreError) as e:
            raise StorageUnavailable(f"create_bucket {self.bucket} failed: {e}") from e
        log.info("created bucket %s", self.bucket)

    def ping(self) -> None:
        try:
            self._client.head_bucket(Bucket=self.bucket)
        except (ClientError, BotoCoreError) as e:
            raise StorageUnavailable(f"head_bucket {self.bucket} failed: {e}") from e


def _error_code(e: ClientError) -> str:
    return str(e.response.get("Error", {}).get("Code", ""))


def build_blob_store(s: Settings) -> BlobStore:
    """Return the blob backend selected by `BLOB_BACKEND`."""
    if s.BLOB_BACKEND == "memory":
        return InMemoryBlobStore()
    return S3BlobStore.from_settings(s)
