"""Tests for Settings loading and validation."""

import json
import logging

import pytest
from pydantic import ValidationError

from packages.common.config import Settings, load_settings
from packages.common.logging import JSONFormatter, RequestContextFilter, set_request_id


def _settings(**kw) -> Settings:
    base = {"_env_file": None, "POSTGRES_DSN": "postgresql://u:p@db:5432/posts"}
    base.update(kw)
    return Settings(**base)


@pytest.mark.parametrize(
    "dsn, expected",
    [
        ("postgres://u:p@db/posts", "postgresql+asyncpg://u:p@db/posts"),
        ("postgresql://u:p@db/posts", "postgresql+asyncpg://u:p@db/posts"),
        ("postgresql+asyncpg://u:p@db/posts", "postgresql+asyncpg://u:p@db/posts"),
        ("sqlite+aiosqlite:///./local.db", "sqlite+aiosqlite:///./local.db"),
    ],
)
def test_database_url_uses_asyncpg(dsn, expected) -> None:
    assert _settings(POSTGRES_DSN=dsn).database_url == expected


def test_allowed_origins_parsing() -> None:
    s = _settings(FRONTEND_ORIGINS=" http://a.test , ,http://b.test")
    assert s.allowed_origins == ["http://a.test", "http://b.test"]


def test_prod_rejects_minio_default_credentials() -> None:
    with pytest.raises(ValidationError):
        _settings(ENV="prod", S3_ACCESS_KEY="minioadmin", S3_SECRET_KEY="minioadmin")


def test_prod_requires_s3_credentials() -> None:
    with pytest.raises(ValidationError):
        _settings(ENV="prod")


def test_prod_memory_backend_needs_no_credentials() -> None:
    assert _settings(ENV="prod", BLOB_BACKEND="memory").BLOB_BACKEND == "memory"


def test_load_settings_reads_environment(monkeypatch) -> None:
    monkeypatch.setenv("POSTGRES_DSN", "postgresql://env@db/posts")
    monkeypatch.setenv("MAX_IMAGE_BYTES", "2048")
    s = load_settings(_env_file=None)
    assert s.POSTGRES_DSN == "postgresql://env@db/posts"
    assert s.MAX_IMAGE_BYTES == 2048


def test_json_formatter_includes_request_id() -> None:
    record = logging.LogRecord("postboard.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
    set_request_id("rid-1")
    try:
        RequestContextFilter(service="postboard").filter(record)
    finally:
        set_request_id(None)
    line = json.loads(JSONFormatter().format(record))
    assert line["msg"] == "hello world"
    assert line["request_id"] == "rid-1"
    assert line["service"] == "postboard"
    assert line["level"] == "INFO"
    assert line["ts"].endswith("+00:00")


def test_json_formatter_omits_unset_context() -> None:
    record = logging.LogRecord("postboard.test", logging.WARNING, __file__, 1, "plain", (), None)
    RequestContextFilter().filter(record)
    line = json.loads(JSONFormatter().format(record))
    assert "request_id" not in line
    assert "service" not in line
    assert line["logger"] == "postboard.test"
