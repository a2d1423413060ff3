"""Settings for the Postboard service.

`load_settings()` builds one `Settings` instance at process start; the
application factory receives it explicitly and hands the relevant pieces to
the database, blob store and service objects.
"""

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_S3_KEYS = ("minioadmin", "MINIO_MINIOADMIN")


class Settings(BaseSettings):
    """Strongly-typed settings model loaded from env / .env.

    Notes:
        - `POSTGRES_DSN` is always required.
        - In `ENV=prod` the S3 credentials are required and MinIO's default
          `minioadmin` pair is rejected.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        protected_namespaces=()
    )

    ENV: str = Field(default="dev", description="Deployment environment, e.g. dev/staging/prod")
    SERVICE_NAME: str = Field(default="postboard", description="Service name")
    LOG_LEVEL: str = Field(default="INFO", description="Root logging level")

    POSTGRES_DSN: str = Field(..., description="Postgres connection DSN")
    DB_POOL_SIZE: int = Field(default=5, ge=1, description="Connection pool size")
    DB_ECHO: bool = Field(default=False, description="Echo SQL statements to the log")
    DB_AUTO_CREATE: bool = Field(default=True, description="Create tables on startup")

    BLOB_BACKEND: Literal["s3", "memory"] = Field(default="s3", description="Blob store backend")
    S3_ENDPOINT: str | None = Field(default=None, description="S3 endpoint URL (MinIO)")
    S3_BUCKET: str = Field(default="postboard-images", description="S3 bucket name")
    S3_ACCESS_KEY: str | None = Field(default=None, description="S3 access key")
    S3_SECRET_KEY: str | None = Field(default=None, description="S3 secret key")
    S3_REGION: str = Field(default="us-east-1", description="S3 region name")
    S3_AUTO_CREATE_BUCKET: bool = Field(default=False, description="Create the bucket on startup")

    MAX_IMAGE_BYTES: int = Field(default=5 * 1024 * 1024, ge=1, description="Largest accepted image upload")
    FRONTEND_ORIGINS: str = Field(
        default="http://localhost:4200",
        description="Comma-separated origins allowed by CORS",
    )

    @model_validator(mode="after")
    def _check_production_secrets(self) -> "Settings":
        if self.ENV != "prod" or self.BLOB_BACKEND != "s3":
            return self
        if not self.S3_ACCESS_KEY or not self.S3_SECRET_KEY:
            raise ValueError("S3_ACCESS_KEY/S3_SECRET_KEY must be set in production.")
        if self.S3_ACCESS_KEY in _INSECURE_S3_KEYS or self.S3_SECRET_KEY in _INSECURE_S3_KEYS:
            raise ValueError("S3_ACCESS_KEY/SECRET_KEY must not be 'minioadmin'.")
        return self

    @property
    def database_url(self) -> str:
        """Return the DSN rewritten for the asyncpg driver when needed."""
        dsn = self.POSTGRES_DSN
        if dsn.startswith("postgres://"):
            return dsn.replace("postgres://", "postgresql+asyncpg://", 1)
        if dsn.startswith("postgresql://"):
            return dsn.replace("postgresql://", "postgresql+asyncpg://", 1)
        return dsn

    @property
    def allowed_origins(self) -> list[str]:
        """Parsed `FRONTEND_ORIGINS`."""
        return [o.strip() for o in self.FRONTEND_ORIGINS.split(",") if o.strip()]


def load_settings(**overrides) -> Settings:
    """Build the process-wide `Settings` from the environment plus overrides."""
    return Settings(**overrides)
