"""Typed configuration models loaded from ``config.yaml``."""

from enum import Enum

from pydantic import BaseModel, Field

DEFAULT_POSTGRES_PORT = 5432


class BackendKind(str, Enum):
    """Storage backends the adapter factory can select."""

    POSTGRES = "postgres"
    MONGODB = "mongodb"
    REDIS = "redis"
    MEMORY = "memory"


class AppConfig(BaseModel):
    name: str = "artifact-store"
    environment: str = "development"


class LoggingConfig(BaseModel):
    """Log sink settings.

    Attributes:
        level: Minimum level emitted (DEBUG, INFO, WARNING, ERROR)
        json_output: Serialize records as JSON lines instead of text
    """

    level: str = "INFO"
    json_output: bool = False


class PostgresConfig(BaseModel):
    """Relational backend connection and pool settings.

    Either ``url`` is given, or the URL is assembled from host, port, user,
    password and database. A missing port falls back to 5432.
    """

    url: str | None = None
    driver: str = "postgresql+asyncpg"
    host: str = "localhost"
    port: int | None = None
    user: str = "postgres"
    password: str | None = None
    database: str = "oidc"
    pool_size: int = Field(default=10, ge=1)
    max_overflow: int = Field(default=0, ge=0)
    pool_timeout: float = Field(default=30.0, gt=0)
    echo: bool = False
    create_schema: bool = False


class RedisConfig(BaseModel):
    url: str = "redis://localhost:6379/0"
    password: str | None = None
    key_prefix: str = "oidc:"


class MongoConfig(BaseModel):
    url: str = "mongodb://localhost:27017"
    database: str = "oidc"
    collection: str = "artifact_store"


class StorageConfig(BaseModel):
    """Backend selection.

    ``backend`` is kept as a plain string so that an unrecognized value
    reaches the adapter factory, which rejects it as a fatal error.
    """

    backend: str = BackendKind.MEMORY.value
    postgres: PostgresConfig = Field(default_factory=PostgresConfig)
    redis: RedisConfig = Field(default_factory=RedisConfig)
    mongodb: MongoConfig = Field(default_factory=MongoConfig)


class ConfigData(BaseModel):
    """Root of the ``config:`` section."""

    app: AppConfig = Field(default_factory=AppConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
