"""Relational schema for persisted artifacts."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Column, DateTime, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

# JSONB on PostgreSQL so payload fields are queryable and patchable in place
PayloadType = JSON().with_variant(JSONB(), "postgresql")


class ArtifactRecord(SQLModel, table=True):
    """One row per stored artifact, all kinds sharing the table."""

    __tablename__ = "artifact_store"

    id: str = Field(sa_column=Column(String, primary_key=True))
    kind: str = Field(sa_column=Column(String, nullable=False))
    payload: dict[str, Any] = Field(sa_column=Column(PayloadType, nullable=False))
    grant_id: str | None = Field(
        default=None, sa_column=Column(String, nullable=True, index=True)
    )
    uid: str | None = Field(
        default=None, sa_column=Column(String, nullable=True, index=True)
    )
    user_code: str | None = Field(
        default=None, sa_column=Column(String, nullable=True, index=True)
    )
    expires_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True, index=True)
    )
    consumed_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
