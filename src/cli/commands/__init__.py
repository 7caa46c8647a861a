"""CLI command groups."""

from .storage import app as storage_app

__all__ = ["storage_app"]
