"""Dynamic SQLModel table loader for schema creation and Alembic migrations.

SQLModel tracks every table class on ``SQLModel.metadata`` once its module is
imported. This loader imports each ``table.py`` found under the entities
directory so the metadata is complete before ``create_all`` or autogenerate
runs.
"""

import importlib
from pathlib import Path

from loguru import logger
from sqlalchemy import MetaData
from sqlmodel import SQLModel


def get_entities_path() -> Path:
    """Get the path to the entities directory."""
    return Path(__file__).parent


def load_all_tables() -> None:
    """Import all table.py modules to register their SQLModel tables."""
    entities_path = get_entities_path()

    # e.g. 'src.artifact_store'
    package_base = __name__.rsplit(".", 2)[0]

    for table_file in sorted(entities_path.rglob("table.py")):
        relative_path = table_file.relative_to(entities_path)
        module_parts = relative_path.with_suffix("").parts
        module_name = f"{package_base}.entities.{'.'.join(module_parts)}"

        try:
            importlib.import_module(module_name)
            logger.debug(f"Imported tables from {module_name}")
        except ImportError as e:
            raise ImportError(
                f"Failed to import table module '{module_name}' from {table_file}: {e}"
            ) from e


def get_metadata() -> MetaData:
    """Load all tables and return SQLModel.metadata.

    Returns:
        SQLModel.metadata with all tables registered.
    """
    load_all_tables()
    return SQLModel.metadata
