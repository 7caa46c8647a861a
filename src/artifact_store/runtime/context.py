"""Process-wide access to the loaded configuration."""

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from functools import lru_cache

from src.artifact_store.runtime.config.config_data import ConfigData
from src.artifact_store.runtime.config.config_loader import load_config

_config_override: ContextVar[ConfigData | None] = ContextVar(
    "config_override", default=None
)


@lru_cache(maxsize=1)
def _load_default_config() -> ConfigData:
    return load_config()


def get_config() -> ConfigData:
    """Return the active configuration.

    An override installed with :func:`with_context` takes precedence over the
    configuration file, which is read once and cached.
    """
    override = _config_override.get()
    if override is not None:
        return override
    return _load_default_config()


@contextmanager
def with_context(config_override: ConfigData | None = None) -> Iterator[ConfigData]:
    """Run a block with an explicit configuration in place of the file-based one."""
    token = _config_override.set(config_override)
    try:
        yield get_config()
    finally:
        _config_override.reset(token)
