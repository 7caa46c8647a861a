"""Configuration loading with environment variable substitution."""

import os
from pathlib import Path
from typing import Any, Literal, overload

import yaml
from loguru import logger
from pydantic_core import ValidationError

from src.artifact_store.runtime.config.config_data import ConfigData
from src.artifact_store.runtime.config.config_utils import substitute_env_vars

CONFIG_PATH = Path(os.getenv("ARTIFACT_STORE_CONFIG", "config.yaml"))


@overload
def load_config(file_path: Path = ..., *, processed: None) -> ConfigData: ...


@overload
def load_config(
    file_path: Path = ..., *, processed: Literal[False]
) -> dict[str, Any]: ...


@overload
def load_config(
    file_path: Path = ..., processed: Literal[True] = ...
) -> ConfigData: ...


def load_config(
    file_path: Path | None = None, processed: bool | None = True
) -> ConfigData | dict[str, Any]:
    """
    Load a YAML file with environment variable substitution.

    Args:
        file_path: Path to the YAML file (default: CONFIG_PATH)
        processed: Whether to substitute environment variables and validate.
                  - True (default): substitute env vars and validate as ConfigData
                  - False: return raw dict without validation or substitution
                  - None: substitute env vars and validate as ConfigData

    Returns:
        ConfigData if processed is True or None, raw dict if processed is False

    Raises:
        ValueError: If required environment variables are missing, validation fails,
                   or YAML structure is invalid (missing 'config' key)
        FileNotFoundError: If the YAML file doesn't exist

    Side Effects (when processed=True or None):
        Mutates os.environ by setting environment variables derived from
        {ENV_MODE}_* prefixed variables (e.g., PRODUCTION_POSTGRES_HOST -> POSTGRES_HOST),
        where ENV_MODE is read from APP_ENVIRONMENT (default: 'development').
    """
    with open(file_path or CONFIG_PATH) as f:
        content = f.read()

    env_mode = os.getenv("APP_ENVIRONMENT", "development")

    if processed is None:
        processed = True

    if processed:
        logger.info(f"Loading configuration for environment: {env_mode}")

        env_variables = [
            (var, value)
            for var, value in os.environ.items()
            if var.startswith(f"{env_mode.upper()}_")
        ]
        logger.info(f"Applying {len(env_variables)} environment-specific overrides")
        logger.debug(f"Override keys: {[var for var, _ in env_variables]}")

        for var_name, var_value in env_variables:
            new_var_name = var_name[len(f"{env_mode.upper()}_") :]
            os.environ[new_var_name] = var_value
            logger.debug(f"Set environment variable {new_var_name} from {var_name}")

        content = substitute_env_vars(content)

    try:
        loaded: dict[str, Any] = yaml.safe_load(content)
        if not processed:
            return loaded
        if not loaded:
            raise ValueError("Failed to parse YAML")
    except yaml.YAMLError as e:
        raise ValueError(f"Error parsing YAML: {e}") from e

    try:
        if "config" not in loaded:
            raise ValueError("Invalid YAML structure: missing 'config' key")
        config = ConfigData(**(loaded["config"] or {}))
    except ValidationError as e:
        raise ValueError(f"Invalid configuration: {e}") from e

    logger.debug(f"Configured storage backend: {config.storage.backend}")
    return config


def _string_representer(dumper: yaml.SafeDumper, data: str) -> yaml.ScalarNode:
    """Quote strings that hold ${...} placeholders or look like numbers."""
    if "${" in data or data.isdigit():
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style='"')
    return dumper.represent_scalar("tag:yaml.org,2002:str", data)


def save_config(config: ConfigData | dict[str, Any]) -> None:
    """Save the given configuration to CONFIG_PATH.

    Writes to a temporary file first and renames it over the target so a
    failed write never leaves a truncated config behind.

    Args:
        config: ConfigData instance or raw dict to save.
    """
    temp_path = CONFIG_PATH.with_suffix(".tmp")

    class QuotedDumper(yaml.SafeDumper):
        pass

    QuotedDumper.add_representer(str, _string_representer)

    serialized: Any = config
    if isinstance(config, ConfigData):
        serialized = {"config": config.model_dump(mode="json")}

    with open(temp_path, "w") as f:
        yaml.dump(
            serialized,
            f,
            Dumper=QuotedDumper,
            default_flow_style=False,
            sort_keys=False,
            indent=2,
        )
    temp_path.replace(CONFIG_PATH)
