import os
import re
from collections.abc import Iterable
from pathlib import Path

from loguru import logger

_SECRETS_LOADED = False

# Most systems cap environment values well above this; stay conservative
MAX_SECRET_SIZE = 32768

_PLACEHOLDER = re.compile(r"\$\{([^}]+)\}")


def _get_project_root() -> Path:
    return Path(__file__).resolve().parents[4]


def _candidate_secret_dirs() -> Iterable[Path]:
    custom_dir = os.getenv("SECRETS_KEYS_DIR")
    if custom_dir:
        yield Path(custom_dir)
    yield _get_project_root() / "secrets" / "keys"


def _secret_env_name(file_path: Path) -> str:
    name = file_path.stem.upper()
    return "".join(c if c.isalnum() or c == "_" else "_" for c in name)


def _load_secret_files_into_env() -> None:
    """Expose files of the first existing secrets directory as environment variables.

    ``secrets/keys/postgres_password`` becomes ``POSTGRES_PASSWORD``. Variables
    already present in the environment win over files.
    """
    global _SECRETS_LOADED
    if _SECRETS_LOADED:
        return

    for directory in _candidate_secret_dirs():
        if not directory.is_dir():
            continue

        for file_path in directory.iterdir():
            if not file_path.is_file():
                continue

            env_name = _secret_env_name(file_path)
            if not env_name or env_name in os.environ:
                continue

            try:
                if file_path.stat().st_size > MAX_SECRET_SIZE:
                    logger.warning(
                        f"Secret file {file_path.name} exceeds {MAX_SECRET_SIZE} bytes, skipping"
                    )
                    continue
                value = file_path.read_text(encoding="utf-8").strip()
            except OSError as exc:
                logger.warning(f"Unable to read secret file {file_path}: {exc}")
                continue

            if not value:
                continue

            os.environ[env_name] = value
            logger.debug(f"Loaded secret {env_name} from {file_path.name}")

        break

    _SECRETS_LOADED = True


def substitute_env_vars(text: str) -> str:
    """
    Substitute environment variable placeholders in text.

    Supports formats:
    - ${VAR_NAME} - required variable (raises error if missing)
    - ${VAR_NAME:-default} - optional with default value
    - ${VAR_NAME:?error_message} - required with custom error message
    """

    _load_secret_files_into_env()

    def replacer(match: re.Match[str]) -> str:
        var_expr = match.group(1)

        if ":-" in var_expr:
            var_name, default = var_expr.split(":-", 1)
            return os.getenv(var_name, default)

        if ":?" in var_expr:
            var_name, error_msg = var_expr.split(":?", 1)
            value = os.getenv(var_name)
            if value is None:
                raise ValueError(f"Required environment variable {var_name}: {error_msg}")
            return value

        value = os.getenv(var_expr)
        if value is None:
            raise ValueError(f"Required environment variable {var_expr} not set")
        return value

    return _PLACEHOLDER.sub(replacer, text)
