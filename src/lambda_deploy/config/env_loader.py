"""Environment variable handling for lambda-deploy configuration files."""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path

from dotenv import load_dotenv

from lambda_deploy.config.defaults import ENV_FILENAME
from lambda_deploy.lib.errors import ConfigError
from lambda_deploy.lib.logging_config import get_logger

logger = get_logger(__name__)

# ${VAR} or ${VAR:-default}
ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


def substitute_env_vars(text: str, env: Mapping[str, str] | None = None) -> str:
    """Replace ``${VAR}`` and ``${VAR:-default}`` references in ``text``.

    Args:
        text: Raw configuration text
        env: Variables to resolve against; defaults to the process environment

    Returns:
        Text with every reference resolved

    Raises:
        ConfigError: If a variable without a default is not set
    """
    variables = os.environ if env is None else env
    missing: list[str] = []

    def replace(match: re.Match[str]) -> str:
        name, default = match.group(1), match.group(2)
        value = variables.get(name)
        if value is not None:
            return value
        if default is not None:
            return default
        missing.append(name)
        return match.group(0)

    result = ENV_VAR_PATTERN.sub(replace, text)
    if missing:
        names = ", ".join(sorted(set(missing)))
        raise ConfigError(
            field="environment",
            message=f"Environment variable(s) not set: {names}. "
            "Export them or use ${VAR:-default}.",
        )
    return result


def load_env_file(project_root: Path, filename: str = ENV_FILENAME) -> bool:
    """Load ``.env`` from the project root without overriding set variables.

    Returns:
        True if a file was found and loaded
    """
    path = project_root / filename
    if not path.is_file():
        logger.debug(f"No {filename} file in {project_root}")
        return False
    loaded = load_dotenv(path, override=False)
    logger.debug(f"Loaded environment from {path}")
    return loaded
