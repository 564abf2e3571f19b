"""Configuration loader for lambda-deploy.

This module provides the ConfigLoader class for locating, parsing, and
validating the deployment configuration file.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from lambda_deploy.config.defaults import CONFIG_FILENAMES, CONFIG_SEARCH_DIRS
from lambda_deploy.config.env_loader import substitute_env_vars
from lambda_deploy.config.validator import first_error_field, flatten_pydantic_errors
from lambda_deploy.lib.errors import ConfigError, FileNotFoundError
from lambda_deploy.lib.logging_config import get_logger
from lambda_deploy.models.deployment import LambdaDeployConfig

logger = get_logger(__name__)


def _read_yaml_with_env_substitution(path: Path) -> dict[str, Any] | None:
    """Read a YAML file, substituting env vars in the raw text before parsing.

    Raises:
        OSError: If file cannot be read
        yaml.YAMLError: If YAML parsing fails
        ConfigError: If env var substitution fails
    """
    raw_text = path.read_text(encoding="utf-8")
    substituted = substitute_env_vars(raw_text)
    content = yaml.safe_load(substituted)
    return content if content else None


class ConfigLoader:
    """Locate, parse and validate ``lambda-deploy-config.yml``."""

    def find_config_file(self, project_root: Path) -> Path:
        """Return the first configuration file found under ``project_root``.

        Raises:
            FileNotFoundError: If no candidate exists
        """
        candidates = [
            project_root / directory / filename
            for directory in CONFIG_SEARCH_DIRS
            for filename in CONFIG_FILENAMES
        ]
        for candidate in candidates:
            if candidate.is_file():
                logger.debug(f"Using configuration file {candidate}")
                return candidate

        searched = "\n".join(f"  - {c.relative_to(project_root)}" for c in candidates)
        raise FileNotFoundError(
            str(project_root / CONFIG_FILENAMES[0]),
            f"No configuration file found. Searched:\n{searched}",
        )

    def parse_yaml(self, path: Path) -> dict[str, Any]:
        """Parse a configuration file into a mapping.

        Raises:
            FileNotFoundError: If the file cannot be read
            ConfigError: If the YAML is malformed or not a mapping
        """
        try:
            content = _read_yaml_with_env_substitution(path)
        except OSError as e:
            raise FileNotFoundError(
                str(path),
                f"Configuration file not found at {path}. "
                "Please ensure the file exists at this path.",
            ) from e
        except yaml.YAMLError as e:
            raise ConfigError(
                "yaml_parse",
                f"Failed to parse YAML file {path}: {str(e)}",
            ) from e

        if content is None:
            return {}
        if not isinstance(content, dict):
            raise ConfigError(
                "yaml_parse",
                f"Configuration file {path} must contain a mapping at the top level",
            )
        return content

    def load(
        self,
        config_path: str | Path | None = None,
        project_root: Path | None = None,
    ) -> LambdaDeployConfig:
        """Load and validate the deployment configuration.

        Args:
            config_path: Explicit file; discovered under ``project_root`` if omitted
            project_root: Root searched for the configuration file

        Returns:
            Validated configuration

        Raises:
            FileNotFoundError: If no configuration file exists
            ConfigError: If parsing or validation fails
        """
        root = project_root or Path.cwd()
        path = Path(config_path) if config_path else self.find_config_file(root)
        data = self.parse_yaml(path)

        try:
            config = LambdaDeployConfig(**data)
        except PydanticValidationError as e:
            error_text = "\n".join(flatten_pydantic_errors(e))
            raise ConfigError(
                first_error_field(e),
                f"Invalid configuration in {path}:\n{error_text}",
            ) from e

        logger.info(
            f"Loaded configuration for {config.project.name} "
            f"({config.aws.function_name} in {config.aws.region})"
        )
        return config
