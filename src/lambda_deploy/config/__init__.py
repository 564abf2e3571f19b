"""Configuration loading for lambda-deploy."""

from lambda_deploy.config.env_loader import load_env_file, substitute_env_vars
from lambda_deploy.config.loader import ConfigLoader
from lambda_deploy.config.validator import flatten_pydantic_errors

__all__ = [
    "ConfigLoader",
    "flatten_pydantic_errors",
    "load_env_file",
    "substitute_env_vars",
]
