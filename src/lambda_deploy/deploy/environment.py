"""Per-environment deployment policy.

Each environment name maps to exactly one ``EnvironmentPolicy``, looked up
once per run and carried through every stage.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from lambda_deploy.lib.errors import ConfigError
from lambda_deploy.lib.logging_config import get_logger

logger = get_logger(__name__)

ENVIRONMENT_NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]{0,31}$")


class ConflictPolicy(str, Enum):
    """How an already-deployed version is treated."""

    ALWAYS_ALLOW = "always-allow"
    WARN_AND_ALLOW = "warn-and-allow"
    BLOCK = "block"


class PathStrategy(str, Enum):
    """What identifies an artifact within an environment."""

    TIMESTAMP = "timestamp"
    VERSION = "version"


@dataclass(frozen=True)
class EnvironmentPolicy:
    """Rules for one deployment environment.

    Attributes:
        name: Canonical environment name, also the artifact key segment
        conflict_policy: Treatment of an existing version
        path_strategy: Artifact identifier strategy
        label: Upper-case label used in version descriptions
        production: Whether this is the production environment
    """

    name: str
    conflict_policy: ConflictPolicy
    path_strategy: PathStrategy
    label: str
    production: bool = False

    @property
    def alias_name(self) -> str:
        """Alias that points at the environment's current version."""
        return f"{self.name}-current"

    @property
    def supports_rollback(self) -> bool:
        """Whether artifacts are addressable by version."""
        return self.path_strategy == PathStrategy.VERSION


_POLICIES: dict[str, EnvironmentPolicy] = {
    "dev": EnvironmentPolicy(
        name="dev",
        conflict_policy=ConflictPolicy.ALWAYS_ALLOW,
        path_strategy=PathStrategy.TIMESTAMP,
        label="DEV",
    ),
    "pre": EnvironmentPolicy(
        name="pre",
        conflict_policy=ConflictPolicy.WARN_AND_ALLOW,
        path_strategy=PathStrategy.VERSION,
        label="PRE",
    ),
    "prod": EnvironmentPolicy(
        name="prod",
        conflict_policy=ConflictPolicy.BLOCK,
        path_strategy=PathStrategy.VERSION,
        label="PROD",
        production=True,
    ),
}

ENVIRONMENT_ALIASES: dict[str, str] = {
    "development": "dev",
    "staging": "pre",
    "test": "pre",
    "production": "prod",
}


def canonical_environment(name: str) -> str:
    """Return the canonical name for ``name`` (aliases resolved, lower-cased)."""
    key = name.strip().lower()
    return ENVIRONMENT_ALIASES.get(key, key)


def policy_for(environment: str) -> EnvironmentPolicy:
    """Look up the policy for an environment name.

    Unknown names get the strictest policy (block, version-keyed) and a
    warning.

    Raises:
        ConfigError: If the name is empty or not usable as a key segment
    """
    name = canonical_environment(environment)
    if not ENVIRONMENT_NAME_PATTERN.match(name):
        raise ConfigError(
            field="environment",
            message=(
                f"Invalid environment name: {environment!r}. Use lowercase "
                "letters, numbers, '-' and '_' (e.g. dev, pre, prod)"
            ),
        )

    policy = _POLICIES.get(name)
    if policy is not None:
        return policy

    logger.warning(
        f"Unknown environment '{name}': applying strict blocking conflict policy"
    )
    return EnvironmentPolicy(
        name=name,
        conflict_policy=ConflictPolicy.BLOCK,
        path_strategy=PathStrategy.VERSION,
        label=name.upper(),
    )


def detect_environment(
    requested: str,
    branch: str | None = None,
    event_name: str | None = None,
) -> str:
    """Resolve 'auto' to an environment from the triggering branch and event.

    ``main``/``master`` deploy to dev; manually dispatched runs deploy to pre.

    Raises:
        ConfigError: If 'auto' cannot be resolved
    """
    if requested.strip().lower() != "auto":
        return canonical_environment(requested)

    branch = branch or "main"
    if branch in ("main", "master"):
        return "dev"
    if event_name == "workflow_dispatch":
        return "pre"
    raise ConfigError(
        field="environment",
        message=f"Cannot determine environment for branch: {branch}",
    )
