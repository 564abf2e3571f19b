"""Version conflict detection.

Decides whether a version may be deployed to an environment, based only on
whether an object exists at the exact computed artifact key.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from lambda_deploy.deploy.artifacts import ArtifactStore
from lambda_deploy.deploy.environment import (
    ConflictPolicy,
    EnvironmentPolicy,
    PathStrategy,
)
from lambda_deploy.deploy.version import (
    VersionSource,
    normalize_version,
    suggest_next_versions,
    suggest_prerelease,
    update_hint,
)
from lambda_deploy.lib.errors import VersionConflictError
from lambda_deploy.lib.logging_config import get_logger

logger = get_logger(__name__)

STRATEGY_FORCED = "forced"
STRATEGY_TIMESTAMP = "timestamp-based"
STRATEGY_ALWAYS_ALLOW = "always-allow"
STRATEGY_OVERWRITE = "overwrite"
STRATEGY_NEW_VERSION = "new-version"
STRATEGY_BLOCKED = "blocked"


@dataclass
class ConflictCheckResult:
    """Result of a conflict check.

    Attributes:
        allowed: Whether the deploy may proceed
        strategy: Name of the applied strategy
        exists: Whether the version was already stored (None when not checked)
        suggestions: Suggested alternative versions
        error: Structured conflict error when not allowed
    """

    allowed: bool
    strategy: str
    exists: bool | None = None
    suggestions: list[str] = field(default_factory=list)
    error: VersionConflictError | None = None

    def raise_if_blocked(self) -> None:
        """Raise the conflict error if the deploy is not allowed."""
        if not self.allowed and self.error is not None:
            raise self.error


def check_conflict(
    policy: EnvironmentPolicy,
    version: str,
    store: ArtifactStore,
    force: bool = False,
    version_source: VersionSource | None = None,
) -> ConflictCheckResult:
    """Apply the environment's conflict policy to ``version``.

    Args:
        policy: Environment policy
        version: Version about to be deployed
        store: Artifact store consulted for existence
        force: Bypass every check
        version_source: Where the version came from, for remediation hints

    Returns:
        ConflictCheckResult; ``error`` is set when blocked
    """
    version = normalize_version(version)

    if force:
        logger.warning(
            f"FORCE DEPLOY: skipping version conflict checks for {version} "
            f"in {policy.name}"
        )
        return ConflictCheckResult(allowed=True, strategy=STRATEGY_FORCED)

    if policy.conflict_policy == ConflictPolicy.ALWAYS_ALLOW:
        strategy = (
            STRATEGY_TIMESTAMP
            if policy.path_strategy == PathStrategy.TIMESTAMP
            else STRATEGY_ALWAYS_ALLOW
        )
        logger.info(f"{policy.name}: conflicts allowed ({strategy})")
        return ConflictCheckResult(allowed=True, strategy=strategy)

    exists = store.exists(policy, version)

    if not exists:
        logger.info(f"Version {version} is new in {policy.name}")
        return ConflictCheckResult(
            allowed=True, strategy=STRATEGY_NEW_VERSION, exists=False
        )

    if policy.conflict_policy == ConflictPolicy.WARN_AND_ALLOW:
        suggestion = suggest_prerelease(version)
        logger.warning(
            f"Version {version} already exists in {policy.name} and will be "
            f"overwritten. Consider using pre-release versions: {suggestion}"
        )
        return ConflictCheckResult(
            allowed=True,
            strategy=STRATEGY_OVERWRITE,
            exists=True,
            suggestions=[suggestion],
        )

    suggestions = suggest_next_versions(version)
    next_steps = _next_steps(policy, suggestions, version_source)
    logger.error(
        f"Version {version} already exists in {policy.name}; "
        "refusing to overwrite"
    )
    return ConflictCheckResult(
        allowed=False,
        strategy=STRATEGY_BLOCKED,
        exists=True,
        suggestions=suggestions,
        error=VersionConflictError(version, policy.name, suggestions, next_steps),
    )


def _next_steps(
    policy: EnvironmentPolicy,
    suggestions: list[str],
    version_source: VersionSource | None,
) -> list[str]:
    steps = []
    if suggestions:
        step = f"Bump the version (e.g. {suggestions[0]})"
        hint = update_hint(version_source, suggestions[0]) if version_source else None
        if hint:
            step += f": {hint}"
        steps.append(step)
    else:
        steps.append("Bump the version to one not yet deployed")
    steps.append("Use --force to overwrite (emergency only)")
    if policy.production:
        steps.append("Deploy the new version to staging (pre) first")
    return steps
