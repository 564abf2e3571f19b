"""Rollback target selection and auto-rollback gating.

The deploy state machine is not transactional: a failed run leaves any
already-applied remote change in place. Rolling back to a stored version
through this manager is the only recovery path.
"""

from __future__ import annotations

import re
import tempfile
from dataclasses import dataclass
from pathlib import Path

from botocore.exceptions import BotoCoreError, ClientError

from lambda_deploy.deploy.artifacts import ArtifactStore
from lambda_deploy.deploy.deployers.base import BaseFunctionService
from lambda_deploy.deploy.environment import EnvironmentPolicy
from lambda_deploy.deploy.version import normalize_version, version_sort_key
from lambda_deploy.lib.errors import (
    DeploymentError,
    RollbackNotSupportedError,
    RollbackTargetError,
)
from lambda_deploy.lib.logging_config import get_logger
from lambda_deploy.models.deployment import AutoRollbackConfig, RollbackStrategy
from lambda_deploy.models.deployment_state import (
    ArtifactLocation,
    DeploymentMode,
    FailureCategory,
)

logger = get_logger(__name__)

VERSION_TAG = "Version"
_DESCRIPTION_VERSION = re.compile(r"\bv?(\d+\.\d+\.\d+(?:-[0-9A-Za-z.-]+)?)")


@dataclass(frozen=True)
class RollbackDecision:
    """Whether an automatic rollback should run, and why."""

    should_rollback: bool
    reason: str


class RollbackManager:
    """Select rollback targets for one function.

    Args:
        service: Function service used to read back deployment tags
        store: Artifact store holding previously deployed versions
        function_name: Target function
        config: Auto-rollback configuration
    """

    def __init__(
        self,
        service: BaseFunctionService,
        store: ArtifactStore,
        function_name: str,
        config: AutoRollbackConfig | None = None,
    ) -> None:
        self._service = service
        self._store = store
        self._function_name = function_name
        self.config = config or AutoRollbackConfig()

    def last_successful_version(self) -> str | None:
        """Read the last recorded version back from the remote function.

        The ``Version`` tag written at the end of every run is preferred; the
        published description is used when tags are unavailable.

        Returns:
            The version, or None when nothing could be read
        """
        try:
            tags = self._service.list_tags(self._function_name)
        except (DeploymentError, ClientError, BotoCoreError) as exc:
            logger.warning(f"Could not read tags of {self._function_name}: {exc}")
            tags = {}

        version = tags.get(VERSION_TAG)
        if version:
            logger.info(f"Last successful version from tags: {version}")
            return normalize_version(version)

        try:
            state = self._service.get_state(self._function_name)
        except (DeploymentError, ClientError, BotoCoreError) as exc:
            logger.warning(f"Could not read state of {self._function_name}: {exc}")
            return None

        match = _DESCRIPTION_VERSION.search(state.description or "")
        if match:
            logger.info(f"Last successful version from description: {match.group(1)}")
            return match.group(1)

        logger.info(f"No previous version recorded on {self._function_name}")
        return None

    def select_target(
        self,
        strategy: RollbackStrategy,
        policy: EnvironmentPolicy,
        *,
        last_known_good: str | None = None,
        explicit_target: str | None = None,
        current_version: str | None = None,
    ) -> str:
        """Choose the version to roll back to.

        Args:
            strategy: Selection strategy
            policy: Environment being rolled back
            last_known_good: Version recorded before the failing run started
            explicit_target: Operator supplied target (specific_version)
            current_version: Version being rolled back from

        Returns:
            Normalized target version

        Raises:
            RollbackNotSupportedError: If the environment is timestamp-keyed
            RollbackTargetError: If no target can be determined
        """
        ensure_rollback_supported(policy)
        current = normalize_version(current_version) if current_version else None

        if strategy == RollbackStrategy.SPECIFIC_VERSION:
            target = explicit_target or self.config.target_version
            if not target:
                raise RollbackTargetError(
                    strategy.value, "No target version configured for specific_version"
                )
            target = normalize_version(target)

        elif strategy == RollbackStrategy.LAST_SUCCESSFUL:
            if not last_known_good:
                raise RollbackTargetError(
                    strategy.value,
                    f"No previously successful version recorded for {policy.name}",
                )
            target = normalize_version(last_known_good)
            if target == current:
                raise RollbackTargetError(
                    strategy.value,
                    f"Last successful version {target} is the version being replaced",
                )

        elif strategy == RollbackStrategy.PREVIOUS_STABLE:
            target = self._previous_version(policy, current)

        else:
            raise RollbackTargetError(str(strategy), f"Unknown strategy: {strategy}")

        logger.info(f"Rollback target ({strategy.value}): {target}")
        return target

    def resolve_artifact(self, policy: EnvironmentPolicy, target: str) -> ArtifactLocation:
        """Fetch the stored artifact for ``target`` and return its location.

        The artifact is downloaded once to confirm it is readable; it is
        never rebuilt or uploaded again.

        Raises:
            ArtifactNotFoundError: If the version is not stored, listing the
                versions that are
        """
        ensure_rollback_supported(policy)
        with tempfile.TemporaryDirectory(prefix="lambda-deploy-rollback-") as tmp:
            path = self._store.get(policy, target, Path(tmp))
            logger.info(f"Rollback artifact {path.name}: {path.stat().st_size} bytes")
        return self._store.location(policy, target)

    def should_auto_rollback(
        self,
        category: FailureCategory,
        policy: EnvironmentPolicy,
        mode: DeploymentMode = DeploymentMode.DEPLOY,
    ) -> RollbackDecision:
        """Decide whether a failure triggers an automatic rollback.

        Raises:
            RollbackNotSupportedError: If a rollback is triggered for a
                timestamp-keyed environment
        """
        if not self.config.enabled:
            return RollbackDecision(False, "auto-rollback is disabled")
        if mode == DeploymentMode.ROLLBACK:
            return RollbackDecision(False, "run is already a rollback")

        triggers = self.config.triggers
        triggered = (
            category == FailureCategory.DEPLOYMENT and triggers.on_deployment_failure
        ) or (
            category == FailureCategory.HEALTH_CHECK and triggers.on_health_check_failure
        )
        if not triggered:
            return RollbackDecision(False, f"no trigger configured for {category.value}")

        ensure_rollback_supported(policy)
        return RollbackDecision(True, category.value)

    def _previous_version(self, policy: EnvironmentPolicy, current: str | None) -> str:
        strategy = RollbackStrategy.PREVIOUS_STABLE.value
        if not current:
            raise RollbackTargetError(
                strategy, "Current version is unknown; cannot find its predecessor"
            )

        versions = self._store.list_versions(policy)
        current_key = version_sort_key(current)
        for candidate in versions:
            if version_sort_key(candidate) < current_key:
                return candidate

        raise RollbackTargetError(
            strategy, f"No version older than {current} stored for {policy.name}"
        )


def ensure_rollback_supported(policy: EnvironmentPolicy) -> None:
    """Reject rollback for environments whose artifacts are keyed by timestamp."""
    if not policy.supports_rollback:
        raise RollbackNotSupportedError(policy.name)
