"""Deployment orchestrator.

Wires version resolution, conflict gating, the state machine, health
validation, automatic rollback and notifications into the two operations
the CLI exposes: ``deploy`` and ``rollback``.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from pathlib import Path

from lambda_deploy.deploy.artifacts import ArtifactStore
from lambda_deploy.deploy.builder import BuildArtifact
from lambda_deploy.deploy.conflicts import check_conflict
from lambda_deploy.deploy.deployers import create_services
from lambda_deploy.deploy.deployers.base import BaseBlobStore, BaseFunctionService
from lambda_deploy.deploy.environment import EnvironmentPolicy, policy_for
from lambda_deploy.deploy.health import (
    DEPLOYMENT_CHECK_SOURCE,
    ROLLBACK_CHECK_SOURCE,
    HealthValidator,
    build_payload,
)
from lambda_deploy.deploy.notifications import WebhookNotifier
from lambda_deploy.deploy.rollback import RollbackManager, ensure_rollback_supported
from lambda_deploy.deploy.state_machine import (
    UNPUBLISHED_VERSION,
    DeploymentStateMachine,
)
from lambda_deploy.deploy.version import VersionResolver
from lambda_deploy.lib.errors import (
    ConfigError,
    DeploymentCancelledError,
    DeploymentError,
)
from lambda_deploy.lib.logging_config import get_logger
from lambda_deploy.models.deployment import LambdaDeployConfig, RollbackStrategy
from lambda_deploy.models.deployment_state import (
    DeploymentOutcome,
    DeploymentRecord,
    DeploymentStage,
    FailureCategory,
    HealthCheckResult,
    OutcomeStatus,
    RunContext,
)

logger = get_logger(__name__)

# Failures here happen before update_code, so the function is untouched
_UNCHANGED_FUNCTION_STAGES = frozenset(
    {DeploymentStage.IDLE, DeploymentStage.UPLOADING}
)


class DeploymentOrchestrator:
    """Run deploy and rollback operations for one configured function.

    Args:
        config: Validated configuration
        context: Actor and revision facts for this invocation
        service: Function service; created from ``config.aws`` when omitted
        blob_store: Blob store; created from ``config.aws`` when omitted
        notifier: Outcome notifier; a webhook notifier is created when
            webhooks are configured
        cancel_event: Set to stop the run at the next stage boundary
        sleep: Sleep function shared by retries and polling
        clock: Epoch-seconds clock
        monotonic: Monotonic clock for polling deadlines
    """

    def __init__(
        self,
        config: LambdaDeployConfig,
        context: RunContext | None = None,
        *,
        service: BaseFunctionService | None = None,
        blob_store: BaseBlobStore | None = None,
        notifier: WebhookNotifier | None = None,
        cancel_event: threading.Event | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        _require_target(config)
        self.config = config
        self.context = context or RunContext()
        self.function_name = config.aws.function_name
        self.cancel_event = cancel_event or threading.Event()
        settings = config.deployment

        if service is None or blob_store is None:
            default_service, default_store = create_services(config.aws)
            service = service or default_service
            blob_store = blob_store or default_store

        self.service = service
        self.store = ArtifactStore(
            blob_store,
            config.aws.s3_bucket,
            self.function_name,
            retry=settings.retry,
            context=self.context,
            clock=clock,
            sleep=sleep,
        )
        self.machine = DeploymentStateMachine(
            service,
            self.store,
            self.function_name,
            settings=settings,
            context=self.context,
            cancel_event=self.cancel_event,
            sleep=sleep,
            clock=clock,
            monotonic=monotonic,
        )
        self.health = HealthValidator(
            service, retry_policy=settings.retry.invoke, sleep=sleep
        )
        self.rollback_manager = RollbackManager(
            service, self.store, self.function_name, settings.auto_rollback
        )
        self.resolver = VersionResolver()
        if notifier is None and config.notifications.has_targets:
            notifier = WebhookNotifier(config.notifications, self.context, sleep=sleep)
        self.notifier = notifier

    def deploy(
        self,
        environment: str,
        artifact: BuildArtifact | bytes,
        *,
        explicit_version: str | None = None,
        force: bool = False,
        project_root: Path | None = None,
    ) -> DeploymentOutcome:
        """Deploy an artifact to an environment.

        Args:
            environment: Environment name (aliases accepted)
            artifact: Packaged artifact from the build collaborator
            explicit_version: Version override; wins over every other source
            force: Bypass conflict checks
            project_root: Directory probed for version declarations

        Returns:
            The outcome; ``status`` is FAILURE when a stage failed

        Raises:
            ConfigError: If the environment name is invalid
            VersionConflictError: If the environment blocks the version
        """
        policy = policy_for(environment)
        version, source = self.resolver.resolve(
            explicit_version or self.config.project.version,
            project_root or Path.cwd(),
        )
        logger.info(
            f"Deploying {self.function_name} version {version} "
            f"({source.value}) to {policy.name}"
        )

        last_known_good = None
        if self.config.deployment.auto_rollback.enabled and policy.supports_rollback:
            # Read before the run changes the tags
            last_known_good = self.rollback_manager.last_successful_version()

        conflict = check_conflict(policy, version, self.store, force, source)
        conflict.raise_if_blocked()

        record = self.machine.deploy(artifact, policy, version)
        outcome = DeploymentOutcome(
            function_name=self.function_name,
            record=record,
            version_source=source.value,
            conflict_strategy=conflict.strategy,
        )

        if record.succeeded:
            outcome.health_check = self._health_check(policy, record)
            if outcome.health_check is not None and not outcome.health_check.passed:
                self._auto_rollback(
                    outcome, policy, FailureCategory.HEALTH_CHECK, last_known_good
                )
        else:
            self._auto_rollback(outcome, policy, FailureCategory.DEPLOYMENT, last_known_good)

        self._notify(outcome)
        return outcome

    def rollback(
        self,
        environment: str,
        target_version: str | None = None,
        reason: str = "manual",
    ) -> DeploymentOutcome:
        """Roll an environment back to a stored version.

        Without ``target_version`` the version preceding the one currently
        recorded on the function is used.

        Raises:
            RollbackNotSupportedError: For timestamp-keyed environments
            RollbackTargetError: If no target can be determined
            ArtifactNotFoundError: If the target version is not stored
        """
        policy = policy_for(environment)
        ensure_rollback_supported(policy)

        if target_version:
            target = self.rollback_manager.select_target(
                RollbackStrategy.SPECIFIC_VERSION, policy, explicit_target=target_version
            )
        else:
            current = self.rollback_manager.last_successful_version()
            target = self.rollback_manager.select_target(
                RollbackStrategy.PREVIOUS_STABLE, policy, current_version=current
            )

        location = self.rollback_manager.resolve_artifact(policy, target)
        logger.info(f"Rolling {policy.name} back to {target} ({reason})")
        record = self.machine.rollback(policy, target, location, reason)

        outcome = DeploymentOutcome(function_name=self.function_name, record=record)
        if record.succeeded:
            outcome.health_check = self._health_check(
                policy, record, source=ROLLBACK_CHECK_SOURCE
            )
        self._notify(outcome)
        return outcome

    def _auto_rollback(
        self,
        outcome: DeploymentOutcome,
        policy: EnvironmentPolicy,
        category: FailureCategory,
        last_known_good: str | None,
    ) -> None:
        record = outcome.record
        manager = self.rollback_manager
        skipped = self._rollback_skip_reason(record) if manager.config.enabled else None
        if skipped:
            logger.info(f"No automatic rollback: {skipped}")
            outcome.rollback_skipped = skipped
            return
        try:
            decision = manager.should_auto_rollback(category, policy, record.mode)
            if not decision.should_rollback:
                logger.info(f"No automatic rollback: {decision.reason}")
                return
            target = manager.select_target(
                manager.config.strategy,
                policy,
                last_known_good=last_known_good,
                current_version=record.version,
            )
            location = manager.resolve_artifact(policy, target)
        except DeploymentError as exc:
            logger.error(f"Automatic rollback could not start: {exc}")
            outcome.rollback_error = str(exc)
            return

        logger.warning(f"Automatic rollback of {policy.name} to {target} ({category.value})")
        rollback_record: DeploymentRecord | None = None
        for attempt in range(1, manager.config.behavior.max_attempts + 1):
            rollback_record = self.machine.rollback(
                policy, target, location, category.value, automatic=True
            )
            if rollback_record.succeeded:
                break
            logger.error(f"Automatic rollback attempt {attempt} failed")
            if self.cancel_event.is_set():
                break

        outcome.rollback = rollback_record
        if rollback_record is not None and rollback_record.succeeded:
            outcome.rollback_health_check = self._health_check(
                policy, rollback_record, source=ROLLBACK_CHECK_SOURCE
            )

    def _rollback_skip_reason(self, record: DeploymentRecord) -> str | None:
        """Return why a failed or unhealthy run must not be rolled back."""
        failure = record.failure
        if self.cancel_event.is_set() or (
            failure is not None and failure.error_type == DeploymentCancelledError.__name__
        ):
            return "run was cancelled"
        if failure is not None and failure.stage in _UNCHANGED_FUNCTION_STAGES:
            return f"function unchanged (failed at {failure.stage.value})"
        return None

    def _health_check(
        self,
        policy: EnvironmentPolicy,
        record: DeploymentRecord,
        source: str = DEPLOYMENT_CHECK_SOURCE,
    ) -> HealthCheckResult | None:
        check = self.config.deployment.health_check
        if not check.enabled:
            return None

        qualifier = record.remote_version_id
        if qualifier == UNPUBLISHED_VERSION or record.degraded:
            qualifier = None
        result = self.health.validate(
            self.function_name, build_payload(check, source), check, qualifier
        )
        if not result.passed:
            record.warn(f"Health check failed: {result.details}")
            record.outcome = OutcomeStatus.SUCCESS_WITH_WARNING
        return result

    def _notify(self, outcome: DeploymentOutcome) -> None:
        if self.notifier is not None:
            self.notifier.notify(outcome)


def _require_target(config: LambdaDeployConfig) -> None:
    """Fail fast when the credential/config collaborator left a gap."""
    missing = [
        name
        for name, value in (
            ("aws.region", config.aws.region),
            ("aws.s3_bucket", config.aws.s3_bucket),
            ("aws.function_name", config.aws.function_name),
        )
        if not value
    ]
    if missing:
        raise ConfigError(
            field=missing[0],
            message=f"Required deployment target values missing: {', '.join(missing)}",
        )
