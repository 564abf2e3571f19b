"""Deploy/rollback state machine.

Stages run strictly in order::

    Idle -> Uploading -> UpdatingCode -> AwaitingReady -> PublishingVersion
         -> UpdatingAlias -> Tagging -> Done

with ``Failed`` reachable from any stage. Rollback runs start at
``UpdatingCode`` with an artifact that is already stored.

The sequence is not transactional. A fatal error stops the run at the
current stage and leaves earlier remote changes in place; recovery is the
job of ``RollbackManager``, never of this machine.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from datetime import datetime, timezone

from botocore.exceptions import BotoCoreError, ClientError

from lambda_deploy.deploy.artifacts import ArtifactStore
from lambda_deploy.deploy.builder import BuildArtifact
from lambda_deploy.deploy.deployers.base import BaseFunctionService
from lambda_deploy.deploy.environment import EnvironmentPolicy, PathStrategy
from lambda_deploy.deploy.retry import wait_for_function_ready, with_retry
from lambda_deploy.deploy.version import normalize_version
from lambda_deploy.lib.errors import DeploymentCancelledError, DeploymentError
from lambda_deploy.lib.logging_config import get_logger
from lambda_deploy.models.deployment import DeploymentSettings
from lambda_deploy.models.deployment_state import (
    ArtifactLocation,
    DeploymentMode,
    DeploymentRecord,
    DeploymentStage,
    OutcomeStatus,
    RunContext,
    StageFailure,
    utc_now,
)

logger = get_logger(__name__)

MAX_DESCRIPTION_LENGTH = 256
UNPUBLISHED_VERSION = "$LATEST"


def format_timestamp(epoch: float) -> str:
    """Format epoch seconds as an ISO-8601 UTC timestamp."""
    return datetime.fromtimestamp(epoch, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def version_description(
    policy: EnvironmentPolicy,
    record: DeploymentRecord,
    context: RunContext,
    timestamp: str,
    automatic: bool = False,
) -> str:
    """Build the human-readable description of a published version."""
    if record.mode == DeploymentMode.ROLLBACK:
        label = f"{policy.label}-{'AUTO-' if automatic else ''}ROLLBACK"
        parts = [f"{label}: v{record.version}"]
        if record.rollback_reason:
            parts.append(f"reason: {record.rollback_reason}")
        parts += [f"by {context.actor}", timestamp]
    else:
        parts = [f"{policy.label}: v{record.version}"]
        if policy.path_strategy == PathStrategy.VERSION:
            parts.append(context.branch)
        parts += [context.revision, timestamp, f"by {context.actor}"]
    return " | ".join(parts)[:MAX_DESCRIPTION_LENGTH]


def deployment_tags(
    policy: EnvironmentPolicy,
    record: DeploymentRecord,
    context: RunContext,
    timestamp: str,
) -> dict[str, str]:
    """Build the audit tags written to the function at the end of a run."""
    tags = {
        "Version": record.version,
        "Environment": policy.name,
        "DeploymentType": record.mode.value,
    }
    if record.mode == DeploymentMode.ROLLBACK:
        tags.update(
            {
                "RollbackBy": context.actor,
                "RollbackTimestamp": timestamp,
                "RollbackReason": record.rollback_reason or "manual",
            }
        )
    else:
        tags.update(
            {
                "CommitSHA": context.revision,
                "Branch": context.branch,
                "DeployedBy": context.actor,
                "Timestamp": timestamp,
            }
        )
    return tags


class DeploymentStateMachine:
    """Drive one function through a deploy or rollback run.

    Args:
        service: Function control plane
        store: Artifact store for the function
        function_name: Target function
        settings: Retry and polling settings
        context: Actor and revision recorded in descriptions and tags
        cancel_event: When set, the run stops at the next stage boundary
        sleep: Sleep function for retries and polling
        clock: Epoch-seconds clock for timestamps
        monotonic: Monotonic clock for polling deadlines
    """

    def __init__(
        self,
        service: BaseFunctionService,
        store: ArtifactStore,
        function_name: str,
        *,
        settings: DeploymentSettings | None = None,
        context: RunContext | None = None,
        cancel_event: threading.Event | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._service = service
        self._store = store
        self._function_name = function_name
        self._settings = settings or DeploymentSettings()
        self._context = context or RunContext()
        self._cancel_event = cancel_event or threading.Event()
        self._sleep = sleep
        self._clock = clock
        self._monotonic = monotonic

    def deploy(
        self,
        artifact: BuildArtifact | bytes,
        policy: EnvironmentPolicy,
        version: str,
    ) -> DeploymentRecord:
        """Upload ``artifact`` and roll it out as ``version``.

        Returns:
            The run record; ``outcome`` is FAILURE when a stage failed
        """
        record = DeploymentRecord(
            version=normalize_version(version),
            environment=policy.name,
            mode=DeploymentMode.DEPLOY,
        )
        try:
            self._enter(record, DeploymentStage.UPLOADING)
            location = self._store.put(
                artifact, policy, version, timestamp=int(self._clock())
            )
            record.artifact_location = location
            self._run_remote_stages(record, policy, location)
        except (DeploymentError, ClientError, BotoCoreError) as exc:
            self._fail(record, exc)
        return record

    def rollback(
        self,
        policy: EnvironmentPolicy,
        version: str,
        location: ArtifactLocation,
        reason: str,
        automatic: bool = False,
    ) -> DeploymentRecord:
        """Roll the function back to an already stored artifact.

        Args:
            policy: Environment policy
            version: Version being restored
            location: Stored artifact of that version; never re-uploaded
            reason: Why the rollback happens, recorded in description and tags
            automatic: Whether the rollback was triggered by a failure
        """
        record = DeploymentRecord(
            version=normalize_version(version),
            environment=policy.name,
            mode=DeploymentMode.ROLLBACK,
            artifact_location=location,
            rollback_reason=reason,
        )
        try:
            self._run_remote_stages(record, policy, location, automatic=automatic)
        except (DeploymentError, ClientError, BotoCoreError) as exc:
            self._fail(record, exc)
        return record

    def _run_remote_stages(
        self,
        record: DeploymentRecord,
        policy: EnvironmentPolicy,
        location: ArtifactLocation,
        automatic: bool = False,
    ) -> None:
        retry = self._settings.retry

        self._enter(record, DeploymentStage.UPDATING_CODE)
        code_version = with_retry(
            lambda: self._service.update_code(self._function_name, location),
            retry.update_code,
            operation_name=DeploymentStage.UPDATING_CODE.value,
            sleep=self._sleep,
        )

        self._enter(record, DeploymentStage.AWAITING_READY)
        ready = wait_for_function_ready(
            self._service,
            self._function_name,
            timeout=self._settings.ready_timeout_seconds,
            interval=self._settings.ready_poll_interval_seconds,
            sleep=self._sleep,
            clock=self._monotonic,
        )
        if not ready:
            record.warn(
                f"Function not ready after {self._settings.ready_timeout_seconds:.0f}s; "
                "continued without confirmation"
            )

        timestamp = format_timestamp(self._clock())

        self._enter(record, DeploymentStage.PUBLISHING_VERSION)
        description = version_description(
            policy, record, self._context, timestamp, automatic
        )
        published: str | None = None
        try:
            published = with_retry(
                lambda: self._service.publish_version(self._function_name, description),
                retry.publish_version,
                operation_name=DeploymentStage.PUBLISHING_VERSION.value,
                sleep=self._sleep,
            )
            record.remote_version_id = published
            logger.info(f"Published version {published}: {description}")
        except (DeploymentError, ClientError, BotoCoreError) as exc:
            record.degraded = True
            record.remote_version_id = code_version or UNPUBLISHED_VERSION
            record.warn(f"Version publishing failed, code is live unpublished: {exc}")
            logger.warning(f"Failed to publish version: {exc}")

        self._enter(record, DeploymentStage.UPDATING_ALIAS)
        if published is None:
            record.warn(f"Alias {policy.alias_name} not updated: no published version")
        else:
            self._update_alias(record, policy, published)

        self._enter(record, DeploymentStage.TAGGING)
        tags = deployment_tags(policy, record, self._context, timestamp)
        try:
            self._service.tag_resource(self._function_name, tags)
        except (DeploymentError, ClientError, BotoCoreError) as exc:
            record.warn(f"Tagging failed: {exc}")
            logger.warning(f"Failed to tag {self._function_name}: {exc}")

        record.stage = DeploymentStage.DONE
        record.outcome = (
            OutcomeStatus.SUCCESS_WITH_WARNING
            if record.warnings or record.degraded
            else OutcomeStatus.SUCCESS
        )
        record.finished_at = utc_now()
        logger.info(
            f"{record.mode.value} of {record.version} to {policy.name} finished: "
            f"{record.outcome.value}"
        )

    def _update_alias(
        self, record: DeploymentRecord, policy: EnvironmentPolicy, version_id: str
    ) -> None:
        alias = policy.alias_name
        description = f"Current {policy.name} environment version: v{record.version}"

        def switch() -> None:
            self._service.delete_alias(self._function_name, alias)
            self._service.create_alias(
                self._function_name, alias, version_id, description
            )

        try:
            with_retry(
                switch,
                self._settings.retry.alias,
                operation_name=DeploymentStage.UPDATING_ALIAS.value,
                sleep=self._sleep,
            )
            logger.info(f"Alias {alias} -> version {version_id}")
        except (DeploymentError, ClientError, BotoCoreError) as exc:
            record.warn(f"Alias {alias} update failed: {exc}")
            logger.warning(f"Failed to update alias {alias}: {exc}")

    def _enter(self, record: DeploymentRecord, stage: DeploymentStage) -> None:
        if self._cancel_event.is_set():
            raise DeploymentCancelledError(stage.value)
        logger.info(f"[{record.mode.value}] {record.stage.value} -> {stage.value}")
        record.stage = stage

    def _fail(self, record: DeploymentRecord, exc: Exception) -> None:
        stage = record.stage
        # Cancellation is raised before the stage is entered
        if isinstance(exc, DeploymentCancelledError):
            stage = DeploymentStage(exc.operation)
        next_steps = list(getattr(exc, "next_steps", []))
        record.failure = StageFailure(
            stage=stage,
            message=getattr(exc, "message", None) or str(exc),
            error_type=type(exc).__name__,
            next_steps=next_steps,
        )
        record.stage = DeploymentStage.FAILED
        record.outcome = OutcomeStatus.FAILURE
        record.finished_at = utc_now()
        logger.error(
            f"{record.mode.value} of {record.version} failed at {stage.value}: {exc}"
        )
