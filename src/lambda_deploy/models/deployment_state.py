"""Models describing a single deployment run and the remote state it observes.

Nothing here is persisted locally; the only durable trace of a run is the
tags and metadata written to the remote function and artifact store.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    """Return the current UTC time."""
    return datetime.now(timezone.utc)


class DeploymentMode(str, Enum):
    """Kind of orchestration run."""

    DEPLOY = "deploy"
    ROLLBACK = "rollback"


class DeploymentStage(str, Enum):
    """States of the deploy/rollback state machine, in execution order."""

    IDLE = "Idle"
    UPLOADING = "Uploading"
    UPDATING_CODE = "UpdatingCode"
    AWAITING_READY = "AwaitingReady"
    PUBLISHING_VERSION = "PublishingVersion"
    UPDATING_ALIAS = "UpdatingAlias"
    TAGGING = "Tagging"
    DONE = "Done"
    FAILED = "Failed"


class OutcomeStatus(str, Enum):
    """Overall result of a run."""

    PENDING = "pending"
    SUCCESS = "success"
    SUCCESS_WITH_WARNING = "success-with-warning"
    FAILURE = "failure"


class FailureCategory(str, Enum):
    """Failure categories that auto-rollback triggers can react to."""

    DEPLOYMENT = "deployment_failure"
    HEALTH_CHECK = "health_check_failure"


class LifecycleState(str, Enum):
    """Remote function lifecycle state."""

    PENDING = "Pending"
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    FAILED = "Failed"


class LastUpdateStatus(str, Enum):
    """Status of the most recent remote code/configuration update."""

    IN_PROGRESS = "InProgress"
    SUCCESSFUL = "Successful"
    FAILED = "Failed"


class ArtifactLocation(BaseModel):
    """Bucket and key of a stored artifact."""

    model_config = ConfigDict(frozen=True)

    bucket: str
    key: str

    @property
    def uri(self) -> str:
        """Return the ``s3://`` URI of the artifact."""
        return f"s3://{self.bucket}/{self.key}"


class RemoteFunctionState(BaseModel):
    """Polled, read-only view of the remote function."""

    lifecycle_state: LifecycleState | None = None
    last_update_status: LastUpdateStatus | None = None
    reason: str | None = Field(default=None, description="State or update reason")
    function_arn: str | None = None
    description: str | None = None

    @property
    def is_ready(self) -> bool:
        """Whether the function accepts the next mutation."""
        return (
            self.lifecycle_state == LifecycleState.ACTIVE
            and self.last_update_status == LastUpdateStatus.SUCCESSFUL
        )

    @property
    def has_failed(self) -> bool:
        """Whether the remote side reported a definitive failure."""
        return (
            self.last_update_status == LastUpdateStatus.FAILED
            or self.lifecycle_state == LifecycleState.FAILED
        )


class HealthCheckItem(BaseModel):
    """Result of one configured expectation."""

    name: str
    passed: bool
    expected: str | None = None
    actual: str | None = None


class HealthCheckResult(BaseModel):
    """Outcome of a synthetic invocation.

    Attributes:
        passed: Whether every configured expectation held
        status_code: statusCode from the response envelope, if any
        remote_error: Error message reported by the function, if any
        checks: Individual expectation results
        details: Human readable summary
        response_excerpt: First part of the raw response body
    """

    passed: bool
    status_code: int | None = None
    remote_error: str | None = None
    checks: list[HealthCheckItem] = Field(default_factory=list)
    details: str = ""
    response_excerpt: str | None = None


class StageFailure(BaseModel):
    """Fatal error captured at a stage boundary."""

    stage: DeploymentStage
    message: str
    error_type: str
    next_steps: list[str] = Field(default_factory=list)


class RunContext(BaseModel):
    """Immutable facts about who and what triggered the run.

    Built once by the CLI layer and passed to every component.
    """

    model_config = ConfigDict(frozen=True)

    actor: str = "unknown"
    revision: str = "unknown"
    branch: str = "unknown"
    repository: str | None = None
    run_id: str | None = None


class DeploymentRecord(BaseModel):
    """Ephemeral record of one orchestration run, mutated stage by stage."""

    version: str = Field(..., description="Logical version being deployed")
    environment: str = Field(..., description="Canonical environment name")
    mode: DeploymentMode = Field(default=DeploymentMode.DEPLOY)
    stage: DeploymentStage = Field(default=DeploymentStage.IDLE)
    outcome: OutcomeStatus = Field(default=OutcomeStatus.PENDING)
    remote_version_id: str | None = Field(
        default=None, description="Published remote version id"
    )
    artifact_location: ArtifactLocation | None = None
    rollback_reason: str | None = None
    degraded: bool = Field(
        default=False, description="Code updated but no version was published"
    )
    warnings: list[str] = Field(default_factory=list)
    failure: StageFailure | None = None
    started_at: datetime = Field(default_factory=utc_now)
    finished_at: datetime | None = None

    @property
    def succeeded(self) -> bool:
        """Whether the run reached Done."""
        return self.outcome in (OutcomeStatus.SUCCESS, OutcomeStatus.SUCCESS_WITH_WARNING)

    @property
    def duration_seconds(self) -> float | None:
        """Elapsed wall time, once finished."""
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def warn(self, message: str) -> None:
        """Record an advisory failure."""
        self.warnings.append(message)


class DeploymentOutcome(BaseModel):
    """Machine-readable result of a deploy or rollback command.

    Attributes:
        function_name: Target function
        record: The primary run
        version_source: Where the version came from (deploy runs only)
        conflict_strategy: Strategy chosen by the conflict detector
        health_check: Health check of the primary run
        rollback: Automatic rollback run, when one was triggered
        rollback_health_check: Health check after the automatic rollback
        rollback_error: Why an automatic rollback could not run
        rollback_skipped: Why no automatic rollback was attempted
    """

    function_name: str
    record: DeploymentRecord
    version_source: str | None = None
    conflict_strategy: str | None = None
    health_check: HealthCheckResult | None = None
    rollback: DeploymentRecord | None = None
    rollback_health_check: HealthCheckResult | None = None
    rollback_error: str | None = None
    rollback_skipped: str | None = None

    @property
    def status(self) -> OutcomeStatus:
        """Overall status of the primary run."""
        return self.record.outcome

    @property
    def succeeded(self) -> bool:
        """Whether the primary run succeeded, possibly with warnings."""
        return self.record.succeeded

    def to_summary(self) -> dict[str, Any]:
        """Return the flat record handed to notifiers and JSON output."""
        record = self.record
        return {
            "function_name": self.function_name,
            "version": record.version,
            "environment": record.environment,
            "mode": record.mode.value,
            "outcome": record.outcome.value,
            "remote_version_id": record.remote_version_id,
            "artifact": record.artifact_location.uri if record.artifact_location else None,
            "duration_seconds": record.duration_seconds,
            "warnings": list(record.warnings),
            "failed_stage": record.failure.stage.value if record.failure else None,
            "error": record.failure.message if record.failure else None,
            "rolled_back_to": self.rollback.version if self.rollback else None,
            "rollback_outcome": self.rollback.outcome.value if self.rollback else None,
            "rollback_error": self.rollback_error,
            "rollback_skipped": self.rollback_skipped,
        }


class StoredObject(BaseModel):
    """Listing entry returned by a blob store."""

    key: str
    size: int = 0
    last_modified: datetime | None = None


class InvocationResponse(BaseModel):
    """Raw response of a synchronous function invocation.

    Attributes:
        status_code: Transport status of the invoke call itself
        function_error: Remote error signal (e.g. "Unhandled"), if any
        payload: Raw response body returned by the function
        executed_version: Remote version that served the call
    """

    status_code: int
    function_error: str | None = None
    payload: bytes = b""
    executed_version: str | None = None
