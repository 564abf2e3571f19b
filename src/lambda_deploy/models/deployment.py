"""Pydantic models for deployment configuration.

This module defines the schema of ``lambda-deploy-config.yml``: project
metadata, AWS targets, health checks, auto-rollback, retry policies and
notification endpoints.
"""

import re
from enum import Enum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


class RuntimeType(str, Enum):
    """Function runtimes the build collaborator can package."""

    PYTHON = "python"
    NODE = "node"
    BUN = "bun"


class AuthMode(str, Enum):
    """How AWS credentials are obtained before the orchestrator starts."""

    OIDC = "oidc"
    ACCESS_KEYS = "access_keys"
    PROFILE = "profile"


class RollbackStrategy(str, Enum):
    """How a rollback target version is chosen."""

    LAST_SUCCESSFUL = "last_successful"
    SPECIFIC_VERSION = "specific_version"
    PREVIOUS_STABLE = "previous_stable"


# Regex patterns for validation
AWS_REGION_PATTERN = re.compile(r"^[a-z]{2}(-[a-z]+)+-\d$")
S3_BUCKET_PATTERN = re.compile(r"^[a-z0-9][a-z0-9.-]{1,61}[a-z0-9]$")
FUNCTION_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


class RetryPolicy(BaseModel):
    """Retry policy for one class of remote call.

    The delay before attempt ``n + 1`` is ``base_delay * 2 ** (n - 1)``
    capped at ``max_delay``, plus up to ``jitter`` (fraction) of that delay.

    Attributes:
        max_attempts: Total attempts including the first
        base_delay: Delay in seconds after the first failure
        max_delay: Upper bound for a single delay in seconds
        jitter: Random extra delay as a fraction of the computed delay
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    max_attempts: int = Field(default=3, ge=1, le=20, description="Total attempts")
    base_delay: float = Field(default=2.0, ge=0, description="Initial delay (s)")
    max_delay: float = Field(default=60.0, ge=0, description="Delay cap (s)")
    jitter: float = Field(default=0.2, ge=0, le=1, description="Jitter fraction")

    @model_validator(mode="after")
    def validate_delays(self) -> "RetryPolicy":
        """Validate that the cap is not below the base delay."""
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be greater than or equal to base_delay")
        return self


class RetrySettings(BaseModel):
    """Retry policies per remote operation."""

    model_config = ConfigDict(extra="forbid")

    upload: RetryPolicy = Field(
        default_factory=lambda: RetryPolicy(max_attempts=3, base_delay=2, max_delay=30)
    )
    artifact_read: RetryPolicy = Field(
        default_factory=lambda: RetryPolicy(max_attempts=3, base_delay=2, max_delay=10)
    )
    update_code: RetryPolicy = Field(
        default_factory=lambda: RetryPolicy(max_attempts=3, base_delay=10, max_delay=30)
    )
    publish_version: RetryPolicy = Field(
        default_factory=lambda: RetryPolicy(max_attempts=3, base_delay=5, max_delay=30)
    )
    alias: RetryPolicy = Field(
        default_factory=lambda: RetryPolicy(max_attempts=2, base_delay=2, max_delay=10)
    )
    invoke: RetryPolicy = Field(
        default_factory=lambda: RetryPolicy(max_attempts=3, base_delay=2, max_delay=30)
    )


class ProjectConfig(BaseModel):
    """Project metadata.

    Attributes:
        name: Project name
        runtime: Function runtime
        version: Optional explicit version, used when none is passed on the CLI
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, description="Project name")
    runtime: RuntimeType = Field(..., description="Function runtime")
    version: str | None = Field(default=None, description="Explicit version")


class AWSConfig(BaseModel):
    """AWS target resources.

    The function and the bucket must already exist; lambda-deploy never
    provisions infrastructure.

    Attributes:
        region: AWS region of the function and bucket
        s3_bucket: Bucket holding deployment artifacts
        function_name: Name of the Lambda function
        auth_mode: How credentials were obtained
        profile: Named profile used when auth_mode is 'profile'
        sdk_timeout_seconds: Connect/read timeout for SDK calls
    """

    model_config = ConfigDict(extra="forbid")

    region: str = Field(..., description="AWS region (e.g. us-east-1)")
    s3_bucket: str = Field(..., description="Artifact bucket name")
    function_name: str = Field(..., description="Lambda function name")
    auth_mode: AuthMode = Field(default=AuthMode.OIDC, description="Auth mode")
    profile: str | None = Field(default=None, description="AWS profile name")
    sdk_timeout_seconds: int = Field(default=30, ge=1, le=900)

    @field_validator("region")
    @classmethod
    def validate_region(cls, v: str) -> str:
        """Validate AWS region format."""
        if not AWS_REGION_PATTERN.match(v):
            raise ValueError(f"Invalid AWS region: {v}")
        return v

    @field_validator("s3_bucket")
    @classmethod
    def validate_bucket(cls, v: str) -> str:
        """Validate S3 bucket naming rules."""
        if not S3_BUCKET_PATTERN.match(v) or ".." in v:
            raise ValueError(f"Invalid S3 bucket name: {v}")
        return v

    @field_validator("function_name")
    @classmethod
    def validate_function_name(cls, v: str) -> str:
        """Validate Lambda function name."""
        if not FUNCTION_NAME_PATTERN.match(v):
            raise ValueError(
                f"Invalid function name: {v}. "
                "Must contain only letters, numbers, '-' and '_' (max 64)"
            )
        return v

    @model_validator(mode="after")
    def validate_profile(self) -> "AWSConfig":
        """Validate that a profile is named when auth_mode is 'profile'."""
        if self.auth_mode == AuthMode.PROFILE and not self.profile:
            raise ValueError("profile is required when auth_mode is 'profile'")
        return self


class HealthCheckConfig(BaseModel):
    """Post-deploy health check expectations.

    Attributes:
        enabled: Whether to invoke the function after deploying
        test_payload: JSON document sent to the function
        test_payload_object: Payload given as a YAML mapping
        expected_status_code: statusCode expected in the response envelope
        expected_response_contains: Substring expected in the response body
        expected_error_message: Substring expected in a remote error message
    """

    model_config = ConfigDict(extra="forbid")

    enabled: bool = Field(default=True)
    test_payload: str | None = Field(default=None, description="JSON payload")
    test_payload_object: dict[str, Any] | None = Field(default=None)
    expected_status_code: int | None = Field(default=200)
    expected_response_contains: str | None = Field(default=None)
    expected_error_message: str | None = Field(default=None)

    @model_validator(mode="after")
    def validate_payload(self) -> "HealthCheckConfig":
        """Validate that at most one payload form is set."""
        if self.test_payload is not None and self.test_payload_object is not None:
            raise ValueError(
                "Only one of test_payload and test_payload_object may be set"
            )
        return self


class RollbackTriggers(BaseModel):
    """Failure categories that trigger an automatic rollback."""

    model_config = ConfigDict(extra="forbid")

    on_deployment_failure: bool = Field(default=True)
    on_health_check_failure: bool = Field(default=False)


class RollbackBehavior(BaseModel):
    """Bounds on automatic rollback."""

    model_config = ConfigDict(extra="forbid")

    max_attempts: int = Field(default=1, ge=1, le=5)


class AutoRollbackConfig(BaseModel):
    """Automatic rollback configuration.

    Attributes:
        enabled: Master switch for automatic rollback
        strategy: How the target version is chosen
        target_version: Fixed target for the specific_version strategy
        triggers: Failure categories that start a rollback
        behavior: Rollback bounds
    """

    model_config = ConfigDict(extra="forbid")

    enabled: bool = Field(default=False)
    strategy: RollbackStrategy = Field(default=RollbackStrategy.LAST_SUCCESSFUL)
    target_version: str | None = Field(default=None)
    triggers: RollbackTriggers = Field(default_factory=RollbackTriggers)
    behavior: RollbackBehavior = Field(default_factory=RollbackBehavior)

    @model_validator(mode="after")
    def validate_target_version(self) -> "AutoRollbackConfig":
        """Validate that specific_version has a target."""
        if self.strategy == RollbackStrategy.SPECIFIC_VERSION and not (
            self.target_version
        ):
            raise ValueError(
                "target_version is required when strategy is 'specific_version'"
            )
        return self


class DeploymentSettings(BaseModel):
    """Deployment behaviour settings."""

    model_config = ConfigDict(extra="forbid")

    health_check: HealthCheckConfig = Field(default_factory=HealthCheckConfig)
    auto_rollback: AutoRollbackConfig = Field(default_factory=AutoRollbackConfig)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    ready_timeout_seconds: float = Field(default=120, gt=0)
    ready_poll_interval_seconds: float = Field(default=2, gt=0)


class NotificationConfig(BaseModel):
    """Webhook endpoints that receive deployment outcomes."""

    model_config = ConfigDict(extra="forbid")

    slack_webhook_url: str | None = Field(default=None)
    teams_webhook_url: str | None = Field(default=None)
    webhook_url: str | None = Field(default=None)
    timeout_seconds: float = Field(default=10, gt=0)

    @field_validator("slack_webhook_url", "teams_webhook_url", "webhook_url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate that webhook URLs use http(s)."""
        if v is not None and not v.startswith(("https://", "http://")):
            raise ValueError(f"Webhook URL must start with http(s)://: {v}")
        return v

    @property
    def has_targets(self) -> bool:
        """Whether any webhook is configured."""
        return bool(self.slack_webhook_url or self.teams_webhook_url or self.webhook_url)


class LambdaDeployConfig(BaseModel):
    """Root of ``lambda-deploy-config.yml``."""

    model_config = ConfigDict(extra="forbid")

    project: ProjectConfig
    aws: AWSConfig
    deployment: DeploymentSettings = Field(default_factory=DeploymentSettings)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
