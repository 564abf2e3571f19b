"""Custom exception hierarchy for lambda-deploy configuration and operations."""

from __future__ import annotations

from collections.abc import Sequence


class LambdaDeployError(Exception):
    """Base exception for all lambda-deploy errors.

    All lambda-deploy exceptions inherit from this class, enabling
    centralized exception handling in the CLI layer.
    """

    pass


class ConfigError(LambdaDeployError):
    """Exception raised for configuration errors.

    Raised when configuration loading, parsing or validation fails, and when
    a required value (region, bucket, function name) is missing at startup.

    Attributes:
        field: The configuration field that caused the error
        message: Human-readable error message describing the issue
    """

    def __init__(self, field: str, message: str) -> None:
        """Initialize ConfigError with field and message.

        Args:
            field: Configuration field name where error occurred
            message: Descriptive error message
        """
        self.field = field
        self.message = message
        super().__init__(f"Configuration error in '{field}': {message}")


class FileNotFoundError(LambdaDeployError):
    """Exception raised when a configuration or artifact file is not found.

    Attributes:
        path: Path to the file that was not found
        message: Human-readable error message
    """

    def __init__(self, path: str, message: str) -> None:
        """Initialize FileNotFoundError with path and message.

        Args:
            path: Path to the file that was not found
            message: Descriptive error message, optionally with suggestions
        """
        self.path = path
        self.message = message
        super().__init__(f"File not found: {path}\n{message}")


class DeploymentError(LambdaDeployError):
    """Exception raised when a deployment stage fails.

    Attributes:
        operation: Name of the stage or operation that failed
        message: Human-readable description of the underlying cause
        next_steps: Concrete remediation suggestions for the operator
    """

    def __init__(
        self,
        operation: str,
        message: str,
        next_steps: Sequence[str] = (),
    ) -> None:
        """Initialize DeploymentError with operation context.

        Args:
            operation: Stage or operation name (e.g. "UpdatingCode")
            message: Description of what went wrong
            next_steps: Optional remediation suggestions
        """
        self.operation = operation
        self.message = message
        self.next_steps = list(next_steps)
        super().__init__(f"{operation} failed: {message}")


class VersionConflictError(DeploymentError):
    """Raised when a version already exists under a blocking policy.

    Attributes:
        version: The conflicting version
        environment: Environment whose policy blocked the deploy
        suggestions: Alternative versions that would not conflict
    """

    def __init__(
        self,
        version: str,
        environment: str,
        suggestions: Sequence[str] = (),
        next_steps: Sequence[str] = (),
    ) -> None:
        """Create a conflict error for an already deployed version."""
        self.version = version
        self.environment = environment
        self.suggestions = list(suggestions)
        message = f"Version {version} already exists in {environment}."
        if self.suggestions:
            message += f" Suggested versions: {', '.join(self.suggestions)}"
        super().__init__("ConflictCheck", message, next_steps)


class TransientRemoteError(DeploymentError):
    """Remote failure that is expected to clear on its own (throttling, timeouts)."""

    retryable = True


class FunctionBusyError(TransientRemoteError):
    """Raised when the function is being updated by another agent."""

    def __init__(self, function_name: str, operation: str = "UpdatingCode") -> None:
        """Create a busy error for the given function."""
        self.function_name = function_name
        super().__init__(
            operation,
            f"Function '{function_name}' has an update in progress",
        )


class RemoteServiceError(DeploymentError):
    """Error returned by a remote service call.

    Attributes:
        code: Service error code, when one was returned
        retryable: Whether the retry engine may attempt the call again
    """

    def __init__(
        self,
        operation: str,
        message: str,
        code: str | None = None,
        retryable: bool = False,
    ) -> None:
        """Create a remote service error."""
        self.code = code
        self.retryable = retryable
        super().__init__(operation, message)


class RemoteUpdateFailedError(DeploymentError):
    """Raised when the remote side reports a definitive update failure.

    Never retried: the same artifact would fail again.
    """

    def __init__(self, function_name: str, reason: str | None = None) -> None:
        """Create an error for a failed remote code update."""
        self.function_name = function_name
        self.reason = reason
        super().__init__(
            "AwaitingReady",
            f"Remote update of '{function_name}' failed: {reason or 'no reason given'}",
            ["Inspect the function logs, fix the artifact and deploy a new version"],
        )


class RetryExhaustedError(DeploymentError):
    """Raised when a retryable operation keeps failing past its attempt bound.

    Attributes:
        attempts: Number of attempts that were made
        last_error: The final exception observed
    """

    def __init__(self, operation: str, attempts: int, last_error: Exception) -> None:
        """Create an exhaustion error wrapping the last failure."""
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            operation,
            f"Gave up after {attempts} attempt(s): {last_error}",
        )


class InvalidArtifactKeyError(DeploymentError):
    """Raised when a computed artifact key is not a safe object key."""

    def __init__(
        self, key: str, reason: str | None = None, next_steps: Sequence[str] = ()
    ) -> None:
        """Create an error for an unsafe artifact key."""
        self.key = key
        message = f"Invalid artifact key: {key!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__("Uploading", message, next_steps)


class ArtifactNotFoundError(DeploymentError):
    """Raised when the requested version has no stored artifact.

    Attributes:
        version: Version that was requested
        environment: Environment that was searched
        available_versions: Versions that do exist, newest first
    """

    def __init__(
        self,
        version: str,
        environment: str,
        available_versions: Sequence[str] = (),
    ) -> None:
        """Create a version-not-found error listing what is available."""
        self.version = version
        self.environment = environment
        self.available_versions = list(available_versions)
        if self.available_versions:
            listing = ", ".join(self.available_versions)
            next_steps = [f"Choose one of the available versions: {listing}"]
        else:
            next_steps = [f"No artifacts are stored for {environment}; deploy first"]
        super().__init__(
            "FetchingArtifact",
            f"Version {version} not found in {environment} artifact store",
            next_steps,
        )


class RollbackTargetError(DeploymentError):
    """Raised when no rollback target can be resolved for a strategy."""

    def __init__(self, strategy: str, message: str) -> None:
        """Create an error for an unresolvable rollback target."""
        self.strategy = strategy
        super().__init__(
            "SelectingRollbackTarget",
            message,
            [
                "Pass an explicit target with --to-version",
                "Set deployment.auto_rollback.strategy to specific_version "
                "with a target_version",
            ],
        )


class RollbackNotSupportedError(DeploymentError):
    """Raised when rollback is attempted for a timestamp-keyed environment."""

    def __init__(self, environment: str) -> None:
        """Create an error for an environment without versioned artifacts."""
        self.environment = environment
        super().__init__(
            "Rollback",
            f"Environment '{environment}' stores artifacts by timestamp "
            "and cannot be rolled back by version",
            ["Redeploy the desired code to this environment instead"],
        )


class DeploymentCancelledError(DeploymentError):
    """Raised at a stage boundary when the run has been cancelled."""

    def __init__(self, stage: str) -> None:
        """Create a cancellation error for the stage about to start."""
        super().__init__(stage, "Deployment cancelled before stage started")


class NotificationError(LambdaDeployError):
    """Exception raised when a notification webhook rejects or drops a message.

    Attributes:
        url: Webhook that failed (without query string)
        status_code: HTTP status, when a response was received
        retryable: Whether the delivery may be attempted again
    """

    def __init__(
        self,
        url: str,
        message: str,
        status_code: int | None = None,
        retryable: bool = False,
    ) -> None:
        """Create a delivery error for a webhook."""
        self.url = url
        self.status_code = status_code
        self.retryable = retryable
        self.message = message
        super().__init__(f"Notification to {url} failed: {message}")
