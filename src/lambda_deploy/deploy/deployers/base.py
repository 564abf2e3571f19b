"""Base interfaces for the remote services lambda-deploy drives."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping

from lambda_deploy.models.deployment_state import (
    ArtifactLocation,
    InvocationResponse,
    RemoteFunctionState,
    StoredObject,
)


class BaseBlobStore(ABC):
    """Abstract versioned object store holding deployment artifacts."""

    @abstractmethod
    def exists(self, bucket: str, key: str) -> bool:
        """Check whether an object exists at exactly ``key``.

        Args:
            bucket: Bucket name.
            key: Full object key.

        Returns:
            True if the object exists, False if the store reports it missing.

        Raises:
            Exception: Any other failure (network, auth), left to the caller's
                retry policy.
        """

    @abstractmethod
    def put(
        self,
        bucket: str,
        key: str,
        data: bytes,
        metadata: Mapping[str, str] | None = None,
    ) -> None:
        """Write an object, replacing any existing one.

        Args:
            bucket: Bucket name.
            key: Full object key.
            data: Object content.
            metadata: User metadata stored alongside the object.
        """

    @abstractmethod
    def get(self, bucket: str, key: str) -> bytes:
        """Read an object.

        Raises:
            ArtifactNotFoundError: When no object exists at ``key``.
        """

    @abstractmethod
    def list(self, bucket: str, prefix: str) -> list[StoredObject]:
        """List every object whose key starts with ``prefix``."""


class BaseFunctionService(ABC):
    """Abstract serverless function control plane."""

    @abstractmethod
    def get_state(self, function_name: str) -> RemoteFunctionState:
        """Read the lifecycle and last-update status of the function."""

    @abstractmethod
    def update_code(self, function_name: str, location: ArtifactLocation) -> str:
        """Point the function's unpublished code at a stored artifact.

        Args:
            function_name: Target function.
            location: Artifact to deploy.

        Returns:
            The remote version id of the updated code (usually "$LATEST").

        Raises:
            FunctionBusyError: Another update is in progress.
            RemoteServiceError: Any other service error.
        """

    @abstractmethod
    def publish_version(self, function_name: str, description: str) -> str:
        """Snapshot the current code as an immutable version and return its id."""

    @abstractmethod
    def delete_alias(self, function_name: str, alias_name: str) -> bool:
        """Delete an alias; return False if it did not exist."""

    @abstractmethod
    def create_alias(
        self,
        function_name: str,
        alias_name: str,
        version_id: str,
        description: str,
    ) -> None:
        """Create an alias pointing at a published version."""

    @abstractmethod
    def tag_resource(self, function_name: str, tags: Mapping[str, str]) -> None:
        """Attach or overwrite tags on the function."""

    @abstractmethod
    def list_tags(self, function_name: str) -> dict[str, str]:
        """Read the function's tags."""

    @abstractmethod
    def invoke(
        self,
        function_name: str,
        payload: bytes,
        qualifier: str | None = None,
    ) -> InvocationResponse:
        """Invoke the function synchronously.

        Args:
            function_name: Target function.
            payload: JSON request body.
            qualifier: Version or alias to invoke; unqualified when None.

        Returns:
            The raw invocation response.
        """
