"""Artifact store manager.

Artifacts live at ``<function>/<environment>/<identifier>.zip`` where the
identifier is an upload timestamp for timestamp-keyed environments and the
normalized version otherwise. Each environment also has a ``latest.zip``
pointer, maintained on a best-effort basis.
"""

from __future__ import annotations

import re
import tempfile
import time
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

from botocore.exceptions import ClientError

from lambda_deploy.deploy.builder import BuildArtifact
from lambda_deploy.deploy.deployers.base import BaseBlobStore
from lambda_deploy.deploy.environment import EnvironmentPolicy, PathStrategy
from lambda_deploy.deploy.retry import is_retryable_error, with_retry
from lambda_deploy.deploy.version import normalize_version, version_sort_key
from lambda_deploy.lib.errors import ArtifactNotFoundError, InvalidArtifactKeyError
from lambda_deploy.lib.logging_config import get_logger
from lambda_deploy.models.deployment import RetrySettings
from lambda_deploy.models.deployment_state import ArtifactLocation, RunContext

logger = get_logger(__name__)

ARTIFACT_EXTENSION = ".zip"
LATEST_IDENTIFIER = "latest"
SAFE_KEY_PATTERN = re.compile(r"^[A-Za-z0-9/_.+-]+$")
MAX_KEY_LENGTH = 1024

# Authorization failures on reads are often credential propagation delays
_READ_RETRYABLE_CODES = frozenset({"AccessDenied", "403", "ExpiredToken"})


def validate_key(key: str) -> str:
    """Return ``key`` if it is a single-line, path-safe object key.

    Raises:
        InvalidArtifactKeyError: On control characters, unsafe characters,
            empty or ``..`` segments, or excessive length
    """
    segments = key.split("/")
    if (
        not key
        or len(key) > MAX_KEY_LENGTH
        or not SAFE_KEY_PATTERN.fullmatch(key)
        or any(segment in ("", ".", "..") for segment in segments)
    ):
        raise InvalidArtifactKeyError(key)
    return key


def _is_read_retryable(exc: BaseException) -> bool:
    if isinstance(exc, ArtifactNotFoundError):
        return False
    if isinstance(exc, ClientError):
        code = exc.response.get("Error", {}).get("Code", "")
        if code in _READ_RETRYABLE_CODES:
            return True
    return is_retryable_error(exc)


class ArtifactStore:
    """Environment-namespaced artifact storage for one function.

    Args:
        blob_store: Object store client
        bucket: Bucket holding the artifacts
        function_name: Function the artifacts belong to; first key segment
        retry: Retry policies for uploads and reads
        context: Run facts recorded as upload metadata
        clock: Epoch-seconds clock used for timestamp identifiers
        sleep: Sleep function used between retries
    """

    def __init__(
        self,
        blob_store: BaseBlobStore,
        bucket: str,
        function_name: str,
        *,
        retry: RetrySettings | None = None,
        context: RunContext | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._blob = blob_store
        self.bucket = bucket
        self.function_name = function_name
        self._retry = retry or RetrySettings()
        self._context = context or RunContext()
        self._clock = clock
        self._sleep = sleep

    def build_key(self, policy: EnvironmentPolicy, identifier: str) -> str:
        """Return the key for an identifier (version or timestamp) in an environment."""
        identifier = normalize_version(identifier)
        key = f"{self.function_name}/{policy.name}/{identifier}{ARTIFACT_EXTENSION}"
        if "/" in identifier:
            # Keys are exactly function/env/identifier.ext
            raise InvalidArtifactKeyError(
                key,
                f"identifier {identifier!r} contains '/'",
                next_steps=[
                    f"Pass --version {identifier.rsplit('/', 1)[-1]} instead",
                    "Tag releases as X.Y.Z or vX.Y.Z without a path prefix",
                ],
            )
        return validate_key(key)

    def latest_key(self, policy: EnvironmentPolicy) -> str:
        """Return the key of the environment's latest pointer."""
        return self.build_key(policy, LATEST_IDENTIFIER)

    def identifier_for(
        self,
        policy: EnvironmentPolicy,
        version: str,
        timestamp: int | None = None,
    ) -> str:
        """Choose the key identifier for a new upload."""
        if policy.path_strategy == PathStrategy.TIMESTAMP:
            return str(timestamp if timestamp is not None else int(self._clock()))
        return normalize_version(version)

    def location(self, policy: EnvironmentPolicy, identifier: str) -> ArtifactLocation:
        """Return bucket and key for an identifier."""
        return ArtifactLocation(bucket=self.bucket, key=self.build_key(policy, identifier))

    def put(
        self,
        artifact: BuildArtifact | bytes,
        policy: EnvironmentPolicy,
        version: str,
        timestamp: int | None = None,
    ) -> ArtifactLocation:
        """Upload an artifact and refresh the environment's latest pointer.

        Returns:
            Location of the versioned (or timestamped) object

        Raises:
            RetryExhaustedError: If the upload kept failing
        """
        data = artifact if isinstance(artifact, bytes) else artifact.read_bytes()
        identifier = self.identifier_for(policy, version, timestamp)
        if identifier == LATEST_IDENTIFIER:
            raise InvalidArtifactKeyError(self.latest_key(policy))
        location = self.location(policy, identifier)
        metadata = self._upload_metadata(policy, version)

        logger.info(f"Uploading {len(data)} bytes to {location.uri}")
        with_retry(
            lambda: self._blob.put(self.bucket, location.key, data, metadata),
            self._retry.upload,
            operation_name="Uploading",
            sleep=self._sleep,
        )
        logger.info(f"Uploaded artifact to {location.uri}")

        self._write_latest(policy, version, location.key, data)
        return location

    def exists(self, policy: EnvironmentPolicy, identifier: str) -> bool:
        """Check for an object at exactly the computed key.

        Not-found is a normal answer; network and authorization errors are
        retried.
        """
        key = self.build_key(policy, identifier)
        return with_retry(
            lambda: self._blob.exists(self.bucket, key),
            self._retry.artifact_read,
            operation_name="ExistenceCheck",
            is_retryable=_is_read_retryable,
            sleep=self._sleep,
        )

    def require(self, policy: EnvironmentPolicy, identifier: str) -> ArtifactLocation:
        """Return the location of a stored version or fail listing alternatives.

        Raises:
            ArtifactNotFoundError: If nothing is stored for the version
        """
        if not self.exists(policy, identifier):
            available = self.list_versions(policy)[:10]
            logger.error(
                f"Version {identifier} not found in {policy.name}; "
                f"available: {', '.join(available) or 'none'}"
            )
            raise ArtifactNotFoundError(
                normalize_version(identifier), policy.name, available
            )
        return self.location(policy, identifier)

    def get(
        self,
        policy: EnvironmentPolicy,
        identifier: str,
        destination_dir: Path | None = None,
    ) -> Path:
        """Download a stored artifact and return its local path.

        Raises:
            ArtifactNotFoundError: If the version is absent; never substitutes
                another version
        """
        location = self.require(policy, identifier)
        try:
            data = with_retry(
                lambda: self._blob.get(self.bucket, location.key),
                self._retry.artifact_read,
                operation_name="FetchingArtifact",
                is_retryable=_is_read_retryable,
                sleep=self._sleep,
            )
        except ArtifactNotFoundError as exc:
            raise ArtifactNotFoundError(
                normalize_version(identifier),
                policy.name,
                self.list_versions(policy)[:10],
            ) from exc

        target_dir = destination_dir or Path(tempfile.mkdtemp(prefix="lambda-deploy-"))
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / Path(location.key).name
        path.write_bytes(data)
        logger.info(f"Fetched {location.uri} ({len(data)} bytes) to {path}")
        return path

    def update_latest_pointer(
        self,
        policy: EnvironmentPolicy,
        version: str,
        source_key: str | None = None,
    ) -> bool:
        """Copy a stored artifact to the environment's latest pointer.

        Args:
            policy: Environment policy
            version: Version recorded on the pointer
            source_key: Object to copy; defaults to the key for ``version``

        Returns:
            True if the pointer was written. Failures are logged, never raised.
        """
        key = source_key or self.build_key(policy, version)
        try:
            data = self._blob.get(self.bucket, key)
        except Exception as exc:
            logger.warning(f"Could not read {key} to update latest pointer: {exc}")
            return False
        return self._write_latest(policy, version, key, data)

    def list_versions(self, policy: EnvironmentPolicy) -> list[str]:
        """List stored identifiers for an environment, newest version first."""
        prefix = f"{self.function_name}/{policy.name}/"
        objects = with_retry(
            lambda: self._blob.list(self.bucket, prefix),
            self._retry.artifact_read,
            operation_name="ListingArtifacts",
            is_retryable=_is_read_retryable,
            sleep=self._sleep,
        )
        identifiers = []
        for stored in objects:
            name = stored.key[len(prefix) :]
            if "/" in name or not name.endswith(ARTIFACT_EXTENSION):
                continue
            identifier = name[: -len(ARTIFACT_EXTENSION)]
            if identifier and identifier != LATEST_IDENTIFIER:
                identifiers.append(identifier)
        return sorted(identifiers, key=version_sort_key, reverse=True)

    def _write_latest(
        self,
        policy: EnvironmentPolicy,
        version: str,
        source_key: str,
        data: bytes,
    ) -> bool:
        latest = self.latest_key(policy)
        metadata = {
            "environment": policy.name,
            "version": normalize_version(version),
            "source_key": source_key,
        }
        try:
            with_retry(
                lambda: self._blob.put(self.bucket, latest, data, metadata),
                self._retry.upload.model_copy(update={"max_attempts": 2}),
                operation_name="UpdatingLatestPointer",
                sleep=self._sleep,
            )
        except Exception as exc:
            logger.warning(f"Failed to update latest pointer {latest}: {exc}")
            return False
        logger.debug(f"Latest pointer {latest} -> {source_key}")
        return True

    def _upload_metadata(self, policy: EnvironmentPolicy, version: str) -> dict[str, str]:
        ctx = self._context
        deployed_at = datetime.fromtimestamp(self._clock(), tz=timezone.utc)
        metadata = {
            "environment": policy.name,
            "version": normalize_version(version),
            "deployed_at": deployed_at.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "commit": ctx.revision,
            "deployed_by": ctx.actor,
        }
        if not policy.production:
            metadata["branch"] = ctx.branch
        return metadata
