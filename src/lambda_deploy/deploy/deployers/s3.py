"""Amazon S3 blob store implementation."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from botocore.exceptions import ClientError

from lambda_deploy.deploy.deployers.base import BaseBlobStore
from lambda_deploy.lib.errors import ArtifactNotFoundError
from lambda_deploy.lib.logging_config import get_logger
from lambda_deploy.models.deployment_state import StoredObject

logger = get_logger(__name__)

NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})


def _is_not_found(exc: ClientError) -> bool:
    code = exc.response.get("Error", {}).get("Code", "")
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return code in NOT_FOUND_CODES or status == 404


class S3BlobStore(BaseBlobStore):
    """Store artifacts in S3.

    ``exists`` uses HeadObject so a missing key is an answer, not an error;
    every other client error is left for the caller's retry policy.
    """

    def __init__(self, client: Any) -> None:
        """Initialize with a boto3 S3 client."""
        self._client = client

    def exists(self, bucket: str, key: str) -> bool:
        try:
            self._client.head_object(Bucket=bucket, Key=key)
        except ClientError as exc:
            if _is_not_found(exc):
                logger.debug(f"s3://{bucket}/{key} does not exist")
                return False
            raise
        return True

    def put(
        self,
        bucket: str,
        key: str,
        data: bytes,
        metadata: Mapping[str, str] | None = None,
    ) -> None:
        self._client.put_object(
            Bucket=bucket,
            Key=key,
            Body=data,
            Metadata=dict(metadata or {}),
        )
        logger.debug(f"Wrote {len(data)} bytes to s3://{bucket}/{key}")

    def get(self, bucket: str, key: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=bucket, Key=key)
        except ClientError as exc:
            if _is_not_found(exc):
                raise ArtifactNotFoundError(version=key, environment=bucket) from exc
            raise
        body = response["Body"]
        try:
            return body.read()
        finally:
            body.close()

    def list(self, bucket: str, prefix: str) -> list[StoredObject]:
        objects: list[StoredObject] = []
        paginator = self._client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
            for entry in page.get("Contents", []):
                objects.append(
                    StoredObject(
                        key=entry["Key"],
                        size=entry.get("Size", 0),
                        last_modified=entry.get("LastModified"),
                    )
                )
        return objects
