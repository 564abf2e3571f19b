"""Remote service clients for lambda-deploy."""

from __future__ import annotations

from typing import Any

import boto3
from botocore.config import Config

from lambda_deploy.deploy.deployers.aws_lambda import LambdaFunctionService
from lambda_deploy.deploy.deployers.base import BaseBlobStore, BaseFunctionService
from lambda_deploy.deploy.deployers.s3 import S3BlobStore
from lambda_deploy.lib.errors import ConfigError
from lambda_deploy.models.deployment import AuthMode, AWSConfig


def create_session(aws: AWSConfig) -> boto3.Session:
    """Create a boto3 session for the configured region and auth mode.

    Credentials themselves are resolved by boto3's default chain; only the
    'profile' auth mode selects a named profile.
    """
    profile = aws.profile if aws.auth_mode == AuthMode.PROFILE else None
    return boto3.Session(profile_name=profile, region_name=aws.region)


def _client(session: boto3.Session, service: str, aws: AWSConfig) -> Any:
    # The retry engine owns retries; keep the SDK to a single attempt.
    config = Config(
        connect_timeout=aws.sdk_timeout_seconds,
        read_timeout=aws.sdk_timeout_seconds,
        retries={"total_max_attempts": 1, "mode": "standard"},
    )
    return session.client(service, config=config)


def create_services(
    aws: AWSConfig, session: boto3.Session | None = None
) -> tuple[BaseFunctionService, BaseBlobStore]:
    """Create the Lambda function service and S3 blob store for a target."""
    if not aws.region or not aws.function_name or not aws.s3_bucket:
        raise ConfigError(
            field="aws",
            message="region, s3_bucket and function_name are required",
        )
    session = session or create_session(aws)
    return (
        LambdaFunctionService(_client(session, "lambda", aws)),
        S3BlobStore(_client(session, "s3", aws)),
    )


__all__ = [
    "BaseBlobStore",
    "BaseFunctionService",
    "LambdaFunctionService",
    "S3BlobStore",
    "create_services",
    "create_session",
]
