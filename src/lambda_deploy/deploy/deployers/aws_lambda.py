"""AWS Lambda function service implementation."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from botocore.exceptions import ClientError

from lambda_deploy.deploy.deployers.base import BaseFunctionService
from lambda_deploy.lib.errors import FunctionBusyError, RemoteServiceError
from lambda_deploy.lib.logging_config import get_logger
from lambda_deploy.models.deployment_state import (
    ArtifactLocation,
    InvocationResponse,
    LastUpdateStatus,
    LifecycleState,
    RemoteFunctionState,
)

logger = get_logger(__name__)

# Lambda rejects tag values outside this alphabet
_TAG_VALUE_INVALID = re.compile(r"[^\w\s.:/=+\-@]")
MAX_TAG_VALUE_LENGTH = 256
MAX_DESCRIPTION_LENGTH = 256

_THROTTLE_CODES = frozenset(
    {"TooManyRequestsException", "ThrottlingException", "Throttling"}
)


def sanitize_tag_value(value: str) -> str:
    """Replace characters Lambda does not accept in tag values."""
    return _TAG_VALUE_INVALID.sub("-", value)[:MAX_TAG_VALUE_LENGTH]


def _error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")


def _enum_or_none(enum_type: Any, value: str | None) -> Any:
    if value is None:
        return None
    try:
        return enum_type(value)
    except ValueError:
        return None


class LambdaFunctionService(BaseFunctionService):
    """Drive an existing Lambda function through boto3.

    Client errors are mapped onto the lambda-deploy error taxonomy: a
    concurrent update becomes ``FunctionBusyError``, throttling and 5xx
    responses become retryable ``RemoteServiceError``, everything else is
    non-retryable.
    """

    def __init__(self, client: Any) -> None:
        """Initialize with a boto3 Lambda client."""
        self._client = client
        self._arns: dict[str, str] = {}

    def get_state(self, function_name: str) -> RemoteFunctionState:
        try:
            config = self._client.get_function_configuration(FunctionName=function_name)
        except ClientError as exc:
            raise self._map_error(exc, "GetFunctionState", function_name) from exc

        arn = config.get("FunctionArn")
        if arn:
            self._arns[function_name] = arn
        return RemoteFunctionState(
            lifecycle_state=_enum_or_none(LifecycleState, config.get("State")),
            last_update_status=_enum_or_none(
                LastUpdateStatus, config.get("LastUpdateStatus")
            ),
            reason=config.get("LastUpdateStatusReason") or config.get("StateReason"),
            function_arn=arn,
            description=config.get("Description"),
        )

    def update_code(self, function_name: str, location: ArtifactLocation) -> str:
        try:
            response = self._client.update_function_code(
                FunctionName=function_name,
                S3Bucket=location.bucket,
                S3Key=location.key,
            )
        except ClientError as exc:
            raise self._map_error(exc, "UpdatingCode", function_name) from exc
        logger.debug(
            f"update_function_code accepted for {function_name}: "
            f"sha256={response.get('CodeSha256')} size={response.get('CodeSize')}"
        )
        return response.get("Version", "$LATEST")

    def publish_version(self, function_name: str, description: str) -> str:
        try:
            response = self._client.publish_version(
                FunctionName=function_name,
                Description=description[:MAX_DESCRIPTION_LENGTH],
            )
        except ClientError as exc:
            raise self._map_error(exc, "PublishingVersion", function_name) from exc
        return str(response["Version"])

    def delete_alias(self, function_name: str, alias_name: str) -> bool:
        try:
            self._client.delete_alias(FunctionName=function_name, Name=alias_name)
        except ClientError as exc:
            if _error_code(exc) == "ResourceNotFoundException":
                return False
            raise self._map_error(exc, "UpdatingAlias", function_name) from exc
        return True

    def create_alias(
        self,
        function_name: str,
        alias_name: str,
        version_id: str,
        description: str,
    ) -> None:
        try:
            self._client.create_alias(
                FunctionName=function_name,
                Name=alias_name,
                FunctionVersion=version_id,
                Description=description[:MAX_DESCRIPTION_LENGTH],
            )
        except ClientError as exc:
            raise self._map_error(exc, "UpdatingAlias", function_name) from exc

    def tag_resource(self, function_name: str, tags: Mapping[str, str]) -> None:
        arn = self._resolve_arn(function_name)
        clean = {key: sanitize_tag_value(str(value)) for key, value in tags.items()}
        try:
            self._client.tag_resource(Resource=arn, Tags=clean)
        except ClientError as exc:
            raise self._map_error(exc, "Tagging", function_name) from exc

    def list_tags(self, function_name: str) -> dict[str, str]:
        arn = self._resolve_arn(function_name)
        try:
            response = self._client.list_tags(Resource=arn)
        except ClientError as exc:
            raise self._map_error(exc, "ReadingTags", function_name) from exc
        return dict(response.get("Tags", {}))

    def invoke(
        self,
        function_name: str,
        payload: bytes,
        qualifier: str | None = None,
    ) -> InvocationResponse:
        kwargs: dict[str, Any] = {
            "FunctionName": function_name,
            "InvocationType": "RequestResponse",
            "Payload": payload,
        }
        if qualifier:
            kwargs["Qualifier"] = qualifier
        try:
            response = self._client.invoke(**kwargs)
        except ClientError as exc:
            raise self._map_error(exc, "Invoking", function_name) from exc

        stream = response.get("Payload")
        body = stream.read() if stream is not None else b""
        return InvocationResponse(
            status_code=response.get("StatusCode", 0),
            function_error=response.get("FunctionError"),
            payload=body,
            executed_version=response.get("ExecutedVersion"),
        )

    def _resolve_arn(self, function_name: str) -> str:
        if function_name not in self._arns:
            state = self.get_state(function_name)
            if not state.function_arn:
                raise RemoteServiceError(
                    "Tagging", f"Could not resolve ARN of function '{function_name}'"
                )
        return self._arns[function_name]

    def _map_error(
        self, exc: ClientError, operation: str, function_name: str
    ) -> Exception:
        code = _error_code(exc)
        message = exc.response.get("Error", {}).get("Message", str(exc))
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)

        if code == "ResourceConflictException":
            return FunctionBusyError(function_name, operation)
        retryable = code in _THROTTLE_CODES or status >= 500
        return RemoteServiceError(
            operation,
            f"{code or 'Error'}: {message}",
            code=code or None,
            retryable=retryable,
        )
