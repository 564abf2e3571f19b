"""Post-deploy health validation by synthetic invocation.

A failed health check is advisory: it never fails the deployment itself,
but its result is recorded so auto-rollback triggers can react to it.
"""

from __future__ import annotations

import json
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from lambda_deploy.deploy.deployers.base import BaseFunctionService
from lambda_deploy.deploy.retry import with_retry
from lambda_deploy.lib.errors import ConfigError, DeploymentError
from lambda_deploy.lib.logging_config import get_logger
from lambda_deploy.models.deployment import HealthCheckConfig, RetryPolicy
from lambda_deploy.models.deployment_state import (
    HealthCheckItem,
    HealthCheckResult,
    InvocationResponse,
)

logger = get_logger(__name__)

DEPLOYMENT_CHECK_SOURCE = "deployment-health-check"
ROLLBACK_CHECK_SOURCE = "rollback-health-check"
EXCERPT_LENGTH = 500


def build_payload(
    config: HealthCheckConfig,
    source: str = DEPLOYMENT_CHECK_SOURCE,
    now: datetime | None = None,
) -> bytes:
    """Build the JSON request body for a health check.

    Uses ``test_payload`` or ``test_payload_object`` when configured,
    otherwise a small marker document.

    Raises:
        ConfigError: If ``test_payload`` is not valid JSON
    """
    if config.test_payload is not None:
        try:
            json.loads(config.test_payload)
        except ValueError as exc:
            raise ConfigError(
                field="deployment.health_check.test_payload",
                message=f"test_payload is not valid JSON: {exc}",
            ) from exc
        return config.test_payload.encode("utf-8")

    if config.test_payload_object is not None:
        return json.dumps(config.test_payload_object).encode("utf-8")

    payload: dict[str, Any] = {"source": source, "test": True}
    if source == DEPLOYMENT_CHECK_SOURCE:
        moment = now or datetime.now(timezone.utc)
        payload["timestamp"] = moment.strftime("%Y-%m-%dT%H:%M:%SZ")
    return json.dumps(payload).encode("utf-8")


class HealthValidator:
    """Invoke a function and compare the response against expectations."""

    def __init__(
        self,
        service: BaseFunctionService,
        *,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._service = service
        self._retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    def validate(
        self,
        function_name: str,
        payload: bytes,
        expectation: HealthCheckConfig,
        qualifier: str | None = None,
    ) -> HealthCheckResult:
        """Invoke ``function_name`` and evaluate the configured expectations.

        Args:
            function_name: Function to invoke
            payload: JSON request body
            expectation: Configured expectations; each is optional
            qualifier: Version or alias to invoke

        Returns:
            HealthCheckResult; invocation failures yield ``passed=False``
            rather than raising
        """
        target = f"{function_name}:{qualifier}" if qualifier else function_name
        logger.info(f"Running health check against {target}")

        try:
            response = with_retry(
                lambda: self._service.invoke(function_name, payload, qualifier),
                self._retry_policy,
                operation_name="HealthCheck",
                sleep=self._sleep,
            )
        except (DeploymentError, ClientError, BotoCoreError) as exc:
            logger.warning(f"Health check invocation failed: {exc}")
            return HealthCheckResult(
                passed=False,
                details=f"Invocation failed: {exc}",
            )

        result = evaluate_response(response, expectation)
        if result.passed:
            logger.info(f"Health check passed: {result.details}")
        else:
            logger.warning(f"Health check failed: {result.details}")
        return result


def evaluate_response(
    response: InvocationResponse, expectation: HealthCheckConfig
) -> HealthCheckResult:
    """Classify a raw invocation response and check it against expectations."""
    text = response.payload.decode("utf-8", errors="replace")
    try:
        body: Any = json.loads(text) if text else None
    except ValueError:
        body = text

    checks: list[HealthCheckItem] = []
    remote_error = _remote_error(response, body, text)
    status_code: int | None = None

    if remote_error is not None:
        expected_error = expectation.expected_error_message
        if expected_error:
            checks.append(
                HealthCheckItem(
                    name="expected_error_message",
                    passed=expected_error in remote_error,
                    expected=expected_error,
                    actual=remote_error,
                )
            )
        else:
            checks.append(
                HealthCheckItem(
                    name="remote_error",
                    passed=False,
                    expected="no error",
                    actual=remote_error,
                )
            )
    else:
        if expectation.expected_error_message:
            checks.append(
                HealthCheckItem(
                    name="expected_error_message",
                    passed=False,
                    expected=expectation.expected_error_message,
                    actual="no error",
                )
            )

        status_code = _status_code(body)
        if expectation.expected_status_code is not None and status_code is not None:
            checks.append(
                HealthCheckItem(
                    name="status_code",
                    passed=status_code == expectation.expected_status_code,
                    expected=str(expectation.expected_status_code),
                    actual=str(status_code),
                )
            )

        if expectation.expected_response_contains:
            checks.append(
                HealthCheckItem(
                    name="response_contains",
                    passed=expectation.expected_response_contains in text,
                    expected=expectation.expected_response_contains,
                    actual=text[:EXCERPT_LENGTH],
                )
            )

    failed = [check for check in checks if not check.passed]
    if failed:
        details = "; ".join(
            f"{check.name}: expected {check.expected!r}, got {check.actual!r}"
            for check in failed
        )
    elif checks:
        details = ", ".join(check.name for check in checks) + " matched"
    else:
        details = "function responded without error"

    return HealthCheckResult(
        passed=not failed,
        status_code=status_code,
        remote_error=remote_error,
        checks=checks,
        details=details,
        response_excerpt=text[:EXCERPT_LENGTH] or None,
    )


def _remote_error(response: InvocationResponse, body: Any, text: str) -> str | None:
    if isinstance(body, dict) and "errorMessage" in body:
        return str(body["errorMessage"])
    if response.function_error:
        return text or response.function_error
    return None


def _status_code(body: Any) -> int | None:
    if not isinstance(body, dict) or "statusCode" not in body:
        return None
    try:
        return int(body["statusCode"])
    except (TypeError, ValueError):
        return None
