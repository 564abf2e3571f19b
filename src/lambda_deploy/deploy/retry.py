"""Retry and polling helpers for unreliable remote calls.

``with_retry`` wraps a single call in exponential backoff with jitter and
only retries errors the supplied predicate classifies as transient.
``wait_for_function_ready`` polls the remote function until it accepts the
next mutation.
"""

from __future__ import annotations

import random
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, TypeVar

from botocore.exceptions import BotoCoreError, ClientError

from lambda_deploy.lib.errors import (
    DeploymentCancelledError,
    DeploymentError,
    RemoteUpdateFailedError,
    RetryExhaustedError,
)
from lambda_deploy.lib.logging_config import get_logger
from lambda_deploy.models.deployment import RetryPolicy

if TYPE_CHECKING:
    from lambda_deploy.deploy.deployers.base import BaseFunctionService

logger = get_logger(__name__)

T = TypeVar("T")

RETRYABLE_ERROR_CODES = frozenset(
    {
        "Throttling",
        "ThrottlingException",
        "RequestLimitExceeded",
        "RequestThrottled",
        "TooManyRequestsException",
        "ResourceConflictException",
        "ServiceException",
        "ServiceUnavailable",
        "InternalError",
        "SlowDown",
        "RequestTimeout",
    }
)


def is_retryable_error(exc: BaseException) -> bool:
    """Classify an exception as transient.

    Errors carrying an explicit ``retryable`` flag decide for themselves.
    SDK errors are retryable when throttled, conflicting with an in-flight
    update, or failing server side; connection-level failures always are.
    """
    if isinstance(exc, (RemoteUpdateFailedError, DeploymentCancelledError)):
        return False

    retryable = getattr(exc, "retryable", None)
    if isinstance(retryable, bool):
        return retryable

    if isinstance(exc, ClientError):
        code = exc.response.get("Error", {}).get("Code", "")
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
        return code in RETRYABLE_ERROR_CODES or status == 429 or status >= 500

    return isinstance(exc, (BotoCoreError, ConnectionError, TimeoutError))


def backoff_delay(
    policy: RetryPolicy,
    attempt: int,
    rng: Callable[[], float] = random.random,
) -> float:
    """Return the sleep before retrying after failed attempt ``attempt`` (1-based)."""
    delay = min(policy.base_delay * (2 ** (attempt - 1)), policy.max_delay)
    return delay + delay * policy.jitter * rng()


def with_retry(
    operation: Callable[[], T],
    policy: RetryPolicy,
    *,
    operation_name: str = "operation",
    is_retryable: Callable[[BaseException], bool] = is_retryable_error,
    sleep: Callable[[float], None] = time.sleep,
    rng: Callable[[], float] = random.random,
) -> T:
    """Run ``operation`` with exponential backoff.

    Args:
        operation: Zero-argument callable performing one remote call
        policy: Attempt and delay bounds
        operation_name: Name used in logs and in the exhaustion error
        is_retryable: Predicate deciding whether an error may be retried
        sleep: Sleep function, injectable for tests
        rng: Source of jitter in [0, 1)

    Returns:
        The operation's result

    Raises:
        Exception: The original error when it is not retryable
        RetryExhaustedError: When every attempt failed with retryable errors
    """
    for attempt in range(1, policy.max_attempts + 1):
        logger.info(f"{operation_name}: attempt {attempt}/{policy.max_attempts}")
        try:
            result = operation()
        except Exception as exc:
            if not is_retryable(exc):
                logger.error(f"{operation_name} failed with non-retryable error: {exc}")
                raise
            if attempt == policy.max_attempts:
                logger.error(
                    f"{operation_name} failed after {policy.max_attempts} attempt(s): {exc}"
                )
                raise RetryExhaustedError(operation_name, policy.max_attempts, exc) from exc
            delay = backoff_delay(policy, attempt, rng)
            logger.warning(
                f"{operation_name} attempt {attempt}/{policy.max_attempts} failed: "
                f"{exc}; retrying in {delay:.1f}s"
            )
            sleep(delay)
        else:
            if attempt > 1:
                logger.info(f"{operation_name} succeeded on attempt {attempt}")
            return result

    raise DeploymentError(
        operation_name, f"Retry policy allows no attempts ({policy.max_attempts})"
    )


def wait_for_function_ready(
    service: BaseFunctionService,
    function_name: str,
    *,
    timeout: float = 120,
    interval: float = 2,
    progress_interval: float = 20,
    is_retryable: Callable[[BaseException], bool] = is_retryable_error,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> bool:
    """Poll the function until it is Active with a Successful last update.

    Transient polling errors are logged and polling continues. State changes
    are logged once, with a progress line every ``progress_interval`` seconds.

    Returns:
        True when ready, False when ``timeout`` elapsed first

    Raises:
        RemoteUpdateFailedError: The remote side reported the update failed
    """
    started = clock()
    deadline = started + timeout
    next_progress = started + progress_interval
    last_seen: tuple[object, object] | None = None

    while True:
        try:
            state = service.get_state(function_name)
        except Exception as exc:
            if not is_retryable(exc):
                raise
            logger.warning(f"Could not read state of {function_name}: {exc}")
        else:
            if state.has_failed:
                logger.error(f"Function {function_name} update failed: {state.reason}")
                raise RemoteUpdateFailedError(function_name, state.reason)
            if state.is_ready:
                logger.info(
                    f"Function {function_name} is ready after {clock() - started:.0f}s"
                )
                return True

            current = (state.lifecycle_state, state.last_update_status)
            if current != last_seen:
                logger.info(
                    f"Function {function_name} state="
                    f"{_value(state.lifecycle_state)} "
                    f"last_update={_value(state.last_update_status)}"
                )
                last_seen = current

        now = clock()
        if now >= deadline:
            logger.warning(
                f"Function {function_name} not ready after {timeout:.0f}s; continuing"
            )
            return False
        if now >= next_progress:
            logger.info(f"Still waiting for {function_name} ({now - started:.0f}s)")
            next_progress = now + progress_interval
        sleep(min(interval, deadline - now))


def _value(member: object) -> str:
    return getattr(member, "value", None) or str(member)
