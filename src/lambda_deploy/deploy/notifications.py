"""Best-effort delivery of deployment outcomes to chat webhooks.

Supports Slack incoming webhooks, Microsoft Teams connector cards and a
generic JSON webhook. Delivery failures are logged and never raised.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any
from urllib.parse import urlsplit

import requests
from requests.exceptions import ConnectionError as RequestsConnectionError
from requests.exceptions import RequestException, Timeout

from lambda_deploy.deploy.retry import with_retry
from lambda_deploy.lib.errors import LambdaDeployError, NotificationError
from lambda_deploy.lib.logging_config import get_logger
from lambda_deploy.models.deployment import NotificationConfig, RetryPolicy
from lambda_deploy.models.deployment_state import (
    DeploymentMode,
    DeploymentOutcome,
    RunContext,
)

logger = get_logger(__name__)

HTTP_RETRY_POLICY = RetryPolicy(max_attempts=3, base_delay=2, max_delay=8, jitter=0)

# Teams theme colours by (mode, environment)
_TEAMS_COLORS = {
    "rollback": "FF6B35",
    "prod": "28A745",
    "pre": "007BFF",
    "dev": "6F42C1",
    "failure": "DC3545",
}
_TITLES = {"prod": "Production", "pre": "Staging", "dev": "Development"}


def _redact(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


def deployment_title(outcome: DeploymentOutcome) -> str:
    """Short human title for an outcome."""
    record = outcome.record
    if not outcome.succeeded:
        return f"{record.mode.value.capitalize()} Failed"
    if record.mode == DeploymentMode.ROLLBACK:
        return "Rollback Completed"
    label = _TITLES.get(record.environment, record.environment.capitalize())
    return f"{label} Deployment Successful"


class WebhookNotifier:
    """Post deployment outcomes to the configured webhooks.

    Args:
        config: Webhook URLs and timeout
        context: Actor, repository and revision included in messages
        session: HTTP session, injectable for tests
        retry_policy: Delivery retry bounds
        sleep: Sleep function between delivery attempts
    """

    def __init__(
        self,
        config: NotificationConfig,
        context: RunContext | None = None,
        *,
        session: requests.Session | None = None,
        retry_policy: RetryPolicy = HTTP_RETRY_POLICY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config
        self._context = context or RunContext()
        self._session = session or requests.Session()
        self._retry_policy = retry_policy
        self._sleep = sleep

    def notify(self, outcome: DeploymentOutcome) -> dict[str, bool]:
        """Send ``outcome`` to every configured webhook.

        Returns:
            Delivery result per channel ("slack", "teams", "webhook")
        """
        targets: list[tuple[str, str, dict[str, Any]]] = []
        if self._config.slack_webhook_url:
            targets.append(
                ("slack", self._config.slack_webhook_url, self.slack_payload(outcome))
            )
        if self._config.teams_webhook_url:
            targets.append(
                ("teams", self._config.teams_webhook_url, self.teams_payload(outcome))
            )
        if self._config.webhook_url:
            targets.append(("webhook", self._config.webhook_url, self.summary(outcome)))

        if not targets:
            logger.debug("No notification webhooks configured")

        results: dict[str, bool] = {}
        for channel, url, payload in targets:
            try:
                with_retry(
                    lambda url=url, payload=payload: self._post(url, payload),
                    self._retry_policy,
                    operation_name=f"Notify {channel}",
                    sleep=self._sleep,
                )
            except LambdaDeployError as exc:
                logger.warning(f"Failed to send {channel} notification: {exc}")
                results[channel] = False
            else:
                logger.info(f"{channel} notification sent")
                results[channel] = True
        return results

    def summary(self, outcome: DeploymentOutcome) -> dict[str, Any]:
        """Structured outcome record plus run context."""
        payload = outcome.to_summary()
        ctx = self._context
        payload.update(
            {
                "deployer": ctx.actor,
                "repository": ctx.repository,
                "commit_sha": ctx.revision,
                "branch": ctx.branch,
                "run_id": ctx.run_id,
            }
        )
        return payload

    def slack_payload(self, outcome: DeploymentOutcome) -> dict[str, Any]:
        """Slack incoming-webhook message with attachment fields."""
        record = outcome.record
        if not outcome.succeeded:
            emoji, color = ":x:", "danger"
        elif record.mode == DeploymentMode.ROLLBACK:
            emoji, color = ":arrows_counterclockwise:", "warning"
        else:
            emoji, color = ":rocket:", "good"

        fields = [
            ("Function", outcome.function_name, True),
            ("Environment", record.environment.upper(), True),
            ("Version", record.version, True),
            ("Lambda Version", record.remote_version_id or "n/a", True),
            ("Deployed By", self._context.actor, True),
            ("Branch", self._context.branch, True),
            ("Commit", self._context.revision, True),
            ("Outcome", record.outcome.value, True),
        ]
        if record.failure:
            fields.append(("Failed Stage", record.failure.stage.value, True))
            fields.append(("Error", record.failure.message, False))
        if record.warnings:
            fields.append(("Warnings", "\n".join(record.warnings), False))

        return {
            "text": f"{emoji} Lambda {deployment_title(outcome)}",
            "attachments": [
                {
                    "color": color,
                    "fields": [
                        {"title": title, "value": value, "short": short}
                        for title, value, short in fields
                    ],
                }
            ],
        }

    def teams_payload(self, outcome: DeploymentOutcome) -> dict[str, Any]:
        """Microsoft Teams MessageCard."""
        record = outcome.record
        if not outcome.succeeded:
            color = _TEAMS_COLORS["failure"]
        elif record.mode == DeploymentMode.ROLLBACK:
            color = _TEAMS_COLORS["rollback"]
        else:
            color = _TEAMS_COLORS.get(record.environment, "6C757D")

        title = deployment_title(outcome)
        facts = [
            ("Environment:", record.environment.upper()),
            ("Version:", record.version),
            ("Lambda Version:", record.remote_version_id or "n/a"),
            ("Outcome:", record.outcome.value),
            ("Deployed By:", self._context.actor),
            ("Repository:", self._context.repository or "n/a"),
            ("Branch:", self._context.branch),
        ]
        if record.duration_seconds is not None:
            facts.append(("Duration:", f"{record.duration_seconds:.0f}s"))

        card: dict[str, Any] = {
            "@type": "MessageCard",
            "@context": "https://schema.org/extensions",
            "themeColor": color,
            "summary": title,
            "sections": [
                {
                    "activityTitle": title,
                    "activitySubtitle": f"Lambda Function: **{outcome.function_name}**",
                    "facts": [{"name": name, "value": value} for name, value in facts],
                    "markdown": True,
                }
            ],
        }
        if self._context.repository:
            card["potentialAction"] = [
                {
                    "@type": "OpenUri",
                    "name": "View Repository",
                    "targets": [
                        {
                            "os": "default",
                            "uri": f"https://github.com/{self._context.repository}",
                        }
                    ],
                }
            ]
        return card

    def _post(self, url: str, payload: dict[str, Any]) -> None:
        target = _redact(url)
        try:
            response = self._session.post(
                url, json=payload, timeout=self._config.timeout_seconds
            )
        except (Timeout, RequestsConnectionError) as exc:
            raise NotificationError(target, str(exc), retryable=True) from exc
        except RequestException as exc:
            raise NotificationError(target, str(exc)) from exc

        if not response.ok:
            status = response.status_code
            raise NotificationError(
                target,
                f"HTTP {status}",
                status_code=status,
                retryable=status == 429 or status >= 500,
            )
