"""Unit tests for DeploymentOrchestrator."""

from __future__ import annotations

import json
import threading
from unittest.mock import MagicMock

import pytest

from lambda_deploy.deploy.environment import policy_for
from lambda_deploy.deploy.orchestrator import DeploymentOrchestrator
from lambda_deploy.lib.errors import (
    ArtifactNotFoundError,
    ConfigError,
    RemoteServiceError,
    RollbackNotSupportedError,
    VersionConflictError,
)
from lambda_deploy.models.deployment import (
    AutoRollbackConfig,
    DeploymentSettings,
    HealthCheckConfig,
    LambdaDeployConfig,
    RollbackTriggers,
)
from lambda_deploy.models.deployment_state import (
    DeploymentMode,
    DeploymentStage,
    InvocationResponse,
    OutcomeStatus,
    RunContext,
)
from tests.fakes import FakeClock, FakeFunctionService, InMemoryBlobStore

CONTEXT = RunContext(actor="octocat", revision="abc1234", branch="main")
FAILING_HEALTH = InvocationResponse(
    status_code=200, payload=b'{"statusCode": 500, "body": "boom"}'
)


def _with_settings(
    config: LambdaDeployConfig, settings: DeploymentSettings
) -> LambdaDeployConfig:
    return config.model_copy(update={"deployment": settings})


@pytest.fixture
def make_orchestrator(
    function_service: FakeFunctionService,
    blob_store: InMemoryBlobStore,
    clock: FakeClock,
    base_config: LambdaDeployConfig,
):
    def factory(config: LambdaDeployConfig | None = None, **kwargs) -> DeploymentOrchestrator:
        return DeploymentOrchestrator(
            config or base_config,
            CONTEXT,
            service=function_service,
            blob_store=blob_store,
            sleep=clock.sleep,
            clock=clock,
            monotonic=clock,
            **kwargs,
        )

    return factory


@pytest.fixture
def auto_rollback_config(base_config: LambdaDeployConfig) -> LambdaDeployConfig:
    return _with_settings(
        base_config,
        DeploymentSettings(auto_rollback=AutoRollbackConfig(enabled=True)),
    )


class TestConstruction:
    """Tests for startup validation."""

    def test_missing_bucket_fails_fast(
        self, make_orchestrator, base_config: LambdaDeployConfig
    ) -> None:
        aws = base_config.aws.model_copy(update={"s3_bucket": ""})
        config = base_config.model_copy(update={"aws": aws})

        with pytest.raises(ConfigError) as exc_info:
            make_orchestrator(config)

        assert exc_info.value.field == "aws.s3_bucket"


class TestDeploy:
    """Tests for DeploymentOrchestrator.deploy."""

    def test_successful_deploy(
        self, make_orchestrator, function_service: FakeFunctionService
    ) -> None:
        outcome = make_orchestrator().deploy("pre", b"zip", explicit_version="1.0.0")

        assert outcome.status == OutcomeStatus.SUCCESS
        assert outcome.version_source == "explicit"
        assert outcome.conflict_strategy == "new-version"
        assert outcome.health_check is not None and outcome.health_check.passed
        assert function_service.aliases == {"pre-current": "1"}
        assert function_service.tags["Version"] == "1.0.0"
        # Health check targets the published version
        assert function_service.calls[-1][1][2] == "1"

    def test_explicit_version_used_unchanged(self, make_orchestrator) -> None:
        outcome = make_orchestrator().deploy(
            "pre", b"zip", explicit_version="2.0.0-rc.1"
        )

        assert outcome.record.version == "2.0.0-rc.1"

    def test_prod_blocks_existing_version_without_remote_calls(
        self,
        make_orchestrator,
        function_service: FakeFunctionService,
        blob_store: InMemoryBlobStore,
    ) -> None:
        orchestrator = make_orchestrator()
        orchestrator.store.put(b"zip", policy_for("prod"), "1.0.0")
        puts_before = blob_store.count("put")

        for _ in range(2):
            with pytest.raises(VersionConflictError) as exc_info:
                orchestrator.deploy("prod", b"new", explicit_version="1.0.0")
            assert "1.0.1" in exc_info.value.suggestions

        assert blob_store.count("put") == puts_before
        assert function_service.calls == []

    def test_force_overrides_prod_block(
        self, make_orchestrator, blob_store: InMemoryBlobStore
    ) -> None:
        orchestrator = make_orchestrator()
        orchestrator.store.put(b"old", policy_for("prod"), "1.0.0")

        outcome = orchestrator.deploy(
            "prod", b"new", explicit_version="1.0.0", force=True
        )

        assert outcome.succeeded
        assert outcome.conflict_strategy == "forced"
        assert blob_store.objects["orders-artifacts/orders-api/prod/1.0.0.zip"] == b"new"

    def test_dev_deploys_get_distinct_timestamp_keys(
        self, make_orchestrator, blob_store: InMemoryBlobStore, clock: FakeClock
    ) -> None:
        orchestrator = make_orchestrator()

        first = orchestrator.deploy("dev", b"one", explicit_version="1.0.0")
        clock.advance(5)
        second = orchestrator.deploy("dev", b"two", explicit_version="1.0.0")

        assert first.succeeded and second.succeeded
        assert first.record.artifact_location.key == "orders-api/dev/1700000000.zip"
        assert second.record.artifact_location.key == "orders-api/dev/1700000005.zip"
        assert blob_store.objects["orders-artifacts/orders-api/dev/latest.zip"] == b"two"

    def test_failed_health_check_is_a_warning(
        self, make_orchestrator, function_service: FakeFunctionService
    ) -> None:
        function_service.invoke_response = FAILING_HEALTH

        outcome = make_orchestrator().deploy("pre", b"zip", explicit_version="1.0.0")

        assert outcome.status == OutcomeStatus.SUCCESS_WITH_WARNING
        assert outcome.health_check is not None
        assert outcome.health_check.passed is False
        assert outcome.rollback is None
        assert any(w.startswith("Health check failed") for w in outcome.record.warnings)

    def test_health_check_can_be_disabled(
        self,
        make_orchestrator,
        function_service: FakeFunctionService,
        base_config: LambdaDeployConfig,
    ) -> None:
        config = _with_settings(
            base_config,
            DeploymentSettings(health_check=HealthCheckConfig(enabled=False)),
        )

        outcome = make_orchestrator(config).deploy(
            "pre", b"zip", explicit_version="1.0.0"
        )

        assert outcome.health_check is None
        assert function_service.count("invoke") == 0

    def test_degraded_run_invokes_unqualified(
        self, make_orchestrator, function_service: FakeFunctionService
    ) -> None:
        function_service.errors["publish_version"] = [
            RemoteServiceError("PublishingVersion", "denied")
        ]

        outcome = make_orchestrator().deploy("pre", b"zip", explicit_version="1.0.0")

        assert outcome.record.degraded is True
        assert outcome.status == OutcomeStatus.SUCCESS_WITH_WARNING
        assert function_service.count("create_alias") == 0
        assert function_service.calls[-1][0] == "invoke"
        assert function_service.calls[-1][1][2] is None

    def test_failed_deploy_without_auto_rollback(
        self, make_orchestrator, function_service: FakeFunctionService
    ) -> None:
        function_service.errors["update_code"] = [
            RemoteServiceError("UpdatingCode", "InvalidZip")
        ]

        outcome = make_orchestrator().deploy("prod", b"zip", explicit_version="1.1.0")

        assert outcome.status == OutcomeStatus.FAILURE
        assert outcome.record.failure.stage == DeploymentStage.UPDATING_CODE
        assert outcome.rollback is None
        assert outcome.health_check is None

    def test_notifier_receives_outcome(self, make_orchestrator) -> None:
        notifier = MagicMock()

        outcome = make_orchestrator(notifier=notifier).deploy(
            "pre", b"zip", explicit_version="1.0.0"
        )

        notifier.notify.assert_called_once_with(outcome)


class TestAutoRollback:
    """Tests for automatic rollback after failures."""

    def test_rolls_back_to_last_successful_after_update_failure(
        self,
        make_orchestrator,
        auto_rollback_config: LambdaDeployConfig,
        function_service: FakeFunctionService,
        blob_store: InMemoryBlobStore,
    ) -> None:
        orchestrator = make_orchestrator(auto_rollback_config)
        orchestrator.store.put(b"stable", policy_for("prod"), "1.0.0")
        function_service.tags = {"Version": "1.0.0"}
        function_service.errors["update_code"] = [
            RemoteServiceError("UpdatingCode", "InvalidZip")
        ]

        outcome = orchestrator.deploy("prod", b"broken", explicit_version="1.1.0")

        assert outcome.status == OutcomeStatus.FAILURE
        assert outcome.rollback is not None
        assert outcome.rollback.mode == DeploymentMode.ROLLBACK
        assert outcome.rollback.succeeded
        assert outcome.rollback.version == "1.0.0"
        assert function_service.code_location.key == "orders-api/prod/1.0.0.zip"
        assert function_service.published[-1].startswith(
            "PROD-AUTO-ROLLBACK: v1.0.0 | reason: deployment_failure"
        )
        stable_key = "orders-api/prod/1.0.0.zip"
        assert ("get", stable_key) in blob_store.calls
        assert blob_store.calls.count(("put", stable_key)) == 1
        assert outcome.rollback_health_check is not None

    def test_rollback_target_is_read_before_the_run(
        self,
        make_orchestrator,
        base_config: LambdaDeployConfig,
        function_service: FakeFunctionService,
    ) -> None:
        config = _with_settings(
            base_config,
            DeploymentSettings(
                auto_rollback=AutoRollbackConfig(
                    enabled=True,
                    triggers=RollbackTriggers(on_health_check_failure=True),
                )
            ),
        )
        orchestrator = make_orchestrator(config)
        orchestrator.store.put(b"stable", policy_for("prod"), "1.0.0")
        function_service.tags = {"Version": "1.0.0"}
        function_service.invoke_response = FAILING_HEALTH

        outcome = orchestrator.deploy("prod", b"new", explicit_version="1.1.0")

        assert outcome.status == OutcomeStatus.SUCCESS_WITH_WARNING
        assert outcome.rollback is not None
        assert outcome.rollback.version == "1.0.0"
        assert function_service.tags["Version"] == "1.0.0"
        assert function_service.tags["RollbackReason"] == "health_check_failure"

    def test_missing_target_is_reported_not_raised(
        self,
        make_orchestrator,
        auto_rollback_config: LambdaDeployConfig,
        function_service: FakeFunctionService,
    ) -> None:
        function_service.errors["update_code"] = [
            RemoteServiceError("UpdatingCode", "InvalidZip")
        ]

        outcome = make_orchestrator(auto_rollback_config).deploy(
            "prod", b"zip", explicit_version="1.1.0"
        )

        assert outcome.status == OutcomeStatus.FAILURE
        assert outcome.rollback is None
        assert outcome.rollback_error is not None
        assert "No previously successful version" in outcome.rollback_error

    def test_upload_failure_leaves_function_untouched(
        self,
        make_orchestrator,
        auto_rollback_config: LambdaDeployConfig,
        function_service: FakeFunctionService,
        blob_store: InMemoryBlobStore,
    ) -> None:
        orchestrator = make_orchestrator(auto_rollback_config)
        orchestrator.store.put(b"stable", policy_for("prod"), "1.0.0")
        function_service.tags = {"Version": "1.0.0"}
        blob_store.errors["put"] = [
            RemoteServiceError("Uploading", "AccessDenied", retryable=False)
        ]

        outcome = orchestrator.deploy("prod", b"new", explicit_version="1.1.0")

        assert outcome.status == OutcomeStatus.FAILURE
        assert outcome.record.failure.stage == DeploymentStage.UPLOADING
        assert outcome.rollback is None
        assert outcome.rollback_error is None
        assert outcome.rollback_skipped == "function unchanged (failed at Uploading)"
        assert function_service.methods() == ["list_tags"]
        assert function_service.tags == {"Version": "1.0.0"}

    def test_cancelled_run_is_not_rolled_back(
        self,
        make_orchestrator,
        auto_rollback_config: LambdaDeployConfig,
        function_service: FakeFunctionService,
        blob_store: InMemoryBlobStore,
    ) -> None:
        cancel = threading.Event()
        orchestrator = make_orchestrator(auto_rollback_config, cancel_event=cancel)
        orchestrator.store.put(b"stable", policy_for("prod"), "1.0.0")
        function_service.tags = {"Version": "1.0.0"}
        cancel.set()

        outcome = orchestrator.deploy("prod", b"new", explicit_version="1.1.0")

        assert outcome.status == OutcomeStatus.FAILURE
        assert outcome.record.failure.error_type == "DeploymentCancelledError"
        assert outcome.rollback is None
        assert outcome.rollback_skipped == "run was cancelled"
        assert ("get", "orders-api/prod/1.0.0.zip") not in blob_store.calls
        assert "update_code" not in function_service.methods()

    def test_dev_failure_reports_rollback_not_supported(
        self,
        make_orchestrator,
        auto_rollback_config: LambdaDeployConfig,
        function_service: FakeFunctionService,
    ) -> None:
        function_service.errors["update_code"] = [
            RemoteServiceError("UpdatingCode", "InvalidZip")
        ]

        outcome = make_orchestrator(auto_rollback_config).deploy(
            "dev", b"zip", explicit_version="1.1.0"
        )

        assert outcome.rollback is None
        assert "cannot be rolled back" in outcome.rollback_error


class TestManualRollback:
    """Tests for DeploymentOrchestrator.rollback."""

    def test_rollback_to_explicit_version(
        self,
        make_orchestrator,
        function_service: FakeFunctionService,
        blob_store: InMemoryBlobStore,
    ) -> None:
        orchestrator = make_orchestrator()
        orchestrator.store.put(b"old", policy_for("prod"), "1.0.0")
        puts_before = blob_store.count("put")

        outcome = orchestrator.rollback("prod", "v1.0.0", reason="error spike")

        assert outcome.succeeded
        assert outcome.record.mode == DeploymentMode.ROLLBACK
        assert outcome.record.version == "1.0.0"
        assert blob_store.count("put") == puts_before
        assert function_service.aliases == {"prod-current": "1"}
        assert function_service.tags["DeploymentType"] == "rollback"
        assert function_service.tags["RollbackReason"] == "error spike"
        assert json.loads(function_service.calls[-1][1][1]) == {
            "source": "rollback-health-check",
            "test": True,
        }

    def test_rollback_defaults_to_previous_version(
        self, make_orchestrator, function_service: FakeFunctionService
    ) -> None:
        orchestrator = make_orchestrator()
        for version in ["1.0.0", "1.1.0", "1.2.0"]:
            orchestrator.store.put(b"zip", policy_for("prod"), version)
        function_service.tags = {"Version": "1.2.0"}

        outcome = orchestrator.rollback("prod")

        assert outcome.record.version == "1.1.0"

    def test_unknown_version_lists_available(self, make_orchestrator) -> None:
        orchestrator = make_orchestrator()
        orchestrator.store.put(b"zip", policy_for("prod"), "1.0.0")

        with pytest.raises(ArtifactNotFoundError) as exc_info:
            orchestrator.rollback("prod", "9.9.9")

        assert exc_info.value.available_versions == ["1.0.0"]

    def test_dev_rollback_is_rejected(
        self, make_orchestrator, function_service: FakeFunctionService
    ) -> None:
        with pytest.raises(RollbackNotSupportedError):
            make_orchestrator().rollback("dev", "1.0.0")

        assert function_service.calls == []
