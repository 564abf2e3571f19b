"""lambda-deploy deployment engine.

This package provides artifact storage, version resolution, conflict gating,
the deploy/rollback state machine, health validation and notifications.
"""

from lambda_deploy.deploy.artifacts import ArtifactStore
from lambda_deploy.deploy.builder import BuildArtifact
from lambda_deploy.deploy.conflicts import ConflictCheckResult, check_conflict
from lambda_deploy.deploy.environment import EnvironmentPolicy, policy_for
from lambda_deploy.deploy.health import HealthValidator
from lambda_deploy.deploy.orchestrator import DeploymentOrchestrator
from lambda_deploy.deploy.rollback import RollbackManager
from lambda_deploy.deploy.state_machine import DeploymentStateMachine
from lambda_deploy.deploy.version import VersionResolver

__all__ = [
    "ArtifactStore",
    "BuildArtifact",
    "ConflictCheckResult",
    "DeploymentOrchestrator",
    "DeploymentStateMachine",
    "EnvironmentPolicy",
    "HealthValidator",
    "RollbackManager",
    "VersionResolver",
    "check_conflict",
    "policy_for",
]
