"""Pytest configuration and shared fixtures for lambda-deploy tests."""

from __future__ import annotations

import os
from collections.abc import Generator
from pathlib import Path

import pytest

from lambda_deploy.models.deployment import (
    AWSConfig,
    LambdaDeployConfig,
    ProjectConfig,
    RuntimeType,
)
from tests.fakes import FakeClock, FakeFunctionService, InMemoryBlobStore


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    """Empty in-memory blob store."""
    return InMemoryBlobStore()


@pytest.fixture
def function_service() -> FakeFunctionService:
    """Ready fake function service."""
    return FakeFunctionService()


@pytest.fixture
def clock() -> FakeClock:
    """Fake clock whose sleep advances time instantly."""
    return FakeClock()


@pytest.fixture
def base_config() -> LambdaDeployConfig:
    """Minimal valid configuration."""
    return LambdaDeployConfig(
        project=ProjectConfig(name="orders", runtime=RuntimeType.PYTHON),
        aws=AWSConfig(
            region="us-east-1",
            s3_bucket="orders-artifacts",
            function_name="orders-api",
        ),
    )


@pytest.fixture
def isolated_env() -> Generator[dict[str, str]]:
    """Provide isolated environment variables for testing.

    Saves current environment and restores after test.
    """
    original_env = os.environ.copy()
    yield original_env
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def artifact_file(tmp_path: Path) -> Path:
    """Small zip-like artifact on disk."""
    path = tmp_path / "function.zip"
    path.write_bytes(b"PK\x03\x04 fake package")
    return path
