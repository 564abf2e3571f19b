"""Unit tests for build artifact validation."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from lambda_deploy.deploy.builder import BuildArtifact, format_size
from lambda_deploy.lib.errors import DeploymentError, FileNotFoundError
from lambda_deploy.models.deployment import RuntimeType


class TestBuildArtifact:
    """Tests for BuildArtifact.from_path."""

    def test_describes_existing_file(self, artifact_file: Path) -> None:
        artifact = BuildArtifact.from_path(artifact_file, "python")

        assert artifact.path == artifact_file
        assert artifact.runtime == RuntimeType.PYTHON
        assert artifact.size == artifact_file.stat().st_size
        assert artifact.read_bytes() == artifact_file.read_bytes()

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            BuildArtifact.from_path(tmp_path / "missing.zip", RuntimeType.NODE)

    def test_empty_file(self, tmp_path: Path) -> None:
        empty = tmp_path / "empty.zip"
        empty.write_bytes(b"")

        with pytest.raises(DeploymentError, match="empty"):
            BuildArtifact.from_path(empty, RuntimeType.BUN)

    def test_oversized_file(self, artifact_file: Path) -> None:
        with patch("lambda_deploy.deploy.builder.MAX_ARTIFACT_BYTES", 4):
            with pytest.raises(DeploymentError, match="limit"):
                BuildArtifact.from_path(artifact_file, RuntimeType.PYTHON)

    def test_unknown_runtime(self, artifact_file: Path) -> None:
        with pytest.raises(ValueError):
            BuildArtifact.from_path(artifact_file, "ruby")


class TestFormatSize:
    """Tests for format_size."""

    @pytest.mark.parametrize(
        ("size", "expected"),
        [(512, "512 B"), (2048, "2.0 KB"), (5 * 1024 * 1024, "5.0 MB")],
    )
    def test_units(self, size: int, expected: str) -> None:
        assert format_size(size) == expected
