"""Handle to the packaged artifact produced by the build collaborator.

lambda-deploy does not build packages; it only checks that the artifact
exists and is non-empty, and reads its bytes for upload.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from lambda_deploy.lib.errors import DeploymentError, FileNotFoundError
from lambda_deploy.models.deployment import RuntimeType

# Lambda rejects deployment packages above this unzipped size
MAX_ARTIFACT_BYTES = 250 * 1024 * 1024


@dataclass(frozen=True)
class BuildArtifact:
    """A packaged deployment artifact.

    Attributes:
        path: Local path of the package file
        runtime: Runtime the package was built for
        size: Size in bytes
    """

    path: Path
    runtime: RuntimeType
    size: int

    @classmethod
    def from_path(cls, path: str | Path, runtime: RuntimeType | str) -> BuildArtifact:
        """Validate and describe an artifact file.

        Raises:
            FileNotFoundError: If the file does not exist
            DeploymentError: If the file is empty or too large
        """
        artifact_path = Path(path)
        if not artifact_path.is_file():
            raise FileNotFoundError(
                str(artifact_path),
                "Build the deployment package before deploying.",
            )

        size = artifact_path.stat().st_size
        if size == 0:
            raise DeploymentError(
                operation="Uploading",
                message=f"Artifact {artifact_path} is empty",
            )
        if size > MAX_ARTIFACT_BYTES:
            raise DeploymentError(
                operation="Uploading",
                message=(
                    f"Artifact {artifact_path} is {format_size(size)}, above the "
                    f"{format_size(MAX_ARTIFACT_BYTES)} limit"
                ),
            )
        return cls(path=artifact_path, runtime=RuntimeType(runtime), size=size)

    def read_bytes(self) -> bytes:
        """Return the artifact content."""
        return self.path.read_bytes()


def format_size(size: int) -> str:
    """Format a byte count for humans."""
    value = float(size)
    for unit in ("B", "KB", "MB"):
        if value < 1024:
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"
