"""Version resolution and semantic-version helpers.

The version to deploy is resolved once per run: an explicit value always
wins, otherwise well-known project files are probed in a fixed order, then
git tags, then the git revision. Resolution never fails.
"""

from __future__ import annotations

import json
import re
import subprocess  # nosec B404
import tomllib
from collections.abc import Callable
from enum import Enum
from pathlib import Path

from lambda_deploy.lib.logging_config import get_logger

logger = get_logger(__name__)

SEMVER_PATTERN = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-([0-9A-Za-z.-]+))?(?:\+([0-9A-Za-z.-]+))?$"
)
REVISION_PATTERN = re.compile(r"^[0-9a-f]{7,40}$")
FALLBACK_VERSION = "unknown"

_ASSIGNED_VERSION = re.compile(
    r"^__version__\s*=\s*['\"]([^'\"]+)['\"]", re.MULTILINE
)
_SETUP_VERSION = re.compile(r"\bversion\s*=\s*['\"]([^'\"]+)['\"]")
_TOML_VERSION = re.compile(r"^version\s*=\s*['\"]([^'\"]+)['\"]", re.MULTILINE)
_VERSION_CHUNK = re.compile(r"(\d+)|(\D+)")


class VersionSource(str, Enum):
    """Where a resolved version came from."""

    EXPLICIT = "explicit"
    PYPROJECT = "pyproject.toml"
    VERSION_MODULE = "__version__.py"
    SETUP_PY = "setup.py"
    VERSION_TXT = "version.txt"
    VERSION_FILE = "VERSION"
    PACKAGE_JSON = "package.json"
    LAMBDA_FUNCTION = "lambda_function.py"
    GIT_TAG = "git_tag"
    GIT_REVISION = "git_revision"
    FALLBACK = "fallback"


def normalize_version(version: str) -> str:
    """Strip whitespace and a leading 'v' prefix."""
    version = version.strip()
    if version[:1] in ("v", "V") and version[1:2].isdigit():
        return version[1:]
    return version


def is_semantic_version(version: str) -> bool:
    """Return True for MAJOR.MINOR.PATCH[-pre][+build], with optional 'v'."""
    return bool(SEMVER_PATTERN.match(normalize_version(version)))


def is_revision_hash(version: str) -> bool:
    """Return True for an abbreviated or full git revision."""
    return bool(REVISION_PATTERN.match(version))


def parse_semver(version: str) -> tuple[int, int, int] | None:
    """Return (major, minor, patch) or None when not semantic."""
    match = SEMVER_PATTERN.match(normalize_version(version))
    if not match:
        return None
    return int(match.group(1)), int(match.group(2)), int(match.group(3))


def suggest_next_versions(version: str) -> list[str]:
    """Suggest the next patch, minor and major versions.

    Example:
        >>> suggest_next_versions("1.2.3")
        ['1.2.4', '1.3.0', '2.0.0']
    """
    parts = parse_semver(version)
    if parts is None:
        return []
    major, minor, patch = parts
    return [
        f"{major}.{minor}.{patch + 1}",
        f"{major}.{minor + 1}.0",
        f"{major + 1}.0.0",
    ]


def suggest_prerelease(version: str) -> str:
    """Suggest a release-candidate suffix for ``version``."""
    return f"{normalize_version(version)}-rc.1"


def _chunks(text: str) -> list[tuple[int, int, str]]:
    return [
        (1, int(number), "") if number else (0, 0, word)
        for number, word in _VERSION_CHUNK.findall(text)
    ]


def version_sort_key(version: str) -> tuple[tuple[int, int, str], ...]:
    """Natural ordering key: numeric runs compare as numbers.

    A release sorts after its own pre-releases (``1.0.0`` > ``1.0.0-rc.1``).
    """
    base, _, pre = normalize_version(version).partition("-")
    marker = (-2, 0, "") if pre else (-1, 0, "")
    return (*_chunks(base), marker, *_chunks(pre))


def update_hint(source: VersionSource, new_version: str) -> str | None:
    """Return a shell command that bumps the version in ``source``."""
    hints = {
        VersionSource.PYPROJECT: (
            f"sed -i 's/^version = .*/version = \"{new_version}\"/' pyproject.toml"
        ),
        VersionSource.PACKAGE_JSON: f"npm version {new_version} --no-git-tag-version",
        VersionSource.VERSION_TXT: f"echo '{new_version}' > version.txt",
        VersionSource.VERSION_FILE: f"echo '{new_version}' > VERSION",
        VersionSource.GIT_TAG: f"git tag v{new_version}",
    }
    return hints.get(source)


def _run_git(args: list[str], cwd: Path) -> str | None:
    """Run a git command and return stripped stdout, or None on failure."""
    try:
        result = subprocess.run(  # noqa: S603  # nosec B603 B607
            ["git", *args],  # noqa: S607
            capture_output=True,
            text=True,
            cwd=cwd,
            timeout=10,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        logger.debug(f"git {' '.join(args)} failed: {exc}")
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def git_revision(project_root: Path, short: bool = True) -> str | None:
    """Return the HEAD revision (abbreviated by default)."""
    args = ["rev-parse", "--short", "HEAD"] if short else ["rev-parse", "HEAD"]
    return _run_git(args, project_root)


def git_branch(project_root: Path) -> str | None:
    """Return the current branch name, or None when detached or outside git."""
    branch = _run_git(["rev-parse", "--abbrev-ref", "HEAD"], project_root)
    return None if branch == "HEAD" else branch


def latest_git_tag(project_root: Path) -> str | None:
    """Return the most recent reachable tag."""
    return _run_git(["describe", "--tags", "--abbrev=0"], project_root)


def _read_text(path: Path) -> str | None:
    if not path.is_file():
        return None
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning(f"Could not read {path}: {exc}")
        return None


def _from_pyproject(root: Path) -> str | None:
    text = _read_text(root / "pyproject.toml")
    if text is None:
        return None
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError:
        match = _TOML_VERSION.search(text)
        return match.group(1) if match else None
    version = data.get("project", {}).get("version")
    if not version:
        version = data.get("tool", {}).get("poetry", {}).get("version")
    return str(version) if version else None


def _from_assignment(filename: str) -> Callable[[Path], str | None]:
    def probe(root: Path) -> str | None:
        text = _read_text(root / filename)
        match = _ASSIGNED_VERSION.search(text) if text else None
        return match.group(1) if match else None

    return probe


def _from_setup_py(root: Path) -> str | None:
    text = _read_text(root / "setup.py")
    match = _SETUP_VERSION.search(text) if text else None
    return match.group(1) if match else None


def _from_plain_file(filename: str) -> Callable[[Path], str | None]:
    def probe(root: Path) -> str | None:
        text = _read_text(root / filename)
        return text.strip() if text else None

    return probe


def _from_package_json(root: Path) -> str | None:
    text = _read_text(root / "package.json")
    if text is None:
        return None
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        logger.warning(f"Invalid package.json: {exc}")
        return None
    version = data.get("version") if isinstance(data, dict) else None
    return str(version) if version else None


def _from_git_tag(root: Path) -> str | None:
    tag = latest_git_tag(root)
    return normalize_version(tag) if tag else None


# Probed in order; the first non-empty result wins.
_PROBES: list[tuple[VersionSource, Callable[[Path], str | None]]] = [
    (VersionSource.PYPROJECT, _from_pyproject),
    (VersionSource.VERSION_MODULE, _from_assignment("__version__.py")),
    (VersionSource.SETUP_PY, _from_setup_py),
    (VersionSource.VERSION_TXT, _from_plain_file("version.txt")),
    (VersionSource.VERSION_FILE, _from_plain_file("VERSION")),
    (VersionSource.PACKAGE_JSON, _from_package_json),
    (VersionSource.LAMBDA_FUNCTION, _from_assignment("lambda_function.py")),
    (VersionSource.GIT_TAG, _from_git_tag),
]


class VersionResolver:
    """Resolve the version to deploy for a project directory."""

    def resolve(
        self, explicit_version: str | None, project_root: Path
    ) -> tuple[str, VersionSource]:
        """Resolve a version.

        Args:
            explicit_version: Operator supplied version; returned unchanged
                when non-empty
            project_root: Directory holding the project files

        Returns:
            Tuple of (version, source). Never empty.
        """
        if explicit_version and explicit_version.strip():
            logger.info(f"Using explicit version: {explicit_version}")
            return explicit_version, VersionSource.EXPLICIT

        for source, probe in _PROBES:
            version = probe(project_root)
            if version and version.strip():
                version = version.strip()
                logger.info(f"Found version {version} in {source.value}")
                self._warn_if_not_semver(version)
                return version, source

        revision = git_revision(project_root)
        if revision:
            logger.warning(
                f"No version found in any standard location, using revision {revision}. "
                "Consider adding pyproject.toml, version.txt or VERSION."
            )
            return revision, VersionSource.GIT_REVISION

        logger.warning(
            f"No version source and no git revision available; using '{FALLBACK_VERSION}'"
        )
        return FALLBACK_VERSION, VersionSource.FALLBACK

    @staticmethod
    def _warn_if_not_semver(version: str) -> None:
        if not is_semantic_version(version):
            logger.warning(
                f"Version '{version}' doesn't follow semantic versioning (x.y.z)"
            )
