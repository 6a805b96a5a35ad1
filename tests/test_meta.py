"""Test versioning."""

import tomllib
from pathlib import Path

from moonstore.version import __version__


def test_version_pyproject() -> None:
    """Verify version in pyproject.toml matches package version."""
    pyproject_path = Path("pyproject.toml")
    with pyproject_path.open("rb") as f:
        pyproject_toml = tomllib.load(f)
    assert pyproject_toml.get("project", {}).get("version") == __version__, (
        "Version in pyproject.toml does not match package version."
    )
