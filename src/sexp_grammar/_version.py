"""Package version lookup."""

from __future__ import annotations

import tomllib
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as distribution_version
from pathlib import Path

DIST_NAME = "sexp-grammar"
UNKNOWN_VERSION = "0.0.0+unknown"

# src/sexp_grammar/_version.py -> repository root
_SOURCE_PYPROJECT = Path(__file__).resolve().parents[2] / "pyproject.toml"


def version_from_pyproject(pyproject: Path) -> str | None:
    """Return ``project.version`` if ``pyproject`` declares this distribution."""
    try:
        with pyproject.open("rb") as f:
            project = tomllib.load(f).get("project", {})
    except (OSError, tomllib.TOMLDecodeError):
        return None
    if project.get("name") != DIST_NAME:
        return None
    declared = project.get("version")
    return declared if isinstance(declared, str) else None


def get_version() -> str:
    """Installed distribution version, else the one in a source checkout."""
    try:
        return distribution_version(DIST_NAME)
    except PackageNotFoundError:
        pass
    return version_from_pyproject(_SOURCE_PYPROJECT) or UNKNOWN_VERSION
