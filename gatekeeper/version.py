"""Single source of truth for the application version.

Reads the version from pyproject.toml at import time using tomllib (stdlib, Python 3.11+).
"""

import tomllib
from importlib import metadata
from pathlib import Path

_PROJECT_ROOT = Path(__file__).resolve().parent.parent


def get_version() -> str:
    """Read the version from pyproject.toml, or the installed metadata."""
    pyproject_path = _PROJECT_ROOT / "pyproject.toml"
    if pyproject_path.exists():
        with open(pyproject_path, "rb") as f:
            data = tomllib.load(f)
        return data["project"]["version"]
    return metadata.version("telegram-gatekeeper")


__version__: str = get_version()
