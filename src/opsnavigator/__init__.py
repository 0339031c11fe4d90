"""Guided infrastructure workflows with simulated terminals and consoles."""

from __future__ import annotations

import tomllib
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

__all__ = ["__version__"]

DISTRIBUTION = "opsnavigator"


def _source_checkout_version() -> str | None:
    """Return [project].version when running from a checkout that has our pyproject.toml."""
    pyproject = Path(__file__).resolve().parents[2] / "pyproject.toml"
    if not pyproject.is_file():
        return None
    with pyproject.open("rb") as handle:
        project = tomllib.load(handle).get("project", {})
    if project.get("name") != DISTRIBUTION:
        return None
    return project.get("version")


def _resolve_version() -> str:
    checkout = _source_checkout_version()
    if checkout:
        return checkout
    try:
        return version(DISTRIBUTION)
    except PackageNotFoundError:
        return "0+unknown"


__version__ = _resolve_version()
