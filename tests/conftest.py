"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from lockstep.config import HIDDEN_PROGRESS, ProgressConfig
from lockstep.lockfile.catalog import CatalogSolver
from lockstep.lockfile.model import CondaPackage, Location, PypiPackage
from lockstep.models import Feature, Workspace
from lockstep.platform import Platform


@pytest.fixture
def host_platform() -> Platform:
    return Platform.current()


@pytest.fixture
def solver(host_platform: Platform) -> CatalogSolver:
    """Catalog with a couple of versions per package, for the host platform."""
    return CatalogSolver(
        conda=[
            _conda("python", "3.11.4", host_platform),
            _conda("python", "3.12.1", host_platform),
            _conda("numpy", "1.25.2", host_platform),
            _conda("numpy", "1.26.0", host_platform),
            _conda("tzdata", "2024a", Platform.NOARCH),
        ],
        pypi=[
            _pypi("requests", "2.30.0"),
            _pypi("requests", "2.31.0"),
        ],
    )


@pytest.fixture
def workspace(tmp_path: Path, host_platform: Platform) -> Workspace:
    """A workspace with python and numpy in the default feature."""
    root = tmp_path / "demo"
    root.mkdir()
    return Workspace(
        name="demo",
        root=root,
        platforms=[host_platform],
        channels=["conda-forge"],
        features={
            "default": Feature(
                name="default",
                conda_dependencies={"python": "3.11.*", "numpy": ">=1.25"},
            )
        },
    )


@pytest.fixture
def quiet() -> ProgressConfig:
    return HIDDEN_PROGRESS


def _conda(name: str, version: str, platform: Platform) -> CondaPackage:
    return CondaPackage(
        name=name,
        version=version,
        build="h0_0",
        channel="https://conda.anaconda.org/conda-forge/",
        location=Location(
            f"https://conda.anaconda.org/conda-forge/{platform}/{name}-{version}-h0_0.conda"
        ),
        subdir=str(platform),
    )


def _pypi(name: str, version: str) -> PypiPackage:
    return PypiPackage(
        name=name,
        version=version,
        location=Location(f"https://files.pythonhosted.org/{name}-{version}-py3-none-any.whl"),
    )
