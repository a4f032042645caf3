"""In-process solver over a fixed package catalog.

Picks, for every declared dependency, the highest catalog entry that satisfies
its specifier; transitive dependencies are not followed. Suitable for:
- unit tests of the lock, install and run pipeline,
- offline workspaces whose packages are mirrored into a local catalog.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from packaging.version import InvalidVersion
from packaging.version import Version as PypiVersion

from lockstep.errors import LockfileError
from lockstep.lockfile.model import CondaPackage, LockedPackage, PypiPackage
from lockstep.models import Environment, Workspace
from lockstep.platform import Platform
from lockstep.specs import (
    MatchSpec,
    Requirement,
    parse_match_spec,
    parse_requirement,
    parse_version,
)


@dataclass(slots=True)
class CatalogSolver:
    """Solver backed by in-memory package lists."""

    conda: list[CondaPackage] = field(default_factory=list)
    pypi: list[PypiPackage] = field(default_factory=list)
    name: str = "catalog"

    def add(self, packages: Iterable[LockedPackage]) -> CatalogSolver:
        for package in packages:
            if isinstance(package, CondaPackage):
                self.conda.append(package)
            else:
                self.pypi.append(package)
        return self

    def solve(
        self,
        workspace: Workspace,
        environment: Environment,
        platform: Platform,
        *,
        previous: Sequence[LockedPackage] = (),
    ) -> list[LockedPackage]:
        pinned_conda = {p.name: p for p in previous if isinstance(p, CondaPackage)}
        pinned_pypi = {p.name: p for p in previous if isinstance(p, PypiPackage)}
        solved: list[LockedPackage] = []

        for name, spec_text in sorted(workspace.conda_dependencies(environment).items()):
            spec = parse_match_spec(f"{name} {spec_text}".strip())
            pinned = pinned_conda.get(name.strip().lower())
            if pinned is not None and pinned.satisfies(spec):
                solved.append(pinned)
                continue
            solved.append(self._best_conda(spec, platform, environment))

        for name, spec_text in sorted(workspace.pypi_dependencies(environment).items()):
            requirement = parse_requirement(_requirement_text(name, spec_text))
            pinned_pypi_package = pinned_pypi.get(name)
            if pinned_pypi_package is not None and pinned_pypi_package.satisfies(requirement):
                solved.append(pinned_pypi_package)
                continue
            solved.append(self._best_pypi(requirement, environment))
        return solved

    def _best_conda(
        self, spec: MatchSpec, platform: Platform, environment: Environment
    ) -> CondaPackage:
        subdirs = {str(platform), str(Platform.NOARCH), ""}
        candidates = [
            package
            for package in self.conda
            if package.subdir in subdirs and package.satisfies(spec)
        ]
        if not candidates:
            raise LockfileError(
                f"No package satisfies '{spec}'.",
                hint="Relax the dependency or add a matching package to the catalog.",
                context={
                    "solver": self.name,
                    "environment": environment.name,
                    "platform": str(platform),
                },
            )
        return max(candidates, key=lambda p: (parse_version(p.version), p.build_number, p.build))

    def _best_pypi(self, requirement: Requirement, environment: Environment) -> PypiPackage:
        candidates = [package for package in self.pypi if package.satisfies(requirement)]
        if not candidates:
            raise LockfileError(
                f"No package satisfies '{requirement}'.",
                hint="Relax the dependency or add a matching package to the catalog.",
                context={"solver": self.name, "environment": environment.name},
            )
        return max(candidates, key=lambda p: _pypi_version(p.version))


def _requirement_text(name: str, spec: str) -> str:
    spec = spec.strip()
    if spec in ("", "*"):
        return name
    if spec[0].isdigit():
        return f"{name}=={spec}"
    return f"{name}{spec}"


def _pypi_version(text: str) -> PypiVersion:
    try:
        return PypiVersion(text)
    except InvalidVersion:
        return PypiVersion("0")


__all__ = ["CatalogSolver"]
