"""Lockfile resolution helpers: manifest digests, solving and freshness."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from lockstep.config import LockFileUsage
from lockstep.errors import LockfileError
from lockstep.lockfile.io import LOCKFILE_NAME, read_lockfile, write_lockfile
from lockstep.lockfile.model import CondaPackage, LockedEnvironment, LockedPackage, LockFile
from lockstep.models import Environment, RunEnvironment, Workspace
from lockstep.observability import StructuredLogger
from lockstep.platform import Platform


class Solver(Protocol):
    """Computes the packages that satisfy one environment on one platform.

    *previous* holds packages the solver should keep at their locked versions
    where possible.
    """

    def solve(
        self,
        workspace: Workspace,
        environment: Environment,
        platform: Platform,
        *,
        previous: Sequence[LockedPackage] = (),
    ) -> Sequence[LockedPackage]: ...


def manifest_digest(workspace: Workspace) -> str:
    payload: dict[str, Any] = {}
    for name in sorted(workspace.environments):
        environment = workspace.environments[name]
        payload[name] = {
            "channels": workspace.channels_for(environment),
            "platforms": [str(p) for p in workspace.platforms_for(environment)],
            "conda": workspace.conda_dependencies(environment),
            "pypi": workspace.pypi_dependencies(environment),
        }
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def lock_path_for(workspace: Workspace) -> Path:
    return workspace.root / LOCKFILE_NAME


def solve_lock_file(
    workspace: Workspace,
    solver: Solver,
    *,
    previous: LockFile | None = None,
    unlock: Iterable[str] | None = None,
) -> LockFile:
    """Solve every environment/platform of *workspace* into a new lock file.

    With *unlock* given, only those package names are released from the
    *previous* pins; ``None`` keeps every previous pin, an empty iterable
    releases all of them.
    """
    released = None if unlock is None else {name.lower() for name in unlock}
    environments: dict[str, LockedEnvironment] = {}
    for name, environment in workspace.environments.items():
        slots: dict[Platform, tuple[LockedPackage, ...]] = {}
        for platform in workspace.platforms_for(environment):
            pinned = _previous_slot(previous, name, platform)
            if released is not None:
                pinned = tuple(p for p in pinned if released and p.name.lower() not in released)
            slots[platform] = tuple(
                solver.solve(workspace, environment, platform, previous=pinned)
            )
        environments[name] = LockedEnvironment(
            channels=tuple(workspace.channels_for(environment)),
            packages=slots,
        )
    return LockFile(environments=environments, manifest_digest=manifest_digest(workspace))


def missing_slots(lock_file: LockFile, run_environments: Iterable[RunEnvironment]) -> list[str]:
    missing: list[str] = []
    for run_environment in run_environments:
        environment = lock_file.environment(run_environment.environment)
        if environment is None or environment.packages_for(run_environment.platform) is None:
            missing.append(str(run_environment))
    return missing


def is_up_to_date(lock_file: LockFile, workspace: Workspace) -> bool:
    if lock_file.manifest_digest != manifest_digest(workspace):
        return False
    expected = [
        RunEnvironment(name, platform)
        for name, environment in workspace.environments.items()
        for platform in workspace.platforms_for(environment)
    ]
    return not missing_slots(lock_file, expected)


def ensure_lock_file(
    workspace: Workspace,
    *,
    usage: LockFileUsage,
    solver: Solver | None = None,
    required: Iterable[RunEnvironment] = (),
    lock_path: str | Path | None = None,
    logger: StructuredLogger | None = None,
) -> LockFile:
    """Return a lock file that is usable for *required* under *usage*.

    ``FROZEN`` uses the file as-is and fails only when it is missing or lacks
    a required environment/platform. ``LOCKED`` also requires the manifest
    digest to match. ``UPDATE`` re-solves and writes when stale.
    """
    path = Path(lock_path) if lock_path is not None else lock_path_for(workspace)
    existing = read_lockfile(path) if path.exists() else None
    required = list(required)

    if usage is not LockFileUsage.UPDATE:
        if existing is None:
            raise LockfileError(
                "Lockfile does not exist.",
                hint=f"Run without `--{usage.value}` to create it.",
                context={"path": str(path), "mode": usage.value},
            )
        missing = missing_slots(existing, required)
        if missing:
            raise LockfileError(
                "Lockfile is stale: required environments are not locked.",
                hint=f"Run without `--{usage.value}` to update the lockfile.",
                context={"mode": usage.value, "missing": ", ".join(missing)},
            )
        if usage is LockFileUsage.LOCKED and not is_up_to_date(existing, workspace):
            raise LockfileError(
                "Lockfile is stale for the current manifest.",
                hint="Run `lock` to update it, or drop `--locked`.",
                context={"mode": usage.value, "path": str(path)},
            )
        return existing

    if existing is not None and is_up_to_date(existing, workspace):
        _log(logger, "lockfile_fresh", "Lockfile is up to date.", path)
        return existing
    if solver is None:
        raise LockfileError(
            "Lockfile is out of date and no solver is configured.",
            hint="Provide a solver or run with `--frozen`.",
            context={"path": str(path)},
        )
    fresh = solve_lock_file(workspace, solver, previous=existing)
    write_lockfile(fresh, path)
    _log(logger, "lockfile_updated", "Re-solved and wrote lockfile.", path)
    return fresh


@dataclass(frozen=True, slots=True)
class PackageChange:
    environment: str
    platform: Platform
    name: str
    before: str | None
    after: str | None


@dataclass(frozen=True, slots=True)
class LockFileDiff:
    changes: tuple[PackageChange, ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return not self.changes

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for change in self.changes:
            slot = payload.setdefault(change.environment, {}).setdefault(str(change.platform), [])
            slot.append({"name": change.name, "before": change.before, "after": change.after})
        return payload


def diff_lock_files(before: LockFile | None, after: LockFile) -> LockFileDiff:
    changes: list[PackageChange] = []
    names = list(after.environments)
    if before is not None:
        names += [name for name in before.environments if name not in after.environments]
    for name in names:
        old_env = before.environment(name) if before is not None else None
        new_env = after.environment(name)
        platforms = list(new_env.platforms() if new_env else ())
        platforms += [p for p in (old_env.platforms() if old_env else ()) if p not in platforms]
        for platform in platforms:
            old = _versions(old_env, platform)
            new = _versions(new_env, platform)
            for key in list(new) + [k for k in old if k not in new]:
                if old.get(key) != new.get(key):
                    changes.append(
                        PackageChange(name, platform, key[1], old.get(key), new.get(key))
                    )
    return LockFileDiff(changes=tuple(changes))


def _versions(
    environment: LockedEnvironment | None, platform: Platform
) -> dict[tuple[str, str], str]:
    if environment is None:
        return {}
    result: dict[tuple[str, str], str] = {}
    for package in environment.packages_for(platform) or ():
        if isinstance(package, CondaPackage):
            result[("conda", package.name)] = f"{package.version} {package.build}".strip()
        else:
            result[("pypi", package.name)] = package.version
    return result


def _previous_slot(
    previous: LockFile | None, environment: str, platform: Platform
) -> tuple[LockedPackage, ...]:
    if previous is None:
        return ()
    locked = previous.environment(environment)
    if locked is None:
        return ()
    return locked.packages_for(platform) or ()


def _log(logger: StructuredLogger | None, operation: str, message: str, path: Path) -> None:
    if logger is not None:
        logger.log(operation=operation, message=message, extra={"path": str(path)})
