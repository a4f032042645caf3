"""Command functions: each takes a validated config value and executes it."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from lockstep.config import InstallConfig, LockConfig, RunConfig, UpdateConfig, UpdateMode
from lockstep.environment.installer import MetadataInstaller, PackageInstaller
from lockstep.environment.materialize import EnvironmentMaterializer, Prefix
from lockstep.errors import LockstepError, UnknownEnvironmentError, exit_code_for
from lockstep.lockfile.io import read_lockfile, write_lockfile
from lockstep.lockfile.model import LockFile
from lockstep.lockfile.resolve import (
    LockFileDiff,
    Solver,
    diff_lock_files,
    ensure_lock_file,
    is_up_to_date,
    lock_path_for,
    solve_lock_file,
)
from lockstep.models import (
    Environment,
    RunEnvironment,
    Task,
    Workspace,
    add_task,
    alias_task,
    remove_task,
)
from lockstep.observability import StructuredLogger
from lockstep.platform import Platform
from lockstep.run import run
from lockstep.tasks.execute import RunOutput


@dataclass(frozen=True, slots=True)
class LockResult:
    diff: LockFileDiff
    stale: bool
    written: bool


def install(
    workspace: Workspace,
    config: InstallConfig,
    *,
    solver: Solver | None = None,
    installer: PackageInstaller | None = None,
    logger: StructuredLogger | None = None,
    lock_path: str | Path | None = None,
) -> list[Prefix]:
    """Materialize every environment, or only ``config.environment``, on its best platform."""
    targets = [
        RunEnvironment(environment.name, workspace.best_platform(environment))
        for environment in _install_targets(workspace, config)
    ]
    lock_file = ensure_lock_file(
        workspace,
        usage=config.lock_file_usage,
        solver=solver,
        required=targets,
        lock_path=lock_path,
        logger=logger,
    )
    materializer = EnvironmentMaterializer(
        workspace,
        lock_file,
        installer=installer or MetadataInstaller(),
        logger=logger,
        progress=config.progress,
    )
    return [materializer.prefix(target, mode=config.update_mode) for target in targets]


def update(
    workspace: Workspace,
    config: UpdateConfig,
    *,
    solver: Solver,
    installer: PackageInstaller | None = None,
    logger: StructuredLogger | None = None,
    lock_path: str | Path | None = None,
) -> LockFileDiff:
    """Re-solve, releasing the pins of ``config.packages`` (all pins when empty).

    Environments that are already installed are brought up to date unless
    ``no_install`` is set; ``dry_run`` neither writes nor installs.
    """
    path = Path(lock_path) if lock_path is not None else lock_path_for(workspace)
    previous = read_lockfile(path) if path.exists() else None
    fresh = solve_lock_file(workspace, solver, previous=previous, unlock=config.packages)
    diff = diff_lock_files(previous, fresh)
    if logger is not None:
        logger.log(
            operation="update",
            message=f"{len(diff.changes)} package change(s).",
            extra={"dry_run": config.dry_run, "changes": diff.to_dict()},
        )
    if config.dry_run:
        return diff

    write_lockfile(fresh, path)
    if not config.no_install:
        _reinstall_existing(workspace, fresh, config, installer, logger)
    return diff


def lock(
    workspace: Workspace,
    config: LockConfig,
    *,
    solver: Solver,
    logger: StructuredLogger | None = None,
    lock_path: str | Path | None = None,
) -> LockResult:
    """Bring the lock file up to date without installing anything."""
    path = Path(lock_path) if lock_path is not None else lock_path_for(workspace)
    previous = read_lockfile(path) if path.exists() else None
    if previous is not None and is_up_to_date(previous, workspace):
        return LockResult(diff=LockFileDiff(), stale=False, written=False)

    fresh = solve_lock_file(workspace, solver, previous=previous)
    diff = diff_lock_files(previous, fresh)
    if config.check:
        if logger is not None:
            logger.log(
                operation="lock_check",
                message="Lockfile is out of date.",
                level="warning",
                extra={"path": str(path), "changes": diff.to_dict()},
            )
        return LockResult(diff=diff, stale=True, written=False)
    write_lockfile(fresh, path)
    if logger is not None:
        logger.log(operation="lock", message="Wrote lockfile.", extra={"path": str(path)})
    return LockResult(diff=diff, stale=True, written=True)


def run_with_exit_code(
    workspace: Workspace,
    config: RunConfig,
    *,
    solver: Solver | None = None,
    installer: PackageInstaller | None = None,
    logger: StructuredLogger | None = None,
    lock_path: str | Path | None = None,
) -> tuple[int, RunOutput, LockstepError | None]:
    """Like :func:`~lockstep.run.run`, but maps failures to the process exit status.

    A failing task yields its own exit code; any other failure yields
    ``STRUCTURAL_EXIT_CODE``. Either way the output of tasks that already
    finished is returned.
    """
    try:
        output = run(
            workspace,
            config,
            solver=solver,
            installer=installer,
            logger=logger,
            lock_path=lock_path,
        )
    except LockstepError as exc:
        partial = exc.output if exc.output is not None else RunOutput()
        return exit_code_for(exc), partial, exc
    return 0, output, None


def task_add(
    workspace: Workspace,
    name: str,
    task: Task,
    *,
    feature: str | None = None,
    platform: Platform | str | None = None,
) -> Workspace:
    return add_task(workspace, name, task, feature=feature, platform=_platform(platform))


def task_remove(
    workspace: Workspace,
    name: str,
    *,
    feature: str | None = None,
    platform: Platform | str | None = None,
) -> Workspace:
    return remove_task(workspace, name, feature=feature, platform=_platform(platform))


def task_alias(
    workspace: Workspace,
    name: str,
    depends_on: tuple[str, ...],
    *,
    platform: Platform | str | None = None,
    description: str | None = None,
) -> Workspace:
    return alias_task(
        workspace, name, depends_on, platform=_platform(platform), description=description
    )


def _install_targets(workspace: Workspace, config: InstallConfig) -> list[Environment]:
    if config.all or config.environment is None:
        return [workspace.environments[name] for name in sorted(workspace.environments)]
    environment = workspace.environment(config.environment)
    if environment is None:
        raise UnknownEnvironmentError(
            config.environment, available=tuple(sorted(workspace.environments))
        )
    return [environment]


def _reinstall_existing(
    workspace: Workspace,
    lock_file: LockFile,
    config: UpdateConfig,
    installer: PackageInstaller | None,
    logger: StructuredLogger | None,
) -> None:
    materializer = EnvironmentMaterializer(
        workspace,
        lock_file,
        installer=installer or MetadataInstaller(),
        logger=logger,
        progress=config.progress,
    )
    for name in sorted(workspace.environments):
        environment = workspace.environments[name]
        target = RunEnvironment(name, workspace.best_platform(environment))
        locked = lock_file.environment(name)
        if not workspace.env_dir(name).is_dir() or locked is None:
            continue
        if locked.packages_for(target.platform) is None:
            continue
        materializer.prefix(target, mode=UpdateMode.REVALIDATE)


def _platform(value: Platform | str | None) -> Platform | None:
    return Platform.parse(value) if value is not None else None


__all__ = [
    "LockResult",
    "install",
    "lock",
    "run",
    "run_with_exit_code",
    "task_add",
    "task_alias",
    "task_remove",
    "update",
]
