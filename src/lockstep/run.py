"""Run orchestration: graph, lock file, prefixes, then tasks in order.

The graph is built first so that unknown tasks, unknown environments and
cycles fail before the lock file is touched or any process is spawned.
Tasks then run one at a time; the first non-zero exit stops the run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from lockstep.config import ProgressConfig, RunConfig, UpdateMode
from lockstep.environment.activation import get_task_env
from lockstep.environment.installer import MetadataInstaller, PackageInstaller
from lockstep.environment.materialize import EnvironmentMaterializer, Prefix
from lockstep.errors import LockstepError, NonZeroExitCodeError
from lockstep.lockfile.resolve import Solver, ensure_lock_file
from lockstep.models import RunEnvironment, Workspace
from lockstep.observability import Progress, StructuredLogger
from lockstep.tasks.execute import ExecutableTask, RunOutput
from lockstep.tasks.graph import TaskGraph


@dataclass(slots=True)
class TaskRunner:
    """Executes a task graph against one materializer.

    Prefixes and activation environments are computed lazily, once per
    :class:`RunEnvironment` (and clean/inherited variant).
    """

    materializer: EnvironmentMaterializer
    clean_env: bool = False
    update_mode: UpdateMode = UpdateMode.REVALIDATE
    logger: StructuredLogger | None = None
    progress: ProgressConfig = field(default_factory=ProgressConfig)
    _task_envs: dict[tuple[RunEnvironment, bool], dict[str, str]] = field(
        default_factory=dict, init=False, repr=False
    )

    def prefix(self, run_environment: RunEnvironment) -> Prefix:
        return self.materializer.prefix(run_environment, mode=self.update_mode)

    def task_env(self, run_environment: RunEnvironment, *, clean_env: bool) -> dict[str, str]:
        key = (run_environment, clean_env)
        env = self._task_envs.get(key)
        if env is None:
            prefix = self.prefix(run_environment)
            env = get_task_env(self.materializer.workspace, prefix, clean_env=clean_env)
            self._task_envs[key] = env
        return env

    def run(self, graph: TaskGraph) -> RunOutput:
        result = RunOutput()
        progress = Progress(self.progress)
        for node_id in graph.topological_order():
            task = ExecutableTask.from_task_graph(graph, node_id)
            if not task.has_command():
                continue
            try:
                env = self.task_env(
                    task.run_environment, clean_env=self.clean_env or task.clean_env
                )
                progress.message(f"Running task {task.label}: {task.command_line()}")
                output = task.execute_with_pipes(env)
            except LockstepError as exc:
                # Keep what the finished tasks printed.
                if exc.output is None:
                    exc.output = result
                raise
            result = result.combine(output)
            self._log(task, output)
            if output.exit_code != 0:
                raise NonZeroExitCodeError(output.exit_code, task=task.label, output=result)
        return result

    def _log(self, task: ExecutableTask, output: RunOutput) -> None:
        if self.logger is None:
            return
        self.logger.log(
            operation="run_task",
            message=f"Task exited with code {output.exit_code}.",
            environment=task.run_environment.environment,
            platform=str(task.run_environment.platform),
            task=task.label,
            level="info" if output.exit_code == 0 else "error",
            extra={"exit_code": output.exit_code, "command": task.command_line()},
        )


def run(
    workspace: Workspace,
    config: RunConfig,
    *,
    solver: Solver | None = None,
    installer: PackageInstaller | None = None,
    logger: StructuredLogger | None = None,
    lock_path: str | Path | None = None,
) -> RunOutput:
    """``run``: resolve, build the graph, lock, materialize and execute."""
    graph = TaskGraph.from_cmd_args(
        workspace, config.task, environment=config.environment, platform=config.platform
    )
    lock_file = ensure_lock_file(
        workspace,
        usage=config.lock_file_usage,
        solver=solver,
        required=graph.run_environments(),
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
    runner = TaskRunner(
        materializer,
        clean_env=config.clean_env,
        update_mode=config.update_mode,
        logger=logger,
        progress=config.progress,
    )
    return runner.run(graph)


__all__ = ["TaskRunner", "run"]
