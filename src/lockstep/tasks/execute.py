"""Spawn one task with captured output."""

from __future__ import annotations

import os
import shlex
import shutil
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from lockstep.errors import TaskExecutionError
from lockstep.models import AliasTask, CustomTask, ExecuteTask, RunEnvironment, Task
from lockstep.tasks.graph import NodeId, TaskGraph


@dataclass(frozen=True, slots=True)
class RunOutput:
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0

    def combine(self, other: RunOutput) -> RunOutput:
        """Append *other*; the exit code is the one of the later run."""
        return RunOutput(
            stdout=self.stdout + other.stdout,
            stderr=self.stderr + other.stderr,
            exit_code=other.exit_code,
        )


@dataclass(frozen=True, slots=True)
class ExecutableTask:
    name: str | None
    task: Task
    run_environment: RunEnvironment
    root: Path
    args: tuple[str, ...] = ()

    @classmethod
    def from_task_graph(cls, graph: TaskGraph, node_id: NodeId) -> ExecutableTask:
        node = graph.node(node_id)
        return cls(
            name=node.name,
            task=node.task,
            run_environment=node.run_environment,
            root=graph.workspace.root,
            args=node.args,
        )

    @property
    def label(self) -> str:
        if self.name is not None:
            return self.name
        return self.command_line() or "<alias>"

    @property
    def clean_env(self) -> bool:
        return isinstance(self.task, ExecuteTask) and self.task.clean_env

    def has_command(self) -> bool:
        return not isinstance(self.task, AliasTask)

    def command_line(self) -> str | None:
        """The shell form of the command, or ``None`` for aliases."""
        task = self.task
        if isinstance(task, AliasTask):
            return None
        if isinstance(task, CustomTask):
            return task.cmd[0] if len(task.cmd) == 1 else shlex.join(task.cmd)
        if isinstance(task.cmd, str):
            if not self.args:
                return task.cmd
            return f"{task.cmd} {shlex.join(self.args)}"
        return shlex.join((*task.cmd, *self.args))

    def working_directory(self) -> Path:
        cwd = getattr(self.task, "cwd", None)
        if cwd is None:
            return self.root
        path = Path(cwd)
        return path if path.is_absolute() else self.root / path

    def execute_with_pipes(self, env: Mapping[str, str], stdin: str | None = None) -> RunOutput:
        """Run to completion with stdout/stderr captured in memory."""
        if not self.has_command():
            return RunOutput()

        process_env = dict(env)
        if isinstance(self.task, ExecuteTask):
            process_env.update(self.task.env)
        cwd = self.working_directory()
        if not cwd.is_dir():
            raise TaskExecutionError(
                f"Working directory of task '{self.label}' does not exist.",
                context={"task": self.label, "cwd": str(cwd)},
            )

        argv = self._argv(process_env)
        try:
            result = subprocess.run(
                argv if argv is not None else self.command_line(),
                shell=argv is None,
                cwd=str(cwd),
                env=process_env,
                input=stdin,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                check=False,
            )
        except OSError as exc:
            raise TaskExecutionError(
                f"Failed to spawn task '{self.label}'.",
                hint="Check that the command exists in the environment and is executable.",
                context={
                    "task": self.label,
                    "command": self.command_line() or "",
                    "environment": str(self.run_environment),
                    "error": str(exc),
                },
            ) from exc
        return RunOutput(stdout=result.stdout, stderr=result.stderr, exit_code=result.returncode)

    def _argv(self, env: Mapping[str, str]) -> list[str] | None:
        """Resolve argv commands against the task ``PATH``; shell strings return ``None``."""
        task = self.task
        if not isinstance(task, ExecuteTask) or isinstance(task.cmd, str):
            return None
        path = next((v for k, v in env.items() if k.upper() == "PATH"), None)
        executable = shutil.which(task.cmd[0], path=path)
        if executable is None:
            raise TaskExecutionError(
                f"Executable '{task.cmd[0]}' was not found.",
                hint="Add the package providing it to the environment.",
                context={
                    "task": self.label,
                    "environment": str(self.run_environment),
                    "path": path or os.defpath,
                },
            )
        return [executable, *task.cmd[1:], *self.args]


__all__ = ["ExecutableTask", "RunOutput"]
