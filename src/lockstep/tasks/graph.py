"""Expand requested tasks and their ``depends_on`` edges into a DAG."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field

from lockstep.errors import CycleError, UnknownTaskError
from lockstep.models import CustomTask, RunEnvironment, Task, Workspace
from lockstep.platform import Platform
from lockstep.tasks.resolve import SearchEnvironments, TaskInvocation

NodeId = int


@dataclass(slots=True)
class TaskNode:
    """A task bound to the run environment it executes in.

    ``name`` is ``None`` for ad-hoc commands that are not declared tasks.
    """

    name: str | None
    task: Task
    run_environment: RunEnvironment
    args: tuple[str, ...] = ()
    dependencies: list[NodeId] = field(default_factory=list)

    @property
    def label(self) -> str:
        if self.name is not None:
            return self.name
        if isinstance(self.task, CustomTask):
            return " ".join(self.task.cmd)
        return "<anonymous>"


@dataclass(slots=True)
class TaskGraph:
    workspace: Workspace
    nodes: list[TaskNode] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self) -> Iterator[TaskNode]:
        return iter(self.nodes)

    def node(self, node_id: NodeId) -> TaskNode:
        return self.nodes[node_id]

    def run_environments(self) -> list[RunEnvironment]:
        """Distinct run environments, in discovery order."""
        return list(dict.fromkeys(node.run_environment for node in self.nodes))

    @classmethod
    def from_cmd_args(
        cls,
        workspace: Workspace,
        args: Sequence[str],
        *,
        environment: str | None = None,
        platform: Platform | str | None = None,
    ) -> TaskGraph:
        """Graph for ``run <task> [args...]``."""
        invocation = TaskInvocation.from_cmd_args(
            args, environment=environment, platform=platform
        )
        return cls.from_invocations(workspace, [invocation])

    @classmethod
    def from_invocations(
        cls, workspace: Workspace, invocations: Iterable[TaskInvocation]
    ) -> TaskGraph:
        builder = _GraphBuilder(workspace)
        for invocation in invocations:
            builder.add_root(invocation)
        return cls(workspace=workspace, nodes=builder.nodes)

    def topological_order(self) -> list[NodeId]:
        """Dependencies before dependents; ties follow discovery order."""
        order: list[NodeId] = []
        visited: set[NodeId] = set()

        def visit(node_id: NodeId) -> None:
            if node_id in visited:
                return
            visited.add(node_id)
            for dependency in self.nodes[node_id].dependencies:
                visit(dependency)
            order.append(node_id)

        for node_id in range(len(self.nodes)):
            visit(node_id)
        return order


@dataclass(slots=True)
class _GraphBuilder:
    workspace: Workspace
    nodes: list[TaskNode] = field(default_factory=list)
    index: dict[tuple[str, RunEnvironment], NodeId] = field(default_factory=dict)
    stack: list[tuple[str, RunEnvironment]] = field(default_factory=list)

    def add_root(self, invocation: TaskInvocation) -> NodeId:
        search = SearchEnvironments.from_opt_env(
            self.workspace, invocation.environment, invocation.platform
        )
        found = search.find_task(invocation.name)
        if found is None:
            environment = search.default_environment()
            run_environment = RunEnvironment(environment.name, search.platform_for(environment))
            command = CustomTask(cmd=(invocation.name, *invocation.args))
            return self._append(TaskNode(None, command, run_environment))
        run_environment = RunEnvironment(
            found.environment.name, search.platform_for(found.environment)
        )
        return self._expand(invocation.name, found.task, run_environment, invocation.args)

    def _expand(
        self,
        name: str,
        task: Task,
        run_environment: RunEnvironment,
        args: tuple[str, ...],
    ) -> NodeId:
        key = (name, run_environment)
        if key in self.stack:
            start = self.stack.index(key)
            raise CycleError(tuple(n for n, _ in self.stack[start:]) + (name,))
        existing = self.index.get(key)
        if existing is not None and not args:
            return existing

        self.stack.append(key)
        dependencies: list[NodeId] = []
        environment = self.workspace.environments[run_environment.environment]
        for dependency in getattr(task, "depends_on", ()):
            dep_task = self.workspace.task(environment, dependency, run_environment.platform)
            if dep_task is None:
                raise UnknownTaskError(dependency, environment=environment.name)
            dep_id = self._expand(dependency, dep_task, run_environment, ())
            if dep_id not in dependencies:
                dependencies.append(dep_id)
        self.stack.pop()

        node_id = self._append(TaskNode(name, task, run_environment, args, dependencies))
        if not args:
            self.index[key] = node_id
        return node_id

    def _append(self, node: TaskNode) -> NodeId:
        self.nodes.append(node)
        return len(self.nodes) - 1


__all__ = ["NodeId", "TaskGraph", "TaskNode"]
