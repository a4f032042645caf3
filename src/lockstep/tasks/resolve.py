"""Locate task definitions across the environments of a workspace."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from lockstep.errors import AmbiguousTaskError, UnknownEnvironmentError, ValidationError
from lockstep.models import DEFAULT_ENVIRONMENT, Environment, Task, Workspace
from lockstep.platform import Platform


@dataclass(frozen=True, slots=True)
class TaskInvocation:
    """One requested task: a name (or ad-hoc command) plus trailing args."""

    name: str
    environment: str | None = None
    platform: Platform | None = None
    args: tuple[str, ...] = ()

    @classmethod
    def from_cmd_args(
        cls,
        args: Sequence[str],
        *,
        environment: str | None = None,
        platform: Platform | str | None = None,
    ) -> TaskInvocation:
        if not args or not args[0].strip():
            raise ValidationError("A task invocation needs a task name or command.")
        return cls(
            name=args[0],
            environment=environment,
            platform=Platform.parse(platform) if platform is not None else None,
            args=tuple(args[1:]),
        )


@dataclass(frozen=True, slots=True)
class FoundTask:
    environment: Environment
    task: Task


@dataclass(frozen=True, slots=True)
class SearchEnvironments:
    """Where to look for a task name.

    With an explicit environment only that environment is searched. Otherwise
    the default environment wins; failing that the task must be declared by
    exactly one other environment.
    """

    workspace: Workspace
    explicit_environment: Environment | None = None
    platform: Platform | None = None

    @classmethod
    def from_opt_env(
        cls,
        workspace: Workspace,
        environment: str | None = None,
        platform: Platform | str | None = None,
    ) -> SearchEnvironments:
        explicit = None
        if environment is not None:
            explicit = workspace.environment(environment)
            if explicit is None:
                raise UnknownEnvironmentError(
                    environment, available=tuple(sorted(workspace.environments))
                )
        parsed = Platform.parse(platform) if platform is not None else None
        return cls(workspace=workspace, explicit_environment=explicit, platform=parsed)

    def platform_for(self, environment: Environment) -> Platform:
        if self.platform is not None:
            return self.platform
        return self.workspace.best_platform(environment)

    def find_task(self, name: str) -> FoundTask | None:
        if self.explicit_environment is not None:
            return self._lookup(self.explicit_environment, name)

        default = self.workspace.environment(DEFAULT_ENVIRONMENT)
        if default is not None:
            found = self._lookup(default, name)
            if found is not None:
                return found

        candidates = [
            found
            for env_name, environment in sorted(self.workspace.environments.items())
            if env_name != DEFAULT_ENVIRONMENT
            for found in [self._lookup(environment, name)]
            if found is not None
        ]
        if len(candidates) > 1:
            raise AmbiguousTaskError(
                name, environments=tuple(c.environment.name for c in candidates)
            )
        return candidates[0] if candidates else None

    def default_environment(self) -> Environment:
        if self.explicit_environment is not None:
            return self.explicit_environment
        return self.workspace.environments[DEFAULT_ENVIRONMENT]

    def _lookup(self, environment: Environment, name: str) -> FoundTask | None:
        task = self.workspace.task(environment, name, self.platform_for(environment))
        return FoundTask(environment, task) if task is not None else None


__all__ = ["FoundTask", "SearchEnvironments", "TaskInvocation"]
