"""Core typed dataclasses for the workspace manifest and its tasks.

Manifest files are parsed elsewhere; these types are what the lock,
install and run layers consume. An environment is composed of features:
every environment inherits the ``default`` feature unless it opts out.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from lockstep.errors import ValidationError
from lockstep.platform import Platform, best_platform

DEFAULT_FEATURE = "default"
DEFAULT_ENVIRONMENT = "default"
ENVS_DIR = ".lockstep/envs"


@dataclass(frozen=True, slots=True)
class ExecuteTask:
    """A task that runs a command line.

    ``cmd`` is either a shell string (extra arguments are quoted and appended)
    or an argv tuple executed directly.
    """

    cmd: str | tuple[str, ...]
    cwd: str | None = None
    env: Mapping[str, str] = field(default_factory=dict)
    depends_on: tuple[str, ...] = ()
    description: str | None = None
    clean_env: bool = False


@dataclass(frozen=True, slots=True)
class AliasTask:
    """A task that only groups other tasks."""

    depends_on: tuple[str, ...]
    description: str | None = None


@dataclass(frozen=True, slots=True)
class CustomTask:
    """An ad-hoc command that is not declared in the manifest."""

    cmd: tuple[str, ...]
    cwd: str | None = None


Task = ExecuteTask | AliasTask | CustomTask


@dataclass(slots=True)
class Feature:
    name: str
    conda_dependencies: dict[str, str] = field(default_factory=dict)
    pypi_dependencies: dict[str, str] = field(default_factory=dict)
    channels: list[str] = field(default_factory=list)
    platforms: list[Platform] = field(default_factory=list)
    activation_env: dict[str, str] = field(default_factory=dict)
    tasks: dict[str, Task] = field(default_factory=dict)
    target_tasks: dict[Platform, dict[str, Task]] = field(default_factory=dict)

    @property
    def is_default(self) -> bool:
        return self.name == DEFAULT_FEATURE

    def task(self, name: str, platform: Platform | None = None) -> Task | None:
        """Platform-specific definitions take precedence over generic ones."""
        if platform is not None:
            targeted = self.target_tasks.get(platform, {})
            if name in targeted:
                return targeted[name]
        return self.tasks.get(name)

    def task_names(self, platform: Platform | None = None) -> set[str]:
        names = set(self.tasks)
        if platform is not None:
            names.update(self.target_tasks.get(platform, {}))
        return names


@dataclass(slots=True)
class Environment:
    name: str
    features: list[str] = field(default_factory=list)
    no_default_feature: bool = False

    @property
    def is_default(self) -> bool:
        return self.name == DEFAULT_ENVIRONMENT


@dataclass(slots=True)
class Workspace:
    name: str
    root: Path
    platforms: list[Platform] = field(default_factory=list)
    channels: list[str] = field(default_factory=list)
    features: dict[str, Feature] = field(default_factory=dict)
    environments: dict[str, Environment] = field(default_factory=dict)
    envs_dir: str = ENVS_DIR

    def __post_init__(self) -> None:
        self.root = Path(self.root)
        self.platforms = [Platform.parse(p) for p in self.platforms]
        if DEFAULT_FEATURE not in self.features:
            self.features[DEFAULT_FEATURE] = Feature(name=DEFAULT_FEATURE)
        if DEFAULT_ENVIRONMENT not in self.environments:
            self.environments[DEFAULT_ENVIRONMENT] = Environment(name=DEFAULT_ENVIRONMENT)
        for environment in self.environments.values():
            missing = [f for f in environment.features if f not in self.features]
            if missing:
                raise ValidationError(
                    f"Environment '{environment.name}' references unknown features.",
                    context={"environment": environment.name, "features": ", ".join(missing)},
                )

    @property
    def default_feature(self) -> Feature:
        return self.features[DEFAULT_FEATURE]

    def environment(self, name: str) -> Environment | None:
        return self.environments.get(name)

    def resolve_features(self, environment: Environment) -> list[Feature]:
        """Features of *environment* in priority order, highest first.

        Explicitly listed features come first in their declared order; the
        default feature is last unless the environment excludes it.
        """
        result = [self.features[name] for name in environment.features]
        if not environment.no_default_feature and DEFAULT_FEATURE not in environment.features:
            result.append(self.default_feature)
        return result

    def platforms_for(self, environment: Environment) -> list[Platform]:
        supported: list[Platform] | None = None
        for feature in self.resolve_features(environment):
            if not feature.platforms:
                continue
            if supported is None:
                supported = list(feature.platforms)
            else:
                supported = [p for p in supported if p in feature.platforms]
        if supported is None:
            return list(self.platforms)
        return supported

    def best_platform(self, environment: Environment) -> Platform:
        return best_platform(self.platforms_for(environment))

    def channels_for(self, environment: Environment) -> list[str]:
        result = list(dict.fromkeys(self.channels))
        for feature in reversed(self.resolve_features(environment)):
            for channel in feature.channels:
                if channel not in result:
                    result.append(channel)
        return result

    def conda_dependencies(self, environment: Environment) -> dict[str, str]:
        merged: dict[str, str] = {}
        for feature in reversed(self.resolve_features(environment)):
            merged.update(feature.conda_dependencies)
        return merged

    def pypi_dependencies(self, environment: Environment) -> dict[str, str]:
        merged: dict[str, str] = {}
        for feature in reversed(self.resolve_features(environment)):
            merged.update(feature.pypi_dependencies)
        return merged

    def activation_env(self, environment: Environment) -> dict[str, str]:
        merged: dict[str, str] = {}
        for feature in reversed(self.resolve_features(environment)):
            merged.update(feature.activation_env)
        return merged

    def task(self, environment: Environment, name: str, platform: Platform | None) -> Task | None:
        for feature in self.resolve_features(environment):
            task = feature.task(name, platform)
            if task is not None:
                return task
        return None

    def task_names(self, environment: Environment, platform: Platform | None) -> list[str]:
        names: set[str] = set()
        for feature in self.resolve_features(environment):
            names.update(feature.task_names(platform))
        return sorted(names)

    def env_dir(self, environment: str) -> Path:
        return self.root / self.envs_dir / environment


def _feature_for_edit(workspace: Workspace, feature: str | None) -> Feature:
    name = feature or DEFAULT_FEATURE
    target = workspace.features.get(name)
    if target is None:
        if feature is not None:
            target = Feature(name=name)
            workspace.features[name] = target
        else:
            target = workspace.default_feature
    return target


def add_task(
    workspace: Workspace,
    name: str,
    task: Task,
    *,
    feature: str | None = None,
    platform: Platform | None = None,
) -> Workspace:
    """``task add``: declare or replace *name* on a feature."""
    if not name.strip():
        raise ValidationError("Task name cannot be empty.")
    if isinstance(task, CustomTask):
        raise ValidationError("Custom commands cannot be stored as manifest tasks.")
    target = _feature_for_edit(workspace, feature)
    if platform is None:
        target.tasks[name] = task
    else:
        target.target_tasks.setdefault(platform, {})[name] = task
    return workspace


def alias_task(
    workspace: Workspace,
    name: str,
    depends_on: tuple[str, ...],
    *,
    platform: Platform | None = None,
    description: str | None = None,
) -> Workspace:
    """``task alias``: a task that only runs its dependencies."""
    if not depends_on:
        raise ValidationError(
            "An alias must depend on at least one task.", context={"task": name}
        )
    return add_task(
        workspace,
        name,
        AliasTask(depends_on=tuple(depends_on), description=description),
        platform=platform,
    )


def remove_task(
    workspace: Workspace,
    name: str,
    *,
    feature: str | None = None,
    platform: Platform | None = None,
) -> Workspace:
    """``task remove``; fails when the task is not declared at that location."""
    target = workspace.features.get(feature or DEFAULT_FEATURE)
    tasks = None
    if target is not None:
        tasks = target.tasks if platform is None else target.target_tasks.get(platform)
    if tasks is None or name not in tasks:
        raise ValidationError(
            f"Task '{name}' does not exist.",
            context={
                "task": name,
                "feature": feature or DEFAULT_FEATURE,
                "platform": str(platform) if platform else "",
            },
        )
    del tasks[name]
    return workspace


@dataclass(frozen=True, slots=True)
class RunEnvironment:
    """An (environment, platform) pair that tasks execute in."""

    environment: str
    platform: Platform

    def __str__(self) -> str:
        return f"{self.environment} ({self.platform})"


__all__ = [
    "DEFAULT_ENVIRONMENT",
    "DEFAULT_FEATURE",
    "AliasTask",
    "CustomTask",
    "Environment",
    "ExecuteTask",
    "Feature",
    "RunEnvironment",
    "Task",
    "Workspace",
    "add_task",
    "alias_task",
    "remove_task",
]
