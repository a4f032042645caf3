"""Immutable configuration values for lock, install and run operations.

Each command is described by a frozen dataclass that validates itself once in
``__post_init__``; the functions in :mod:`lockstep.commands` take a fully
validated value and execute it.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import StrEnum

from lockstep.errors import ValidationError


class LockFileUsage(StrEnum):
    """How an operation may treat the lock file on disk."""

    UPDATE = "update"
    LOCKED = "locked"
    FROZEN = "frozen"

    @classmethod
    def from_flags(cls, *, frozen: bool = False, locked: bool = False) -> LockFileUsage:
        if frozen and locked:
            raise ValidationError(
                "`--frozen` and `--locked` cannot be combined.",
                hint="Use `--frozen` to skip freshness checks or `--locked` to require them.",
            )
        if frozen:
            return cls.FROZEN
        if locked:
            return cls.LOCKED
        return cls.UPDATE

    @property
    def allows_update(self) -> bool:
        return self is LockFileUsage.UPDATE


class UpdateMode(StrEnum):
    """How much to trust an existing prefix."""

    REVALIDATE = "revalidate"
    FAST = "fast"


@dataclass(frozen=True, slots=True)
class ReinstallPackages:
    """Packages to reinstall even when already present in a prefix."""

    all: bool = False
    names: frozenset[str] = frozenset()

    @classmethod
    def of(cls, names: Iterable[str]) -> ReinstallPackages:
        return cls(names=frozenset(name.lower() for name in names))

    def includes(self, name: str) -> bool:
        return self.all or name.lower() in self.names

    def __bool__(self) -> bool:
        return self.all or bool(self.names)


@dataclass(frozen=True, slots=True)
class ProgressConfig:
    visible: bool = True
    prefix: str = ""


HIDDEN_PROGRESS = ProgressConfig(visible=False)


@dataclass(frozen=True, slots=True)
class RunConfig:
    """``run <task> [-- args...]``."""

    task: tuple[str, ...]
    environment: str | None = None
    platform: str | None = None
    lock_file_usage: LockFileUsage = LockFileUsage.UPDATE
    clean_env: bool = False
    update_mode: UpdateMode = UpdateMode.REVALIDATE
    progress: ProgressConfig = field(default_factory=ProgressConfig)

    def __post_init__(self) -> None:
        if not self.task or not self.task[0].strip():
            raise ValidationError("`run` requires a task name or command.")
        if self.environment is not None and not self.environment.strip():
            raise ValidationError("Environment name cannot be empty.")


@dataclass(frozen=True, slots=True)
class InstallConfig:
    """``install``; every environment unless ``environment`` names one."""

    environment: str | None = None
    all: bool = False
    lock_file_usage: LockFileUsage = LockFileUsage.UPDATE
    update_mode: UpdateMode = UpdateMode.REVALIDATE
    progress: ProgressConfig = field(default_factory=ProgressConfig)

    def __post_init__(self) -> None:
        if self.all and self.environment is not None:
            raise ValidationError(
                "`--all` cannot be combined with `--environment`.",
                context={"environment": self.environment},
            )


@dataclass(frozen=True, slots=True)
class UpdateConfig:
    """``update``; ``packages`` limits which names may change."""

    packages: tuple[str, ...] = ()
    dry_run: bool = False
    no_install: bool = False
    progress: ProgressConfig = field(default_factory=ProgressConfig)


@dataclass(frozen=True, slots=True)
class LockConfig:
    """``lock``; ``check`` reports staleness without writing."""

    check: bool = False


__all__ = [
    "HIDDEN_PROGRESS",
    "InstallConfig",
    "LockConfig",
    "LockFileUsage",
    "ProgressConfig",
    "ReinstallPackages",
    "RunConfig",
    "UpdateConfig",
    "UpdateMode",
]
