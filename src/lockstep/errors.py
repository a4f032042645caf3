"""Typed error model with stable, machine-readable error codes."""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from lockstep.tasks.execute import RunOutput

STRUCTURAL_EXIT_CODE = 1


class ErrorCode(StrEnum):
    """Stable error identifiers used across API surfaces."""

    VALIDATION = "E_VALIDATION"
    INVALID_SPEC = "E_INVALID_SPEC"
    LOCKFILE = "E_LOCKFILE"
    TASK_GRAPH = "E_TASK_GRAPH"
    TASK_EXECUTION = "E_TASK_EXECUTION"
    NON_ZERO_EXIT = "E_NON_ZERO_EXIT"
    INSTALLATION = "E_INSTALLATION"


class LockstepError(Exception):
    """Base error class that carries code, optional hint, and context."""

    code: str
    hint: str | None
    context: Mapping[str, str]
    output: RunOutput | None

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code.value
        self.hint = hint
        self.context = dict(context or {})
        self.output = None

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.hint:
            parts.append(f"Hint: {self.hint}")
        if self.context:
            for k, v in self.context.items():
                if v:
                    parts.append(f"  {k}: {v}")
        return "\n".join(parts)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "code": self.code,
            "message": str(self),
            "context": dict(self.context),
        }
        if self.hint is not None:
            payload["hint"] = self.hint
        return payload


class ValidationError(LockstepError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.VALIDATION, hint=hint, context=context)


class InvalidSpecError(LockstepError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.INVALID_SPEC, hint=hint, context=context)


class LockfileError(LockstepError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.LOCKFILE, hint=hint, context=context)


class TaskGraphError(LockstepError):
    """Raised while building a task graph, before any task runs."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.TASK_GRAPH, hint=hint, context=context)


class UnknownTaskError(TaskGraphError):
    def __init__(self, task: str, *, environment: str | None = None) -> None:
        super().__init__(
            f"Unknown task '{task}'.",
            hint="Check the task name and the `depends-on` entries that reference it.",
            context={"task": task, "environment": environment or ""},
        )
        self.task = task


class UnknownEnvironmentError(TaskGraphError):
    def __init__(self, environment: str, *, available: tuple[str, ...] = ()) -> None:
        super().__init__(
            f"Unknown environment '{environment}'.",
            hint="Pick one of the environments declared by the workspace.",
            context={"environment": environment, "available": ", ".join(available)},
        )
        self.environment = environment


class AmbiguousTaskError(TaskGraphError):
    def __init__(self, task: str, *, environments: tuple[str, ...]) -> None:
        super().__init__(
            f"Task '{task}' is available in multiple environments.",
            hint="Select one explicitly with `--environment`.",
            context={"task": task, "environments": ", ".join(environments)},
        )
        self.task = task
        self.environments = environments


class CycleError(TaskGraphError):
    def __init__(self, cycle: tuple[str, ...]) -> None:
        super().__init__(
            "Task dependency cycle detected.",
            hint="Remove one of the `depends-on` edges forming the cycle.",
            context={"cycle": " -> ".join(cycle)},
        )
        self.cycle = cycle


class TaskExecutionError(LockstepError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.TASK_EXECUTION, hint=hint, context=context)


class NonZeroExitCodeError(LockstepError):
    """A task ran but reported failure through its exit status."""

    def __init__(
        self,
        exit_code: int,
        *,
        task: str = "",
        output: RunOutput | None = None,
    ) -> None:
        stderr = output.stderr if output is not None else ""
        super().__init__(
            f"the task executed with a non-zero exit code {exit_code}",
            code=ErrorCode.NON_ZERO_EXIT,
            context={"task": task, "exit_code": str(exit_code), "stderr": stderr[-2000:]},
        )
        self.exit_code = exit_code
        self.output = output


class InstallationError(LockstepError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.INSTALLATION, hint=hint, context=context)


def exit_code_for(error: BaseException) -> int:
    """Map a failure to the process exit status reported to the caller."""
    if isinstance(error, NonZeroExitCodeError):
        return error.exit_code
    return STRUCTURAL_EXIT_CODE


__all__ = [
    "STRUCTURAL_EXIT_CODE",
    "AmbiguousTaskError",
    "CycleError",
    "ErrorCode",
    "InstallationError",
    "InvalidSpecError",
    "LockfileError",
    "LockstepError",
    "NonZeroExitCodeError",
    "TaskExecutionError",
    "TaskGraphError",
    "UnknownEnvironmentError",
    "UnknownTaskError",
    "ValidationError",
    "exit_code_for",
]
