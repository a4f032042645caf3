"""Public package entrypoint for the lockstep environment and task engine."""

from .commands import (
    LockResult,
    install,
    lock,
    run,
    run_with_exit_code,
    task_add,
    task_alias,
    task_remove,
    update,
)
from .config import (
    InstallConfig,
    LockConfig,
    LockFileUsage,
    ProgressConfig,
    ReinstallPackages,
    RunConfig,
    UpdateConfig,
    UpdateMode,
)
from .environment import EnvironmentMaterializer, MetadataInstaller, Prefix
from .errors import (
    STRUCTURAL_EXIT_CODE,
    AmbiguousTaskError,
    CycleError,
    InstallationError,
    InvalidSpecError,
    LockfileError,
    LockstepError,
    NonZeroExitCodeError,
    TaskExecutionError,
    TaskGraphError,
    UnknownEnvironmentError,
    UnknownTaskError,
    ValidationError,
)
from .lockfile import CondaPackage, Location, LockedEnvironment, LockFile, PypiPackage
from .models import (
    AliasTask,
    CustomTask,
    Environment,
    ExecuteTask,
    Feature,
    RunEnvironment,
    Workspace,
)
from .observability import StructuredLogger
from .platform import Platform
from .specs import MatchSpec, Requirement
from .tasks import RunOutput, TaskGraph

__all__ = [
    "STRUCTURAL_EXIT_CODE",
    "AliasTask",
    "AmbiguousTaskError",
    "CondaPackage",
    "CustomTask",
    "CycleError",
    "Environment",
    "EnvironmentMaterializer",
    "ExecuteTask",
    "Feature",
    "InstallConfig",
    "InstallationError",
    "InvalidSpecError",
    "Location",
    "LockConfig",
    "LockFile",
    "LockFileUsage",
    "LockResult",
    "LockedEnvironment",
    "LockfileError",
    "LockstepError",
    "MatchSpec",
    "MetadataInstaller",
    "NonZeroExitCodeError",
    "Platform",
    "Prefix",
    "ProgressConfig",
    "PypiPackage",
    "ReinstallPackages",
    "Requirement",
    "RunConfig",
    "RunEnvironment",
    "RunOutput",
    "StructuredLogger",
    "TaskExecutionError",
    "TaskGraph",
    "TaskGraphError",
    "UnknownEnvironmentError",
    "UnknownTaskError",
    "UpdateConfig",
    "UpdateMode",
    "ValidationError",
    "Workspace",
    "install",
    "lock",
    "run",
    "run_with_exit_code",
    "task_add",
    "task_alias",
    "task_remove",
    "update",
]
