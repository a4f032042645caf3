"""Compute the process environment tasks run with inside a prefix."""

from __future__ import annotations

import os
from collections.abc import Mapping
from string import Template

from lockstep.environment.materialize import Prefix
from lockstep.errors import UnknownEnvironmentError
from lockstep.models import Workspace

# Host variables kept when a task asks for a clean environment.
CLEAN_ENV_KEEP_UNIX = (
    "HOME",
    "USER",
    "LOGNAME",
    "SHELL",
    "TERM",
    "LANG",
    "LC_ALL",
    "TMPDIR",
    "DISPLAY",
    "XDG_RUNTIME_DIR",
)
CLEAN_ENV_KEEP_WINDOWS = (
    "SYSTEMROOT",
    "SYSTEMDRIVE",
    "WINDIR",
    "COMSPEC",
    "PATHEXT",
    "USERPROFILE",
    "USERNAME",
    "APPDATA",
    "LOCALAPPDATA",
    "HOMEDRIVE",
    "HOMEPATH",
    "TEMP",
    "TMP",
)


def get_task_env(
    workspace: Workspace,
    prefix: Prefix,
    *,
    clean_env: bool = False,
    base_env: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Activation variables layered over the host (or a minimal clean) environment.

    Feature ``activation_env`` values may reference other variables with
    ``$NAME`` / ``${NAME}``; unknown references are left as-is.
    """
    run_environment = prefix.run_environment
    environment = workspace.environment(run_environment.environment)
    if environment is None:
        raise UnknownEnvironmentError(
            run_environment.environment, available=tuple(workspace.environments)
        )
    windows = run_environment.platform.is_windows
    host = dict(os.environ if base_env is None else base_env)
    path_key = _path_key(host, windows)
    if clean_env:
        keep = CLEAN_ENV_KEEP_WINDOWS if windows else CLEAN_ENV_KEEP_UNIX
        env = {key: value for key, value in host.items() if _upper(key, windows) in keep}
        tail = _default_path(host, windows)
    else:
        env = {key: value for key, value in host.items() if key != path_key}
        tail = host.get(path_key, "")

    entries = [str(path) for path in prefix.path_entries()]
    if tail:
        entries.append(tail)

    env.update(
        {
            "CONDA_PREFIX": str(prefix.root),
            "CONDA_DEFAULT_ENV": f"{workspace.name}:{environment.name}",
            "LOCKSTEP_PROJECT_NAME": workspace.name,
            "LOCKSTEP_PROJECT_ROOT": str(workspace.root),
            "LOCKSTEP_ENVIRONMENT_NAME": environment.name,
            "LOCKSTEP_ENVIRONMENT_PLATFORMS": ",".join(
                str(p) for p in workspace.platforms_for(environment)
            ),
            path_key: os.pathsep.join(entries),
        }
    )
    for key, value in workspace.activation_env(environment).items():
        env[key] = Template(value).safe_substitute(env)
    return env


def _path_key(env: Mapping[str, str], windows: bool) -> str:
    if windows:
        for key in env:
            if key.upper() == "PATH":
                return key
    return "PATH"


def _upper(key: str, windows: bool) -> str:
    return key.upper() if windows else key


def _default_path(env: Mapping[str, str], windows: bool) -> str:
    if windows:
        root = next((v for k, v in env.items() if k.upper() == "SYSTEMROOT"), r"C:\Windows")
        return os.pathsep.join([rf"{root}\system32", root, rf"{root}\System32\Wbem"])
    return os.pathsep.join(["/usr/local/bin", "/usr/bin", "/bin", "/usr/sbin", "/sbin"])


__all__ = ["CLEAN_ENV_KEEP_UNIX", "CLEAN_ENV_KEEP_WINDOWS", "get_task_env"]
