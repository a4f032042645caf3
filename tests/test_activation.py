import os
from pathlib import Path

import pytest

from lockstep.environment import Prefix, get_task_env
from lockstep.errors import UnknownEnvironmentError
from lockstep.models import Environment, Feature, RunEnvironment, Workspace
from lockstep.platform import Platform

HOST_ENV = {
    "HOME": "/home/dev",
    "PATH": "/usr/bin:/bin",
    "SECRET_TOKEN": "hunter2",
    "LANG": "C.UTF-8",
}


def test_activation_prepends_prefix_to_path(tmp_path: Path) -> None:
    workspace = _workspace(tmp_path)
    prefix = _prefix(workspace, "default")

    env = get_task_env(workspace, prefix, base_env=HOST_ENV)

    assert env["PATH"].split(os.pathsep) == [str(prefix.root / "bin"), "/usr/bin:/bin"]
    assert env["SECRET_TOKEN"] == "hunter2"
    assert env["CONDA_PREFIX"] == str(prefix.root)
    assert env["CONDA_DEFAULT_ENV"] == "demo:default"


def test_activation_exports_workspace_variables(tmp_path: Path) -> None:
    workspace = _workspace(tmp_path)

    env = get_task_env(workspace, _prefix(workspace, "test"), base_env=HOST_ENV)

    assert env["LOCKSTEP_PROJECT_NAME"] == "demo"
    assert env["LOCKSTEP_PROJECT_ROOT"] == str(tmp_path)
    assert env["LOCKSTEP_ENVIRONMENT_NAME"] == "test"
    assert env["LOCKSTEP_ENVIRONMENT_PLATFORMS"] == "linux-64,osx-arm64"


def test_clean_env_keeps_only_allowlisted_variables(tmp_path: Path) -> None:
    workspace = _workspace(tmp_path)
    prefix = _prefix(workspace, "default")

    env = get_task_env(workspace, prefix, clean_env=True, base_env=HOST_ENV)

    assert "SECRET_TOKEN" not in env
    assert env["HOME"] == "/home/dev"
    assert env["LANG"] == "C.UTF-8"
    path = env["PATH"].split(os.pathsep)
    assert path[0] == str(prefix.root / "bin")
    assert "/usr/bin" in path


def test_activation_env_is_layered_and_substituted(tmp_path: Path) -> None:
    workspace = _workspace(tmp_path)

    default_env = get_task_env(workspace, _prefix(workspace, "default"), base_env=HOST_ENV)
    test_env = get_task_env(workspace, _prefix(workspace, "test"), base_env=HOST_ENV)

    assert default_env["MODE"] == "dev"
    assert test_env["MODE"] == "test"
    assert test_env["DATA_DIR"] == f"{tmp_path}/data"
    assert test_env["UNSET"] == "$NOT_DEFINED"


def test_activation_does_not_mutate_base_env(tmp_path: Path) -> None:
    workspace = _workspace(tmp_path)
    base = dict(HOST_ENV)

    get_task_env(workspace, _prefix(workspace, "default"), base_env=base)

    assert base == HOST_ENV


def test_windows_prefix_uses_library_directories(tmp_path: Path) -> None:
    workspace = _workspace(tmp_path)
    workspace.platforms.append(Platform.WIN_64)
    prefix = Prefix(tmp_path / "env", RunEnvironment("default", Platform.WIN_64))

    env = get_task_env(
        workspace, prefix, base_env={"Path": r"C:\Windows", "SystemRoot": r"C:\Windows"}
    )

    assert "PATH" not in env
    entries = env["Path"].split(os.pathsep)
    assert str(prefix.root / "Library" / "bin") in entries
    assert str(prefix.root / "Scripts") in entries
    assert entries[0] == str(prefix.root)


def test_unknown_environment_is_rejected(tmp_path: Path) -> None:
    workspace = _workspace(tmp_path)
    prefix = Prefix(tmp_path / "env", RunEnvironment("gpu", Platform.LINUX_64))

    with pytest.raises(UnknownEnvironmentError):
        get_task_env(workspace, prefix, base_env=HOST_ENV)


def _prefix(workspace: Workspace, environment: str) -> Prefix:
    return Prefix(workspace.env_dir(environment), RunEnvironment(environment, Platform.LINUX_64))


def _workspace(root: Path) -> Workspace:
    return Workspace(
        name="demo",
        root=root,
        platforms=[Platform.LINUX_64, Platform.OSX_ARM64],
        features={
            "default": Feature(name="default", activation_env={"MODE": "dev"}),
            "test": Feature(
                name="test",
                activation_env={
                    "MODE": "test",
                    "DATA_DIR": "${LOCKSTEP_PROJECT_ROOT}/data",
                    "UNSET": "$NOT_DEFINED",
                },
            ),
        },
        environments={"test": Environment(name="test", features=["test"])},
    )
