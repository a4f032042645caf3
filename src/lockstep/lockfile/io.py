"""Lockfile parser and serializer."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from lockstep.errors import LockfileError
from lockstep.lockfile.model import (
    CondaPackage,
    Location,
    LockedEnvironment,
    LockedPackage,
    LockFile,
    PypiPackage,
    package_payload,
)
from lockstep.specs import is_valid_version

LOCKFILE_NAME = "lockstep.lock"


def serialize_lockfile(lockfile: LockFile) -> str:
    payload = {
        "version": lockfile.version,
        "manifest_digest": lockfile.manifest_digest,
        "environments": {
            name: {
                "channels": list(environment.channels),
                "packages": {
                    str(platform): [package_payload(package) for package in packages]
                    for platform, packages in environment.packages.items()
                },
            }
            for name, environment in lockfile.environments.items()
        },
    }
    return json.dumps(payload, indent=2, sort_keys=True) + "\n"


def parse_lockfile(raw: str) -> LockFile:
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise LockfileError("Invalid lockfile JSON.", hint=str(exc)) from exc

    if not isinstance(payload, dict):
        raise LockfileError("Invalid lockfile payload type.")

    version = _required_int(payload, "version")
    manifest_digest = payload.get("manifest_digest", "")
    if not isinstance(manifest_digest, str):
        raise LockfileError("Invalid lockfile `manifest_digest` value.")
    environments_raw = _required_dict(payload, "environments")
    environments = {
        name: _parse_environment(name, item) for name, item in environments_raw.items()
    }
    return LockFile(environments=environments, manifest_digest=manifest_digest, version=version)


def read_lockfile(path: str | Path) -> LockFile:
    lock_path = Path(path)
    try:
        raw = lock_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise LockfileError(
            "Lockfile does not exist.",
            hint="Run `lock` or `install` without `--frozen` to create it.",
            context={"path": str(lock_path)},
        ) from exc
    return parse_lockfile(raw)


def write_lockfile(lockfile: LockFile, path: str | Path) -> Path:
    lock_path = Path(path)
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    lock_path.write_text(serialize_lockfile(lockfile), encoding="utf-8")
    return lock_path


def _parse_environment(name: str, item: Any) -> LockedEnvironment:
    if not isinstance(item, dict):
        raise LockfileError("Invalid environment entry in lockfile.", context={"environment": name})
    channels = item.get("channels", [])
    if not isinstance(channels, list) or not all(isinstance(c, str) for c in channels):
        raise LockfileError("Invalid lockfile `channels` value.", context={"environment": name})
    packages_raw = _required_dict(item, "packages")
    packages: dict[str, tuple[LockedPackage, ...]] = {}
    for platform, entries in packages_raw.items():
        if not isinstance(entries, list):
            raise LockfileError(
                "Invalid lockfile package list.",
                context={"environment": name, "platform": str(platform)},
            )
        packages[platform] = tuple(_parse_package(entry) for entry in entries)
    return LockedEnvironment(channels=tuple(channels), packages=packages)  # type: ignore[arg-type]


def _parse_package(item: Any) -> LockedPackage:
    if not isinstance(item, dict):
        raise LockfileError("Invalid package entry in lockfile.")
    kind = _required_str(item, "kind")
    location = Location(_required_str(item, "location"))
    if kind == "conda":
        sha256 = item.get("sha256")
        version = _required_str(item, "version")
        if not is_valid_version(version):
            raise LockfileError(
                f"Invalid conda version `{version}` in lockfile.",
                context={"package": str(item.get("name", "")), "version": version},
            )
        return CondaPackage(
            name=_required_str(item, "name"),
            version=version,
            build=_optional_str(item, "build"),
            channel=_optional_str(item, "channel"),
            location=location,
            subdir=_optional_str(item, "subdir"),
            depends=_str_tuple(item, "depends"),
            sha256=sha256 if isinstance(sha256, str) else None,
        )
    if kind == "pypi":
        return PypiPackage(
            name=_required_str(item, "name"),
            version=_required_str(item, "version"),
            location=location,
            extras=frozenset(_str_tuple(item, "extras")),
            requires_dist=_str_tuple(item, "requires_dist"),
            editable=bool(item.get("editable", False)),
        )
    raise LockfileError(f"Unknown package kind `{kind}` in lockfile.")


def _required_str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value:
        raise LockfileError(f"Invalid lockfile `{key}` value.")
    return value


def _optional_str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key, "")
    if not isinstance(value, str):
        raise LockfileError(f"Invalid lockfile `{key}` value.")
    return value


def _required_int(payload: dict[str, Any], key: str) -> int:
    value = payload.get(key)
    if not isinstance(value, int):
        raise LockfileError(f"Invalid lockfile `{key}` value.")
    return value


def _required_dict(payload: dict[str, Any], key: str) -> dict[str, Any]:
    value = payload.get(key)
    if not isinstance(value, dict):
        raise LockfileError(f"Invalid lockfile `{key}` value.")
    return value


def _str_tuple(payload: dict[str, Any], key: str) -> tuple[str, ...]:
    value = payload.get(key, [])
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise LockfileError(f"Invalid lockfile `{key}` value.")
    return tuple(value)
