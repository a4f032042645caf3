"""Protocol for package installers and a metadata-only implementation.

:class:`MetadataInstaller` records every locked package in the prefix the way
conda and pip tooling do (``conda-meta/*.json`` records and ``*.dist-info``
directories) without fetching or unpacking archives. It is suitable for:

- tests that verify materialization and revalidation,
- dry environments where only activation and bookkeeping matter.
"""

from __future__ import annotations

import json
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Literal, Protocol

from lockstep.errors import InstallationError
from lockstep.lockfile.model import CondaPackage, LockedPackage, PypiPackage

if TYPE_CHECKING:
    from lockstep.environment.materialize import Prefix

INSTALLER_NAME = "lockstep"
STATE_FILE = "lockstep"

PackageKind = Literal["conda", "pypi"]


@dataclass(frozen=True, slots=True)
class InstalledRecord:
    kind: PackageKind
    name: str
    version: str
    build: str
    location: str
    path: Path

    def matches(self, package: LockedPackage) -> bool:
        if isinstance(package, CondaPackage):
            return (
                self.kind == "conda"
                and self.version == package.version
                and self.build == package.build
                and self.location == package.location.value
            )
        return (
            self.kind == "pypi"
            and self.version == package.version
            and self.location == package.location.value
        )


class PackageInstaller(Protocol):
    name: str

    def installed(self, prefix: Prefix) -> list[InstalledRecord]:
        """Return the packages currently recorded in *prefix*."""

    def install(self, prefix: Prefix, package: LockedPackage) -> InstalledRecord:
        """Install one locked package into *prefix*."""

    def remove(self, prefix: Prefix, record: InstalledRecord) -> None:
        """Remove one installed package from *prefix*."""


@dataclass(slots=True)
class MetadataInstaller:
    """Installer that writes package records only."""

    name: str = "metadata"

    def installed(self, prefix: Prefix) -> list[InstalledRecord]:
        records: list[InstalledRecord] = []
        if prefix.conda_meta.is_dir():
            for path in sorted(prefix.conda_meta.glob("*.json")):
                payload = _read_json(path)
                records.append(
                    InstalledRecord(
                        kind="conda",
                        name=str(payload.get("name", "")),
                        version=str(payload.get("version", "")),
                        build=str(payload.get("build", "")),
                        location=str(payload.get("url", "")),
                        path=path,
                    )
                )
        for site_packages in prefix.all_site_packages():
            for path in sorted(site_packages.glob("*.dist-info")):
                installer = path / "INSTALLER"
                if not installer.exists():
                    continue
                if installer.read_text(encoding="utf-8").strip() != INSTALLER_NAME:
                    continue
                metadata = _read_metadata(path / "METADATA")
                direct_url = _read_json(path / "direct_url.json")
                records.append(
                    InstalledRecord(
                        kind="pypi",
                        name=metadata.get("Name", ""),
                        version=metadata.get("Version", ""),
                        build="",
                        location=str(direct_url.get("url", "")),
                        path=path,
                    )
                )
        return records

    def install(self, prefix: Prefix, package: LockedPackage) -> InstalledRecord:
        try:
            if isinstance(package, CondaPackage):
                return self._install_conda(prefix, package)
            return self._install_pypi(prefix, package)
        except OSError as exc:
            raise InstallationError(
                f"Failed to install '{package.name}'.",
                hint="Check that the prefix directory is writable.",
                context={
                    "installer": self.name,
                    "prefix": str(prefix.root),
                    "package": package.name,
                    "error": str(exc),
                },
            ) from exc

    def remove(self, prefix: Prefix, record: InstalledRecord) -> None:
        try:
            if record.path.is_dir():
                shutil.rmtree(record.path)
            elif record.path.exists():
                record.path.unlink()
        except OSError as exc:
            raise InstallationError(
                f"Failed to remove '{record.name}'.",
                context={"installer": self.name, "path": str(record.path), "error": str(exc)},
            ) from exc

    def _install_conda(self, prefix: Prefix, package: CondaPackage) -> InstalledRecord:
        prefix.conda_meta.mkdir(parents=True, exist_ok=True)
        path = prefix.conda_meta / f"{package.filename}.json"
        record = {
            "name": package.name,
            "version": package.version,
            "build": package.build,
            "channel": package.channel,
            "subdir": package.subdir,
            "depends": list(package.depends),
            "url": package.location.value,
            "sha256": package.sha256,
        }
        path.write_text(json.dumps(record, indent=2, sort_keys=True) + "\n", encoding="utf-8")
        return InstalledRecord(
            kind="conda",
            name=package.name,
            version=package.version,
            build=package.build,
            location=package.location.value,
            path=path,
        )

    def _install_pypi(self, prefix: Prefix, package: PypiPackage) -> InstalledRecord:
        dist_name = package.name.replace("-", "_")
        path = prefix.site_packages / f"{dist_name}-{package.version}.dist-info"
        path.mkdir(parents=True, exist_ok=True)
        (path / "METADATA").write_text(
            f"Metadata-Version: 2.1\nName: {package.name}\nVersion: {package.version}\n",
            encoding="utf-8",
        )
        (path / "INSTALLER").write_text(f"{INSTALLER_NAME}\n", encoding="utf-8")
        direct_url: dict[str, object] = {"url": package.location.value}
        if package.editable:
            direct_url["dir_info"] = {"editable": True}
        (path / "direct_url.json").write_text(
            json.dumps(direct_url, sort_keys=True) + "\n", encoding="utf-8"
        )
        return InstalledRecord(
            kind="pypi",
            name=package.name,
            version=package.version,
            build="",
            location=package.location.value,
            path=path,
        )


def _read_json(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        parsed = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _read_metadata(path: Path) -> dict[str, str]:
    fields: dict[str, str] = {}
    if not path.exists():
        return fields
    for line in path.read_text(encoding="utf-8").splitlines():
        key, sep, value = line.partition(":")
        if sep and key not in fields:
            fields[key.strip()] = value.strip()
    return fields


__all__ = [
    "INSTALLER_NAME",
    "STATE_FILE",
    "InstalledRecord",
    "MetadataInstaller",
    "PackageInstaller",
]
