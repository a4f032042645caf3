"""Bring an environment prefix in line with its locked platform slot.

The prefix keeps a small state file (``conda-meta/lockstep``) recording the
environment name, platform and slot digest it was last materialized from.
``UpdateMode.FAST`` trusts a prefix whose state file matches the lock file;
``UpdateMode.REVALIDATE`` always compares installed records against the slot.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path

from packaging.utils import canonicalize_name

from lockstep.config import ProgressConfig, ReinstallPackages, UpdateMode
from lockstep.environment.installer import (
    STATE_FILE,
    InstalledRecord,
    MetadataInstaller,
    PackageInstaller,
)
from lockstep.errors import InstallationError
from lockstep.lockfile.model import CondaPackage, LockedPackage, LockFile
from lockstep.models import RunEnvironment, Workspace
from lockstep.observability import Progress, StructuredLogger

_MAJOR_MINOR = re.compile(r"^(\d+)\.(\d+)")


@dataclass(frozen=True, slots=True)
class Prefix:
    """An environment directory on disk."""

    root: Path
    run_environment: RunEnvironment
    python_version: str | None = None

    @property
    def conda_meta(self) -> Path:
        return self.root / "conda-meta"

    @property
    def state_file(self) -> Path:
        return self.conda_meta / STATE_FILE

    @property
    def site_packages(self) -> Path:
        if self.run_environment.platform.is_windows:
            return self.root / "Lib" / "site-packages"
        if self.python_version is None:
            return self.root / "lib" / "site-packages"
        return self.root / "lib" / f"python{self.python_version}" / "site-packages"

    def all_site_packages(self) -> list[Path]:
        """Every site-packages directory present, whatever Python it was made for."""
        found = [self.root / "Lib" / "site-packages", self.root / "lib" / "site-packages"]
        found.extend(sorted((self.root / "lib").glob("python*/site-packages")))
        unique: dict[Path, Path] = {}
        for path in found:
            if path.is_dir():
                unique.setdefault(path.resolve(), path)
        return list(unique.values())

    def path_entries(self) -> list[Path]:
        """Directories prepended to ``PATH`` when the prefix is activated."""
        if self.run_environment.platform.is_windows:
            return [
                self.root,
                self.root / "Library" / "mingw-w64" / "bin",
                self.root / "Library" / "usr" / "bin",
                self.root / "Library" / "bin",
                self.root / "Scripts",
                self.root / "bin",
            ]
        return [self.root / "bin"]


@dataclass(frozen=True, slots=True)
class MaterializeReport:
    run_environment: RunEnvironment
    installed: tuple[str, ...] = ()
    removed: tuple[str, ...] = ()
    skipped: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.installed or self.removed)


@dataclass(slots=True)
class EnvironmentMaterializer:
    """Materializes prefixes for the run environments of one lock file.

    Prefixes are cached per :class:`RunEnvironment`, so every environment is
    checked at most once for the lifetime of the materializer.
    """

    workspace: Workspace
    lock_file: LockFile
    installer: PackageInstaller = field(default_factory=MetadataInstaller)
    logger: StructuredLogger | None = None
    progress: ProgressConfig = field(default_factory=ProgressConfig)
    reports: dict[RunEnvironment, MaterializeReport] = field(default_factory=dict, init=False)
    _prefixes: dict[RunEnvironment, Prefix] = field(default_factory=dict, init=False, repr=False)

    def prefix(
        self,
        run_environment: RunEnvironment,
        *,
        mode: UpdateMode = UpdateMode.REVALIDATE,
        reinstall: ReinstallPackages | None = None,
    ) -> Prefix:
        cached = self._prefixes.get(run_environment)
        if cached is not None:
            return cached
        prefix = self.materialize(run_environment, mode=mode, reinstall=reinstall)
        self._prefixes[run_environment] = prefix
        return prefix

    def materialize(
        self,
        run_environment: RunEnvironment,
        *,
        mode: UpdateMode = UpdateMode.REVALIDATE,
        reinstall: ReinstallPackages | None = None,
    ) -> Prefix:
        """Install, remove and reinstall until the prefix matches the slot.

        Running this twice against an unchanged lock file changes nothing the
        second time.
        """
        reinstall = reinstall or ReinstallPackages()
        name = run_environment.environment
        platform = run_environment.platform
        locked = self.lock_file.environment(name)
        packages = locked.packages_for(platform) if locked is not None else None
        if locked is None or packages is None:
            raise InstallationError(
                f"Environment '{name}' is not locked for {platform}.",
                hint="Update the lockfile before installing this environment.",
                context={"environment": name, "platform": str(platform)},
            )

        prefix = Prefix(
            root=self.workspace.env_dir(name),
            run_environment=run_environment,
            python_version=_python_version(packages),
        )
        digest = locked.slot_digest(platform)
        state = _state_payload(run_environment, digest)

        if mode is UpdateMode.FAST and not reinstall and _read_state(prefix) == state:
            self._record(MaterializeReport(run_environment, skipped=True))
            return prefix

        try:
            prefix.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise InstallationError(
                f"Cannot create prefix for environment '{name}'.",
                context={"prefix": str(prefix.root), "error": str(exc)},
            ) from exc

        wanted = {_package_key(package): package for package in packages}
        removed: list[str] = []
        present: set[tuple[str, str]] = set()
        for record in self.installer.installed(prefix):
            key = _key(record.kind, record.name)
            package = wanted.get(key)
            if (
                package is None
                or key in present
                or not record.matches(package)
                or not _in_place(prefix, record)
                or reinstall.includes(record.name)
            ):
                self.installer.remove(prefix, record)
                removed.append(record.name)
            else:
                present.add(key)

        missing = [package for key, package in wanted.items() if key not in present]
        if missing:
            Progress(self.progress).message(
                f"Installing {len(missing)} package(s) into {run_environment}"
            )
        installed = [self.installer.install(prefix, package).name for package in missing]

        if _read_state(prefix) != state:
            _write_state(prefix, state)
        self._record(
            MaterializeReport(
                run_environment,
                installed=tuple(installed),
                removed=tuple(removed),
            )
        )
        return prefix

    def _record(self, report: MaterializeReport) -> None:
        self.reports[report.run_environment] = report
        if self.logger is None:
            return
        if report.skipped:
            message = "Prefix is up to date; skipped validation."
        elif report.changed:
            message = f"Installed {len(report.installed)}, removed {len(report.removed)}."
        else:
            message = "Prefix matches the lockfile."
        self.logger.log(
            operation="materialize",
            message=message,
            environment=report.run_environment.environment,
            platform=str(report.run_environment.platform),
            extra={"installed": list(report.installed), "removed": list(report.removed)},
        )


def _in_place(prefix: Prefix, record: InstalledRecord) -> bool:
    if record.kind != "pypi":
        return True
    return record.path.parent.resolve() == prefix.site_packages.resolve()


def _package_key(package: LockedPackage) -> tuple[str, str]:
    return _key("conda" if isinstance(package, CondaPackage) else "pypi", package.name)


def _key(kind: str, name: str) -> tuple[str, str]:
    # conda names are exact; `foo_bar` and `foo-bar` are distinct packages.
    if kind == "pypi":
        return (kind, canonicalize_name(name))
    return (kind, name.lower())


def _python_version(packages: tuple[LockedPackage, ...]) -> str | None:
    for package in packages:
        if isinstance(package, CondaPackage) and package.name == "python":
            match = _MAJOR_MINOR.match(package.version)
            if match is not None:
                return f"{match.group(1)}.{match.group(2)}"
    return None


def _state_payload(run_environment: RunEnvironment, digest: str) -> dict[str, str]:
    return {
        "environment_name": run_environment.environment,
        "platform": str(run_environment.platform),
        "slot_digest": digest,
    }


def _read_state(prefix: Prefix) -> dict[str, str] | None:
    if not prefix.state_file.exists():
        return None
    try:
        payload = json.loads(prefix.state_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        return None
    return payload if isinstance(payload, dict) else None


def _write_state(prefix: Prefix, state: dict[str, str]) -> None:
    prefix.conda_meta.mkdir(parents=True, exist_ok=True)
    prefix.state_file.write_text(
        json.dumps(state, indent=2, sort_keys=True) + "\n", encoding="utf-8"
    )


__all__ = ["EnvironmentMaterializer", "MaterializeReport", "Prefix"]
