"""Lock file typed model and point queries.

A lock file maps environment names to locked environments; each environment
maps platforms to the ordered packages the solver picked. Queries degrade to
``False``/``None`` when an environment or platform is not present: they answer
"is this known to be locked there", never raise for a missing slot.
"""

from __future__ import annotations

import hashlib
import warnings
from collections.abc import Iterator
from dataclasses import dataclass, field, replace
from pathlib import Path, PureWindowsPath
from typing import Any

import cbor2
from packaging.utils import canonicalize_name
from packaging.version import InvalidVersion
from rattler import PackageRecord
from rattler.exceptions import InvalidPackageNameError, InvalidVersionError

from lockstep.errors import LockfileError
from lockstep.platform import Platform
from lockstep.specs import MatchSpec, Requirement, channel_name, spec_channel, to_match_spec
from lockstep.specs.requirement import normalized_extras, to_requirement

LOCKFILE_VERSION = 1


class LockfileQueryWarning(UserWarning):
    """Emitted when a query names an environment the lock file does not have."""


@dataclass(frozen=True, slots=True)
class Location:
    """Where a locked package comes from: a URL or a local filesystem path."""

    value: str

    @classmethod
    def parse(cls, value: str | Path) -> Location:
        return cls(str(value))

    @property
    def is_url(self) -> bool:
        scheme, sep, _ = self.value.partition("://")
        return bool(sep) and len(scheme) > 1 and scheme.isalpha()

    @property
    def url(self) -> str | None:
        return self.value if self.is_url else None

    @property
    def path(self) -> Path | None:
        if self.is_url:
            return None
        if PureWindowsPath(self.value).drive:
            return Path(PureWindowsPath(self.value))
        return Path(self.value)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class CondaPackage:
    name: str
    version: str
    build: str
    channel: str
    location: Location
    subdir: str = ""
    depends: tuple[str, ...] = ()
    sha256: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", self.name.strip().lower())

    @property
    def filename(self) -> str:
        return f"{self.name}-{self.version}-{self.build}"

    @property
    def build_number(self) -> int:
        _, _, number = self.build.rpartition("_")
        return int(number) if number.isdigit() else 0

    def record(self) -> PackageRecord | None:
        """The package as a ``rattler`` record, or ``None`` if it cannot be one."""
        try:
            return PackageRecord(
                name=self.name,
                version=self.version,
                build=self.build,
                build_number=self.build_number,
                subdir=self.subdir or str(Platform.NOARCH),
            )
        except (InvalidPackageNameError, InvalidVersionError):
            return None

    def satisfies(self, spec: MatchSpec | str) -> bool:
        match_spec = to_match_spec(spec)
        record = self.record()
        if record is None or not match_spec.matches(record):
            return False
        channel = spec_channel(match_spec)
        return channel is None or channel == channel_name(self.channel)


@dataclass(frozen=True, slots=True)
class PypiPackage:
    name: str
    version: str
    location: Location
    extras: frozenset[str] = frozenset()
    requires_dist: tuple[str, ...] = ()
    editable: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "extras", normalized_extras(self.extras))

    def satisfies(self, requirement: Requirement | str) -> bool:
        parsed = to_requirement(requirement)
        if canonicalize_name(parsed.name) != canonicalize_name(self.name):
            return False
        if parsed.url:
            return parsed.url == self.location.value
        try:
            if not parsed.specifier.contains(self.version, prereleases=True):
                return False
        except InvalidVersion:
            return False
        return normalized_extras(parsed.extras) <= self.extras


LockedPackage = CondaPackage | PypiPackage


@dataclass(frozen=True, slots=True)
class LockedEnvironment:
    channels: tuple[str, ...] = ()
    packages: dict[Platform, tuple[LockedPackage, ...]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        slots: dict[Platform, tuple[LockedPackage, ...]] = {}
        for platform, packages in self.packages.items():
            key = _platform_key(platform)
            if key is None:
                raise LockfileError(
                    f"Unknown platform '{platform}' in locked environment.",
                    context={"platform": str(platform)},
                )
            slots[key] = tuple(packages)
            _ensure_unique(key, slots[key])
        object.__setattr__(self, "channels", tuple(self.channels))
        object.__setattr__(self, "packages", slots)

    def platforms(self) -> tuple[Platform, ...]:
        return tuple(self.packages)

    def packages_for(self, platform: Platform | str) -> tuple[LockedPackage, ...] | None:
        key = _platform_key(platform)
        if key is None:
            return None
        return self.packages.get(key)

    def conda_packages(self, platform: Platform | str) -> Iterator[CondaPackage] | None:
        packages = self.packages_for(platform)
        if packages is None:
            return None
        return (package for package in packages if isinstance(package, CondaPackage))

    def pypi_packages(self, platform: Platform | str) -> Iterator[PypiPackage] | None:
        packages = self.packages_for(platform)
        if packages is None:
            return None
        return (package for package in packages if isinstance(package, PypiPackage))

    def slot_digest(self, platform: Platform | str) -> str:
        """Digest of the canonical CBOR encoding of one platform slot."""
        payload = {
            "channels": list(self.channels),
            "platform": str(platform),
            "packages": [package_payload(p) for p in self.packages_for(platform) or ()],
        }
        return hashlib.sha256(cbor2.dumps(payload, canonical=True)).hexdigest()


@dataclass(frozen=True, slots=True)
class LockFile:
    environments: dict[str, LockedEnvironment] = field(default_factory=dict)
    manifest_digest: str = ""
    version: int = LOCKFILE_VERSION

    def environment(self, name: str) -> LockedEnvironment | None:
        return self.environments.get(name)

    def with_environment(self, name: str, environment: LockedEnvironment) -> LockFile:
        environments = dict(self.environments)
        environments[name] = environment
        return replace(self, environments=environments)

    def contains_conda_package(self, environment: str, platform: Platform | str, name: str) -> bool:
        env = self.environment(environment)
        if env is None:
            return False
        return any(p.name == name for p in env.conda_packages(platform) or ())

    def contains_pypi_package(self, environment: str, platform: Platform | str, name: str) -> bool:
        env = self.environment(environment)
        if env is None:
            return False
        return any(p.name == name for p in env.pypi_packages(platform) or ())

    def contains_match_spec(
        self,
        environment: str,
        platform: Platform | str,
        match_spec: MatchSpec | str,
    ) -> bool:
        spec = to_match_spec(match_spec)
        env = self.environment(environment)
        if env is None:
            return False
        return any(p.satisfies(spec) for p in env.conda_packages(platform) or ())

    def contains_pep508_requirement(
        self,
        environment: str,
        platform: Platform | str,
        requirement: Requirement | str,
    ) -> bool:
        parsed = to_requirement(requirement)
        env = self.environment(environment)
        if env is None:
            warnings.warn(
                f"environment not found: {environment}",
                LockfileQueryWarning,
                stacklevel=2,
            )
            return False
        return any(p.satisfies(parsed) for p in env.pypi_packages(platform) or ())

    def get_pypi_package_version(
        self, environment: str, platform: Platform | str, package: str
    ) -> str | None:
        env = self.environment(environment)
        if env is None:
            return None
        found = next((p for p in env.pypi_packages(platform) or () if p.name == package), None)
        return str(found.version) if found is not None else None

    def get_pypi_package_url(
        self, environment: str, platform: Platform | str, package: str
    ) -> Location | None:
        env = self.environment(environment)
        if env is None:
            return None
        found = next((p for p in env.packages_for(platform) or () if p.name == package), None)
        return found.location if found is not None else None


def package_payload(package: LockedPackage) -> dict[str, Any]:
    if isinstance(package, CondaPackage):
        payload: dict[str, Any] = {
            "kind": "conda",
            "name": package.name,
            "version": package.version,
            "build": package.build,
            "channel": package.channel,
            "location": package.location.value,
            "subdir": package.subdir,
            "depends": list(package.depends),
        }
        if package.sha256 is not None:
            payload["sha256"] = package.sha256
        return payload
    payload = {
        "kind": "pypi",
        "name": package.name,
        "version": package.version,
        "location": package.location.value,
        "extras": sorted(package.extras),
        "requires_dist": list(package.requires_dist),
    }
    if package.editable:
        payload["editable"] = True
    return payload


def _platform_key(platform: Platform | str) -> Platform | None:
    try:
        return Platform(str(platform))
    except ValueError:
        return None


def _ensure_unique(platform: Platform, packages: tuple[LockedPackage, ...]) -> None:
    conda_names: set[str] = set()
    pypi_names: set[str] = set()
    for package in packages:
        if isinstance(package, CondaPackage):
            seen, key = conda_names, package.name
        else:
            seen, key = pypi_names, canonicalize_name(package.name)
        if key in seen:
            raise LockfileError(
                f"Package '{package.name}' is locked more than once.",
                hint="A name may appear once per namespace in each environment and platform.",
                context={
                    "platform": str(platform),
                    "namespace": "conda" if isinstance(package, CondaPackage) else "pypi",
                },
            )
        seen.add(key)


__all__ = [
    "LOCKFILE_VERSION",
    "CondaPackage",
    "Location",
    "LockFile",
    "LockedEnvironment",
    "LockedPackage",
    "LockfileQueryWarning",
    "PypiPackage",
    "package_payload",
]
