"""Conda platform (subdir) identifiers."""

from __future__ import annotations

import platform as _host
import sys
from collections.abc import Iterable
from enum import StrEnum

from lockstep.errors import ValidationError


class Platform(StrEnum):
    NOARCH = "noarch"
    LINUX_32 = "linux-32"
    LINUX_64 = "linux-64"
    LINUX_AARCH64 = "linux-aarch64"
    LINUX_ARMV7L = "linux-armv7l"
    LINUX_PPC64LE = "linux-ppc64le"
    LINUX_S390X = "linux-s390x"
    OSX_64 = "osx-64"
    OSX_ARM64 = "osx-arm64"
    WIN_32 = "win-32"
    WIN_64 = "win-64"
    WIN_ARM64 = "win-arm64"
    EMSCRIPTEN_WASM32 = "emscripten-wasm32"

    @classmethod
    def parse(cls, value: str | Platform) -> Platform:
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ValidationError(
                f"Unknown platform '{value}'.",
                hint="Use a conda subdir such as linux-64, osx-arm64 or win-64.",
            ) from exc

    @classmethod
    def current(cls) -> Platform:
        machine = _host.machine().lower()
        arm = machine in ("arm64", "aarch64")
        if sys.platform.startswith("linux"):
            if arm:
                return cls.LINUX_AARCH64
            if machine == "ppc64le":
                return cls.LINUX_PPC64LE
            if machine == "s390x":
                return cls.LINUX_S390X
            if machine.startswith("armv7"):
                return cls.LINUX_ARMV7L
            return cls.LINUX_64 if sys.maxsize > 2**32 else cls.LINUX_32
        if sys.platform == "darwin":
            return cls.OSX_ARM64 if arm else cls.OSX_64
        if sys.platform in ("win32", "cygwin"):
            if arm:
                return cls.WIN_ARM64
            return cls.WIN_64 if sys.maxsize > 2**32 else cls.WIN_32
        if sys.platform == "emscripten":
            return cls.EMSCRIPTEN_WASM32
        return cls.NOARCH

    @property
    def is_windows(self) -> bool:
        return self.value.startswith("win-")

    @property
    def is_osx(self) -> bool:
        return self.value.startswith("osx-")

    @property
    def is_linux(self) -> bool:
        return self.value.startswith("linux-")

    @property
    def is_unix(self) -> bool:
        return self.is_linux or self.is_osx


# Emulation fallbacks: a host can run binaries built for these platforms.
_FALLBACKS: dict[Platform, Platform] = {
    Platform.OSX_ARM64: Platform.OSX_64,
    Platform.WIN_ARM64: Platform.WIN_64,
}


def best_platform(supported: Iterable[Platform], *, host: Platform | None = None) -> Platform:
    """Pick the platform to run on out of the platforms an environment supports."""
    current = host or Platform.current()
    candidates = list(supported)
    if not candidates or current in candidates:
        return current
    fallback = _FALLBACKS.get(current)
    if fallback is not None and fallback in candidates:
        return fallback
    return candidates[0]


__all__ = ["Platform", "best_platform"]
