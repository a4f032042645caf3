"""PEP 508 requirements for PyPI packages, backed by ``packaging``."""

from __future__ import annotations

from functools import singledispatch

from packaging.requirements import InvalidRequirement, Requirement
from packaging.utils import canonicalize_name

from lockstep.errors import InvalidSpecError


def parse_requirement(text: str) -> Requirement:
    try:
        return Requirement(text)
    except InvalidRequirement as exc:
        raise InvalidSpecError(
            f"Invalid PEP 508 requirement '{text}'.",
            hint=str(exc),
            context={"requirement": text},
        ) from exc


@singledispatch
def to_requirement(value: object) -> Requirement:
    raise InvalidSpecError(
        f"Cannot build a requirement from {type(value).__name__}.",
        context={"value": repr(value)},
    )


@to_requirement.register
def _(value: str) -> Requirement:
    return parse_requirement(value)


@to_requirement.register
def _(value: Requirement) -> Requirement:
    return value


def normalized_extras(extras: set[str] | frozenset[str] | tuple[str, ...]) -> frozenset[str]:
    return frozenset(canonicalize_name(extra) for extra in extras)


__all__ = ["Requirement", "normalized_extras", "parse_requirement", "to_requirement"]
