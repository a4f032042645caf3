"""Constraint evaluators for conda and PyPI packages."""

from .match_spec import MatchSpec, channel_name, parse_match_spec, spec_channel, to_match_spec
from .requirement import Requirement, parse_requirement, to_requirement
from .version import Version, is_valid_version, parse_version

__all__ = [
    "MatchSpec",
    "Requirement",
    "Version",
    "channel_name",
    "is_valid_version",
    "parse_match_spec",
    "parse_requirement",
    "parse_version",
    "spec_channel",
    "to_match_spec",
    "to_requirement",
]
