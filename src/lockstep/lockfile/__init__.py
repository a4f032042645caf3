"""Lock file model, persistence and freshness."""

from .catalog import CatalogSolver
from .io import LOCKFILE_NAME, parse_lockfile, read_lockfile, serialize_lockfile, write_lockfile
from .model import (
    LOCKFILE_VERSION,
    CondaPackage,
    Location,
    LockedEnvironment,
    LockedPackage,
    LockFile,
    LockfileQueryWarning,
    PypiPackage,
)
from .resolve import (
    LockFileDiff,
    PackageChange,
    Solver,
    diff_lock_files,
    ensure_lock_file,
    is_up_to_date,
    lock_path_for,
    manifest_digest,
    missing_slots,
    solve_lock_file,
)

__all__ = [
    "LOCKFILE_NAME",
    "LOCKFILE_VERSION",
    "CatalogSolver",
    "CondaPackage",
    "Location",
    "LockFile",
    "LockFileDiff",
    "LockedEnvironment",
    "LockedPackage",
    "LockfileQueryWarning",
    "PackageChange",
    "PypiPackage",
    "Solver",
    "diff_lock_files",
    "ensure_lock_file",
    "is_up_to_date",
    "lock_path_for",
    "manifest_digest",
    "missing_slots",
    "parse_lockfile",
    "read_lockfile",
    "serialize_lockfile",
    "solve_lock_file",
    "write_lockfile",
]
