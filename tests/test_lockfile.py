import json
import warnings
from pathlib import Path

import pytest

from lockstep.errors import InvalidSpecError, LockfileError
from lockstep.lockfile import (
    CondaPackage,
    Location,
    LockedEnvironment,
    LockFile,
    LockfileQueryWarning,
    PypiPackage,
    parse_lockfile,
    read_lockfile,
    serialize_lockfile,
    write_lockfile,
)
from lockstep.platform import Platform
from lockstep.specs import MatchSpec

LINUX = Platform.LINUX_64


def test_numpy_scenario_queries() -> None:
    lock = _numpy_lock()

    assert lock.contains_conda_package("default", LINUX, "numpy")
    assert lock.contains_match_spec("default", LINUX, "numpy>=1.25,<2")
    assert not lock.contains_match_spec("default", LINUX, "numpy>=2")
    assert not lock.contains_conda_package("default", LINUX, "scipy")
    assert lock.get_pypi_package_version("default", LINUX, "requests") is None


def test_conda_queries_collapse_missing_slots_to_false() -> None:
    lock = _numpy_lock()

    assert not lock.contains_conda_package("missing", LINUX, "numpy")
    assert not lock.contains_conda_package("default", Platform.OSX_ARM64, "numpy")
    assert not lock.contains_conda_package("default", "not-a-platform", "numpy")
    assert not lock.contains_match_spec("missing", LINUX, "numpy")


def test_name_only_match_spec_matches_every_locked_package() -> None:
    lock = _numpy_lock()
    for package in lock.environments["default"].conda_packages(LINUX) or ():
        assert lock.contains_match_spec("default", LINUX, MatchSpec(package.name))


def test_match_spec_build_channel_and_subdir() -> None:
    lock = _numpy_lock()

    assert lock.contains_match_spec("default", LINUX, "numpy 1.26.0 py311*")
    assert not lock.contains_match_spec("default", LINUX, "numpy 1.26.0 py312*")
    assert lock.contains_match_spec("default", LINUX, "conda-forge::numpy")
    assert not lock.contains_match_spec("default", LINUX, "bioconda::numpy")
    assert lock.contains_match_spec("default", LINUX, "conda-forge/linux-64::numpy")
    assert not lock.contains_match_spec("default", LINUX, "conda-forge/osx-64::numpy")


def test_conda_package_name_is_normalized() -> None:
    lock = _numpy_lock()
    package = _conda("NumPy", "1.26.0")
    assert package.name == "numpy"
    assert lock.contains_conda_package("default", LINUX, "numpy")


def test_pep508_requirement_queries() -> None:
    lock = _pypi_lock()

    assert lock.contains_pypi_package("default", LINUX, "requests")
    assert lock.contains_pep508_requirement("default", LINUX, "requests>=2.30")
    assert lock.contains_pep508_requirement("default", LINUX, "Requests[socks]")
    assert not lock.contains_pep508_requirement("default", LINUX, "requests<2")
    assert not lock.contains_pep508_requirement("default", LINUX, "requests[security]")
    assert not lock.contains_pep508_requirement("default", Platform.WIN_64, "requests")


def test_pep508_requirement_on_missing_environment_warns() -> None:
    lock = _pypi_lock()

    with pytest.warns(LockfileQueryWarning, match="environment not found: other"):
        assert not lock.contains_pep508_requirement("other", LINUX, "requests")


def test_pep508_requirement_does_not_warn_for_missing_platform() -> None:
    lock = _pypi_lock()

    with warnings.catch_warnings():
        warnings.simplefilter("error")
        assert not lock.contains_pep508_requirement("default", Platform.OSX_64, "requests")


def test_invalid_requirement_raises() -> None:
    with pytest.raises(InvalidSpecError):
        _pypi_lock().contains_pep508_requirement("default", LINUX, "!!requests")


def test_url_requirement_matches_location() -> None:
    lock = _pypi_lock()
    url = "https://files.pythonhosted.org/requests-2.31.0-py3-none-any.whl"

    assert lock.contains_pep508_requirement("default", LINUX, f"requests @ {url}")
    assert not lock.contains_pep508_requirement(
        "default", LINUX, "requests @ https://example.invalid/requests.whl"
    )


def test_package_url_lookup_spans_both_namespaces() -> None:
    lock = _pypi_lock()

    assert lock.get_pypi_package_version("default", LINUX, "requests") == "2.31.0"
    pypi_location = lock.get_pypi_package_url("default", LINUX, "requests")
    conda_location = lock.get_pypi_package_url("default", LINUX, "python")

    assert pypi_location is not None and pypi_location.is_url
    assert conda_location is not None and conda_location.value.endswith(".conda")
    assert lock.get_pypi_package_url("default", LINUX, "absent") is None
    assert lock.get_pypi_package_url("missing", LINUX, "requests") is None


def test_same_name_in_both_namespaces_is_allowed() -> None:
    environment = LockedEnvironment(
        packages={LINUX: (_conda("requests", "2.31.0"), _pypi("requests", "2.31.0"))}
    )
    assert len(environment.packages_for(LINUX) or ()) == 2


def test_duplicate_name_in_one_namespace_is_rejected() -> None:
    with pytest.raises(LockfileError) as excinfo:
        LockedEnvironment(
            packages={LINUX: (_conda("numpy", "1.26.0"), _conda("numpy", "1.25.0"))}
        )

    assert excinfo.value.context["namespace"] == "conda"


def test_pypi_duplicates_are_compared_by_canonical_name() -> None:
    with pytest.raises(LockfileError) as excinfo:
        LockedEnvironment(
            packages={
                LINUX: (_pypi("typing_extensions", "4.9.0"), _pypi("Typing-Extensions", "4.9.0"))
            }
        )

    assert excinfo.value.context["namespace"] == "pypi"


def test_conda_names_differing_only_by_separator_are_distinct() -> None:
    environment = LockedEnvironment(
        packages={
            LINUX: (_conda("typing_extensions", "4.9.0"), _conda("typing-extensions", "4.9.0"))
        }
    )
    assert len(environment.packages_for(LINUX) or ()) == 2


def test_unparsable_locked_version_never_matches() -> None:
    lock = LockFile(
        environments={"default": LockedEnvironment(packages={LINUX: (_conda("numpy", "1.0$!"),)})}
    )

    assert lock.contains_conda_package("default", LINUX, "numpy")
    assert not lock.contains_match_spec("default", LINUX, "numpy")


def test_unknown_platform_key_is_rejected() -> None:
    with pytest.raises(LockfileError):
        LockedEnvironment(packages={"amiga-68k": ()})  # type: ignore[dict-item]


def test_location_distinguishes_urls_and_paths() -> None:
    assert Location("https://example.invalid/a.conda").is_url
    assert Location("./dist/pkg.whl").path == Path("dist/pkg.whl")
    assert Location(r"C:\wheels\pkg.whl").url is None
    assert Location(r"C:\wheels\pkg.whl").path is not None


def test_lockfile_roundtrip_parser_serializer() -> None:
    lock = _pypi_lock()
    encoded = serialize_lockfile(lock)
    decoded = parse_lockfile(encoded)

    assert decoded == lock
    assert serialize_lockfile(decoded) == encoded


def test_write_and_read_lockfile(tmp_path: Path) -> None:
    path = write_lockfile(_numpy_lock(), tmp_path / "nested" / "lockstep.lock")
    loaded = read_lockfile(path)

    assert loaded.contains_conda_package("default", LINUX, "numpy")
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["version"] == 1
    assert payload["environments"]["default"]["packages"]["linux-64"][0]["kind"] == "conda"


def test_read_missing_lockfile_has_hint(tmp_path: Path) -> None:
    with pytest.raises(LockfileError) as excinfo:
        read_lockfile(tmp_path / "lockstep.lock")

    assert excinfo.value.hint is not None
    assert excinfo.value.code == "E_LOCKFILE"


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        "[]",
        json.dumps({"environments": {}}),
        json.dumps({"version": 1, "environments": {"default": {"packages": []}}}),
        json.dumps(
            {
                "version": 1,
                "environments": {
                    "default": {"packages": {"linux-64": [{"kind": "rpm", "name": "x"}]}}
                },
            }
        ),
        json.dumps(
            {
                "version": 1,
                "environments": {
                    "default": {
                        "packages": {
                            "linux-64": [
                                {
                                    "kind": "conda",
                                    "name": "numpy",
                                    "version": "1.0$!",
                                    "location": "https://example.invalid/numpy.conda",
                                }
                            ]
                        }
                    }
                },
            }
        ),
    ],
)
def test_parse_lockfile_rejects_malformed_payloads(raw: str) -> None:
    with pytest.raises(LockfileError):
        parse_lockfile(raw)


def test_slot_digest_is_stable_and_content_sensitive() -> None:
    first = _numpy_lock().environments["default"]
    second = _numpy_lock().environments["default"]
    changed = LockedEnvironment(
        channels=first.channels, packages={LINUX: (_conda("numpy", "1.26.1"),)}
    )

    assert first.slot_digest(LINUX) == second.slot_digest(LINUX)
    assert first.slot_digest(LINUX) != changed.slot_digest(LINUX)


def test_with_environment_returns_new_instance() -> None:
    lock = _numpy_lock()
    updated = lock.with_environment("test", LockedEnvironment(packages={LINUX: ()}))

    assert "test" in updated.environments
    assert "test" not in lock.environments


def _numpy_lock() -> LockFile:
    return LockFile(
        environments={
            "default": LockedEnvironment(
                channels=("conda-forge",),
                packages={LINUX: (_conda("numpy", "1.26.0"),)},
            )
        }
    )


def _pypi_lock() -> LockFile:
    return LockFile(
        environments={
            "default": LockedEnvironment(
                channels=("conda-forge",),
                packages={
                    LINUX: (
                        _conda("python", "3.11.4"),
                        _pypi("requests", "2.31.0", extras=frozenset({"socks"})),
                    )
                },
            )
        },
        manifest_digest="abc",
    )


def _conda(name: str, version: str) -> CondaPackage:
    return CondaPackage(
        name=name,
        version=version,
        build="py311h64a7726_0",
        channel="https://conda.anaconda.org/conda-forge/",
        location=Location(
            f"https://conda.anaconda.org/conda-forge/linux-64/{name.lower()}-{version}.conda"
        ),
        subdir="linux-64",
    )


def _pypi(name: str, version: str, extras: frozenset[str] = frozenset()) -> PypiPackage:
    return PypiPackage(
        name=name,
        version=version,
        location=Location(f"https://files.pythonhosted.org/{name}-{version}-py3-none-any.whl"),
        extras=extras,
    )
