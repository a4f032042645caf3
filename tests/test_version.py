import pytest

from lockstep.errors import InvalidSpecError
from lockstep.specs import is_valid_version, parse_version


@pytest.mark.parametrize(
    ("lower", "higher"),
    [
        ("1.0", "1.1"),
        ("1.1a1", "1.1"),
        ("1.1dev", "1.1a1"),
        ("1.1", "1.1post1"),
        ("1.9", "1.10"),
        ("1.2.3", "1!0.1"),
        ("2.0", "2.0+1"),
    ],
)
def test_version_ordering(lower: str, higher: str) -> None:
    assert parse_version(lower) < parse_version(higher)
    assert parse_version(higher) > parse_version(lower)


def test_surrounding_whitespace_is_ignored() -> None:
    assert str(parse_version(" 1.26.0\n")) == "1.26.0"


@pytest.mark.parametrize("text", ["", "   ", "1.0$!"])
def test_invalid_version_raises(text: str) -> None:
    with pytest.raises(InvalidSpecError) as excinfo:
        parse_version(text)

    assert excinfo.value.context["version"] == text


def test_is_valid_version() -> None:
    assert is_valid_version("2024a")
    assert not is_valid_version("1.0$!")
