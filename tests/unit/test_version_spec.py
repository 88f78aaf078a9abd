from __future__ import annotations

import pytest

from astra_runner.models import (
    Coordinate,
    ExactVersion,
    LatestRelease,
    RangePrefix,
    ResolutionError,
    ResolutionErrorCode,
    parse_version_spec,
)


@pytest.mark.parametrize("text", ["latest.release", "LATEST.RELEASE", "latest", "release"])
def test_latest_release_aliases(text: str) -> None:
    assert parse_version_spec(text) == LatestRelease()


@pytest.mark.parametrize(
    ("text", "prefix"),
    [
        ("1.+", "1."),
        ("1.*", "1."),
        ("1.", "1."),
        ("1.2+", "1.2"),
        ("+", ""),
        ("*", ""),
    ],
)
def test_prefix_specs(text: str, prefix: str) -> None:
    assert parse_version_spec(text) == RangePrefix(prefix=prefix)


def test_exact_version_is_passed_through() -> None:
    assert parse_version_spec(" 1.2.3-rc1 ") == ExactVersion(version="1.2.3-rc1")


@pytest.mark.parametrize("text", ["", "   ", "1 .0", "1.*.+", "1*.0", "[1.0,2.0)", None])
def test_malformed_specs_raise_invalid_spec(text) -> None:
    with pytest.raises(ResolutionError) as excinfo:
        parse_version_spec(text)
    assert excinfo.value.code is ResolutionErrorCode.INVALID_SPEC


def test_coordinate_round_trips_through_string() -> None:
    coord = Coordinate.parse("example:echo")
    assert coord.namespace == "example"
    assert coord.name == "echo"
    assert str(coord) == "example:echo"


@pytest.mark.parametrize("text", ["example", "a:b:c", ":echo", "example:", "ex ample:echo"])
def test_coordinate_rejects_malformed_strings(text: str) -> None:
    with pytest.raises(ValueError):
        Coordinate.parse(text)
