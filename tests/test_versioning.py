from __future__ import annotations

from functools import cmp_to_key

import pytest

from git_tools.versioning import (
    compare_tags_descending,
    extract_tag_version,
    greater_than,
    is_version_compatible_with_range,
    less_than,
    parse_version,
)


def test_parse_version() -> None:
    version = parse_version("1.2.3-beta.1")
    assert version is not None
    assert (version.major, version.minor, version.patch) == (1, 2, 3)
    assert version.prerelease == "beta.1"
    assert parse_version("v2.0.0") == parse_version("2.0.0")
    assert parse_version("not-a-version") is None
    assert parse_version("1.2") is None
    assert parse_version(None) is None


def test_precedence() -> None:
    release = parse_version("1.0.0")
    candidate = parse_version("1.0.0-rc.1")
    alpha = parse_version("1.0.0-alpha")
    assert less_than(candidate, release)
    assert less_than(alpha, candidate)
    assert greater_than(parse_version("1.10.0"), parse_version("1.9.9"))
    assert not less_than(release, release)


@pytest.mark.parametrize(
    ("tag", "expected"),
    [
        ("v1.2.13", "1.2.13"),
        ("1.2.13", "1.2.13"),
        ("working/v1.2.14", "1.2.14"),
        ("release/v2.0.0-rc.1", "2.0.0-rc.1"),
        ("latest", None),
        ("v1.2", None),
    ],
)
def test_extract_tag_version(tag: str, expected: str | None) -> None:
    assert extract_tag_version(tag) == expected


def test_manual_descending_sort_tolerates_invalid_tags() -> None:
    tags = ["v1.0.0", "v1.10.0", "v1.2.0", "v2.0.0-beta.1", "v2.0.0"]
    assert sorted(tags, key=cmp_to_key(compare_tags_descending)) == [
        "v2.0.0",
        "v2.0.0-beta.1",
        "v1.10.0",
        "v1.2.0",
        "v1.0.0",
    ]
    assert compare_tags_descending("nightly", "v1.0.0") == 0
    # sorting a list containing unversioned tags must not raise
    sorted(["nightly", "v1.0.0", "v0.9.0"], key=cmp_to_key(compare_tags_descending))


@pytest.mark.parametrize(
    ("version", "range_expr", "compatible"),
    [
        ("4.4.53-dev.0", "^4.4", True),
        ("4.4.1", "^4.4", True),
        ("4.5.3", "^4.4", False),
        ("5.4.0", "^4.4.0", False),
        ("1.2.3", "1.2.3", True),
        ("1.2.4", "1.2.3", False),
        ("1.2.5", "~1.2.0", True),
        ("1.3.0", "~1.2.0", False),
        ("2.1.0", ">=2.0.0 <3.0.0", True),
        ("3.0.0", ">=2.0.0 <3.0.0", False),
        ("1.5.0", "1.x", True),
        ("2.0.0", "1.x || 2.x", True),
        ("1.5.0", "1.0.0 - 1.4.0", False),
        ("1.3.0", "1.0.0 - 1.4.0", True),
        ("2.0.0-beta.1", ">=2.0.0", True),
        ("0.3.1", "*", True),
        ("1.0.0", "invalid-range", False),
        ("invalid-version", "^1.0.0", False),
    ],
)
def test_version_compatibility(version: str, range_expr: str, compatible: bool) -> None:
    assert is_version_compatible_with_range(version, range_expr) is compatible
