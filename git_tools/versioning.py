"""Semantic version helpers used for release-tag discovery and npm link checks.

Parsing and precedence come from the ``semver`` package. Range handling covers
the subset of npm range syntax found in package.json files: exact versions,
comparison operators, tilde and caret ranges, x-ranges, hyphen ranges and
``||`` alternatives.
"""

from __future__ import annotations

import re
from typing import Callable

from semver import Version

TAG_VERSION_PATTERN = re.compile(r"v?(\d+\.\d+\.\d+.*?)$")

_COMPARATOR_PATTERN = re.compile(
    r"^(?P<op><=|>=|<|>|=|~>|~|\^)?\s*v?"
    r"(?P<major>\d+|[xX*])"
    r"(?:\.(?P<minor>\d+|[xX*]))?"
    r"(?:\.(?P<patch>\d+|[xX*]))?"
    r"(?:-(?P<prerelease>[0-9A-Za-z.-]+))?"
    r"(?:\+[0-9A-Za-z.-]+)?$"
)
_WILDCARDS = {"x", "X", "*"}

_OPERATORS: dict[str, Callable[[Version, Version], bool]] = {
    "<": lambda left, right: left < right,
    "<=": lambda left, right: left <= right,
    ">": lambda left, right: left > right,
    ">=": lambda left, right: left >= right,
    "==": lambda left, right: left == right,
}

Constraint = tuple[str, Version]


def parse_version(text: str | None) -> Version | None:
    """Parse a strict semantic version; return None instead of raising."""
    if not isinstance(text, str):
        return None
    text = text.strip()
    if text.startswith("v"):
        text = text[1:]
    try:
        return Version.parse(text)
    except ValueError:
        return None


def less_than(left: Version, right: Version) -> bool:
    return left < right


def greater_than(left: Version, right: Version) -> bool:
    return left > right


def extract_tag_version(tag: str) -> str | None:
    """Return the trailing ``major.minor.patch[-prerelease]`` part of a tag name."""
    match = TAG_VERSION_PATTERN.search(tag)
    return match.group(1) if match else None


def compare_tags_descending(left: str, right: str) -> int:
    """Comparator for ``functools.cmp_to_key`` sorting tags newest first.

    Tags without a parseable version compare as equal so they keep their
    relative position instead of aborting the sort.
    """
    left_text = extract_tag_version(left)
    right_text = extract_tag_version(right)
    if left_text is None or right_text is None:
        return 0
    left_version = parse_version(left_text)
    right_version = parse_version(right_text)
    if left_version is None or right_version is None:
        return 0
    return right_version.compare(left_version)


def coerce_version(text: str) -> Version | None:
    match = re.search(r"(\d+)(?:\.(\d+))?(?:\.(\d+))?", text)
    if not match:
        return None
    major, minor, patch = (int(part) if part else 0 for part in match.groups())
    return Version(major, minor, patch)


def is_version_compatible_with_range(version: str, range_expr: str) -> bool:
    """Check a linked package version against a declared dependency range.

    Caret ranges are stricter than npm: ``^4.4`` only accepts ``4.4.x``, but it
    does accept prereleases such as ``4.4.53-dev.0`` which npm would reject.
    Other prerelease versions are checked by their ``major.minor.patch`` base.
    """
    parsed = parse_version(version)
    if parsed is None:
        return False
    range_expr = range_expr.strip()
    alternatives = parse_range(range_expr)
    if alternatives is None:
        return False

    if range_expr.startswith("^"):
        base = parse_version(range_expr[1:]) or coerce_version(range_expr[1:])
        if base is None:
            return False
        return parsed.major == base.major and parsed.minor == base.minor

    if parsed.prerelease:
        parsed = parsed.finalize_version()
    return any(
        all(_OPERATORS[op](parsed, bound) for op, bound in constraints)
        for constraints in alternatives
    )


def parse_range(range_expr: str) -> list[list[Constraint]] | None:
    """Desugar a range into alternatives of AND-ed constraints, or None if invalid."""
    alternatives: list[list[Constraint]] = []
    for alternative in range_expr.split("||"):
        constraints = _parse_alternative(alternative.strip())
        if constraints is None:
            return None
        alternatives.append(constraints)
    return alternatives


def _parse_alternative(text: str) -> list[Constraint] | None:
    if text in ("", "*", "x", "X", "latest"):
        return []
    hyphen = re.fullmatch(r"(\S+)\s+-\s+(\S+)", text)
    if hyphen:
        low = _parse_comparator(">=" + hyphen.group(1))
        high = _parse_comparator("<=" + hyphen.group(2))
        if low is None or high is None:
            return None
        return low + high

    # ">= 1.2.0" is equivalent to ">=1.2.0"
    text = re.sub(r"(<=|>=|<|>|=|~>|~|\^)\s+", r"\1", text)
    constraints: list[Constraint] = []
    for token in text.split():
        parsed = _parse_comparator(token)
        if parsed is None:
            return None
        constraints.extend(parsed)
    return constraints


def _parse_comparator(token: str) -> list[Constraint] | None:
    match = _COMPARATOR_PATTERN.match(token)
    if not match:
        return None
    op = match.group("op") or "="
    parts = [match.group("major"), match.group("minor"), match.group("patch")]
    numbers: list[int] = []
    for part in parts:
        if part is None or part in _WILDCARDS:
            break
        numbers.append(int(part))
    trailing = parts[len(numbers):]
    if any(part is not None and part not in _WILDCARDS for part in trailing):
        # "1.x.3": a number after a wildcard
        return None
    prerelease = match.group("prerelease") if len(numbers) == 3 else None

    if not numbers:
        return [] if op in ("=", ">=", "<=", "~", "~>", "^") else [("<", Version(0, 0, 0))]

    floor = Version(*(numbers + [0] * (3 - len(numbers))), prerelease=prerelease)
    if op == "=":
        if len(numbers) == 3:
            return [("==", floor)]
        return [(">=", floor), ("<", _bump(numbers, len(numbers) - 1))]
    if op in ("~", "~>"):
        position = 1 if len(numbers) >= 2 else 0
        return [(">=", floor), ("<", _bump(numbers, position))]
    if op == "^":
        if numbers[0] > 0 or len(numbers) == 1:
            position = 0
        elif len(numbers) == 2 or numbers[1] > 0:
            position = 1
        else:
            position = 2
        return [(">=", floor), ("<", _bump(numbers, position))]
    if len(numbers) == 3:
        return [(op, floor)]
    # Partial versions with comparison operators
    upper = _bump(numbers, len(numbers) - 1)
    if op == ">":
        return [(">=", upper)]
    if op == "<=":
        return [("<", upper)]
    return [(op, floor)]


def _bump(numbers: list[int], position: int) -> Version:
    padded = numbers + [0] * (3 - len(numbers))
    bumped = padded[: position + 1]
    bumped[position] += 1
    bumped += [0] * (3 - len(bumped))
    # Lowest prerelease so "<2.0.0" also excludes 2.0.0-alpha.
    return Version(*bumped, prerelease="0")
